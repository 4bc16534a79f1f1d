from __future__ import annotations

import httpx
import pytest

from app.core.exceptions import TransientStoreError
from app.db.postgresql import get_db
from app.main import app
from app.security.jwt import create_access_token
from app.services.booking_service import BookingService

BOOK_SESSION = """
mutation Book($input: BookSessionInput!) {
  bookSession(input: $input) {
    success
    message
    errorCode
    session { id startTime durationMinutes status }
    conflict { party partyId conflictingKind conflictingId }
  }
}
"""

SCHEDULE_CLASS = """
mutation Schedule($input: ScheduleClassInput!) {
  scheduleClass(input: $input) {
    success
    studioClass { id capacity availableSpots }
  }
}
"""

BOOK_SEAT = """
mutation Seat($input: ClassSeatInput!) {
  bookClassSeat(input: $input) {
    success
    outcome
    errorCode
    waitlistEntry { position }
  }
}
"""


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def _auth(person) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'person_id': person.id})}"}


async def _gql(client, query: str, variables: dict, headers: dict | None = None) -> dict:
    response = await client.post("/graphql", json={"query": query, "variables": variables}, headers=headers or {})
    assert response.status_code == 200
    return response.json()


def _session_input(trainer, member, start: str, minutes: int) -> dict:
    return {
        "input": {
            "trainerId": trainer.id,
            "memberId": member.id,
            "sessionDate": "2025-03-01",
            "startTime": start,
            "durationMinutes": minutes,
        }
    }


@pytest.mark.asyncio
async def test_health(client) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_booking_requires_authentication(client, trainer, member) -> None:
    body = await _gql(client, BOOK_SESSION, _session_input(trainer, member, "10:00", 60))
    assert body["errors"][0]["message"] == "Authentication required."


@pytest.mark.asyncio
async def test_book_session_and_conflict(client, trainer, member, members) -> None:
    headers = _auth(trainer)

    first = await _gql(client, BOOK_SESSION, _session_input(trainer, member, "10:00", 60), headers)
    payload = first["data"]["bookSession"]
    assert payload["success"] is True
    assert payload["session"]["startTime"] == "10:00"
    session_id = payload["session"]["id"]

    clash = await _gql(client, BOOK_SESSION, _session_input(trainer, members[0], "10:30", 60), {
        "x-access-token": create_access_token({"person_id": member.id})
    })
    payload = clash["data"]["bookSession"]
    assert payload["success"] is False
    assert payload["errorCode"] == "ConflictError"
    assert payload["conflict"] == {
        "party": "owner",
        "partyId": trainer.id,
        "conflictingKind": "session",
        "conflictingId": session_id,
    }

    touching = await _gql(client, BOOK_SESSION, _session_input(trainer, members[0], "11:00", 30), headers)
    assert touching["data"]["bookSession"]["success"] is True


@pytest.mark.asyncio
async def test_invalid_time_is_a_validation_error(client, trainer, member) -> None:
    body = await _gql(client, BOOK_SESSION, _session_input(trainer, member, "10:75", 60), _auth(trainer))
    payload = body["data"]["bookSession"]
    assert payload["success"] is False
    assert payload["errorCode"] == "ValidationError"
    assert payload["session"] is None


@pytest.mark.asyncio
async def test_class_seat_flow(client, trainer, members) -> None:
    headers = _auth(trainer)
    scheduled = await _gql(client, SCHEDULE_CLASS, {
        "input": {
            "trainerId": trainer.id,
            "name": "Barre",
            "classDate": "2025-03-01",
            "startTime": "18:00",
            "durationMinutes": 50,
            "capacity": 1,
            "waitlistEnabled": True,
            "waitlistCapacity": 1,
        }
    }, headers)
    studio_class = scheduled["data"]["scheduleClass"]["studioClass"]
    assert studio_class["availableSpots"] == 1
    class_id = studio_class["id"]

    outcomes = []
    for person in members[:3]:
        body = await _gql(client, BOOK_SEAT, {"input": {"classId": class_id, "memberId": person.id}}, headers)
        outcomes.append(body["data"]["bookClassSeat"])

    assert [o["outcome"] for o in outcomes] == ["registered", "waitlisted", None]
    assert outcomes[1]["waitlistEntry"] == {"position": 1}
    assert outcomes[2]["errorCode"] == "CapacityExceededError"

    capacity = await _gql(client, """
        query Capacity($classId: Int!) {
          classCapacity(classId: $classId) { currentCapacity waiting isFull }
        }
    """, {"classId": class_id}, headers)
    assert capacity["data"]["classCapacity"] == {"currentCapacity": 1, "waiting": 1, "isFull": True}


@pytest.mark.asyncio
async def test_transient_store_error_is_reported_as_degraded(client, trainer, member, monkeypatch) -> None:
    async def unavailable(self, *args, **kwargs):
        raise TransientStoreError("Timed out waiting for schedule lock")

    monkeypatch.setattr(BookingService, "book_session", unavailable)

    body = await _gql(client, BOOK_SESSION, _session_input(trainer, member, "10:00", 60), _auth(trainer))
    payload = body["data"]["bookSession"]
    assert payload["success"] is False
    assert payload["errorCode"] == "TransientStoreError"
    assert payload["session"] is None
