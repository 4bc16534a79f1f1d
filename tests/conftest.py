from __future__ import annotations

import os

# Settings are read at import time
os.environ["DB_SCHEMA"] = ""
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_TO_FILE"] = "false"
os.environ["BOOKING_RETRY_BASE_DELAY_MS"] = "1"
os.environ["SECRET_KEY_ACCESS_TOKEN"] = "test-secret"

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from app.crud.peopleCrud import create_person  # noqa: E402
from app.db.postgresql import Base  # noqa: E402
from app.models.userModel import ROLE_MEMBER, ROLE_TRAINER  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'studio.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _person(session_factory, name: str, *roles: str):
    async with session_factory() as session:
        person = await create_person(session, full_name=name, roles=roles)
        await session.commit()
        return person


@pytest.fixture
async def trainer(session_factory):
    return await _person(session_factory, "Ana Trainer", ROLE_TRAINER)


@pytest.fixture
async def other_trainer(session_factory):
    return await _person(session_factory, "Luis Trainer", ROLE_TRAINER)


@pytest.fixture
async def member(session_factory):
    return await _person(session_factory, "Maria Member", ROLE_MEMBER)


@pytest.fixture
async def members(session_factory):
    return [
        await _person(session_factory, f"Member {i}", ROLE_MEMBER)
        for i in range(1, 6)
    ]
