from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from strawberry.fastapi import BaseContext

from app.core.logging_config import get_logger
from app.crud.peopleCrud import get_person_by_id
from app.db.postgresql import get_db
from app.models.userModel import People
from app.security.jwt import verify_token

logger = get_logger("graphql.context")


@dataclass
class Context(BaseContext):
    db: AsyncSession
    request: Request
    response: Response
    user: Optional[People] = None


def _extract_token(request: Request) -> Optional[str]:
    access_token = request.headers.get("x-access-token")
    if access_token:
        return access_token
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


async def build_context(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> Context:
    user = None
    access_token = _extract_token(request)

    if access_token:
        payload = verify_token(access_token)
        if payload:
            person_id = payload.get("person_id")
            if person_id:
                user = await get_person_by_id(db, int(person_id))
            if user is None:
                logger.warning("Token refers to unknown person %s", person_id)

    return Context(db=db, request=request, response=response, user=user)
