from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.userModel import People, Role, PersonRole


async def get_person_by_id(db: AsyncSession, person_id: int) -> Optional[People]:
    res = await db.execute(
        select(People).where(People.id == int(person_id), People.deleted_at.is_(None))
    )
    return res.scalar_one_or_none()


async def get_or_create_role(db: AsyncSession, code: str) -> Role:
    res = await db.execute(select(Role).where(Role.code == code))
    role = res.scalar_one_or_none()
    if role is None:
        role = Role(code=code)
        db.add(role)
        await db.flush()
    return role


async def create_person(
    db: AsyncSession,
    *,
    full_name: str,
    roles: Iterable[str],
    email: Optional[str] = None,
) -> People:
    """Create a person with the given role codes (flush only)."""
    person = People(full_name=full_name, email=email)
    db.add(person)
    await db.flush()
    for code in roles:
        role = await get_or_create_role(db, code)
        db.add(PersonRole(person_id=person.id, role_id=role.id))
    await db.flush()
    return person


async def person_has_role(db: AsyncSession, person_id: int, *codes: str) -> bool:
    res = await db.execute(
        select(func.count())
        .select_from(PersonRole)
        .join(Role, Role.id == PersonRole.role_id)
        .where(PersonRole.person_id == int(person_id), Role.code.in_(codes))
    )
    return (res.scalar() or 0) > 0


async def get_role_codes(db: AsyncSession, person_id: int) -> list:
    res = await db.execute(
        select(Role.code)
        .join(PersonRole, PersonRole.role_id == Role.id)
        .where(PersonRole.person_id == int(person_id))
        .order_by(Role.code)
    )
    return [row[0] for row in res.all()]
