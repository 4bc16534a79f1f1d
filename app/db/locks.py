"""
Transaction-scoped scheduling locks.

Every booking transaction locks the keys it is about to check and write
(trainer, member or class) before reading anything, so the check and the
insert happen as one isolated unit. On PostgreSQL the lock is an advisory
transaction lock released by COMMIT/ROLLBACK; on other backends an
in-process asyncio lock with the same key space is held until the block
exits.
"""
import asyncio
import weakref
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import TransientStoreError, is_transient_db_error
from app.core.logging_config import get_logger

logger = get_logger("db.locks")

OWNER_SCOPE = 1
MEMBER_SCOPE = 2
CLASS_SCOPE = 3

LockKey = Tuple[int, int]

# asyncio locks are bound to the loop that first waits on them
_local_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[LockKey, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _loop_locks() -> Dict[LockKey, asyncio.Lock]:
    loop = asyncio.get_running_loop()
    locks = _local_locks.get(loop)
    if locks is None:
        locks = _local_locks[loop] = defaultdict(asyncio.Lock)
    return locks


def owner_key(trainer_id: int) -> LockKey:
    return (OWNER_SCOPE, int(trainer_id))


def member_key(member_id: int) -> LockKey:
    return (MEMBER_SCOPE, int(member_id))


def class_key(class_id: int) -> LockKey:
    return (CLASS_SCOPE, int(class_id))


def _ordered(keys: Iterable[LockKey]) -> list:
    # Fixed acquisition order prevents lock-order deadlocks
    return sorted(set(keys))


async def _pg_lock(db: AsyncSession, keys: list, timeout_ms: int) -> None:
    try:
        await db.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'"))
        for scope, key_id in keys:
            await db.execute(
                text("SELECT pg_advisory_xact_lock(:scope, :key_id)"),
                {"scope": scope, "key_id": key_id},
            )
    except DBAPIError as exc:
        if is_transient_db_error(exc):
            raise TransientStoreError(
                "Timed out waiting for schedule lock",
                details={"keys": keys},
            ) from exc
        raise


@asynccontextmanager
async def slot_lock(db: AsyncSession, *keys: LockKey,
                    timeout_ms: Optional[int] = None) -> AsyncIterator[None]:
    """Hold the given schedule keys for the rest of the transaction."""
    ordered = _ordered(keys)
    timeout_ms = settings.lock_timeout_ms if timeout_ms is None else timeout_ms

    if db.get_bind().dialect.name == "postgresql":
        await _pg_lock(db, ordered, timeout_ms)
        yield
        return

    local_locks = _loop_locks()
    acquired = []
    try:
        for key in ordered:
            lock = local_locks[key]
            try:
                await asyncio.wait_for(lock.acquire(), timeout=timeout_ms / 1000)
            except asyncio.TimeoutError as exc:
                logger.warning("Lock wait timed out for key %s", key)
                raise TransientStoreError(
                    "Timed out waiting for schedule lock",
                    details={"keys": ordered},
                ) from exc
            acquired.append(lock)
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()
