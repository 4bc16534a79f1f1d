"""
Scheduling exceptions.

Only failures that are not expected business outcomes are raised. Slot
conflicts and full classes are returned as result values by the booking
service (see app.services.results).
"""
from typing import Any, Dict, Optional

from sqlalchemy.exc import DBAPIError

# lock_not_available, serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = {"55P03", "40001", "40P01"}


class SchedulingError(Exception):
    """Base class for scheduling errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(SchedulingError):
    """Malformed input rejected before touching the database."""


class NotFoundError(SchedulingError):
    """Raised when a session, class, registration or person does not exist."""


class TransientStoreError(SchedulingError):
    """Lock timeout, serialization failure or lost connection. Safe to retry."""


def is_transient_db_error(exc: DBAPIError) -> bool:
    if exc.connection_invalidated:
        return True
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    message = str(exc).lower()
    return (
        "deadlock detected" in message
        or "lock timeout" in message
        or "database is locked" in message
    )
