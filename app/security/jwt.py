from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.core.config import settings
from app.core.logging_config import get_logger

logger = get_logger("security.jwt")

ALGORITHM = "HS256"


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    logger.debug(f"Access token expires at: {expire}")
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key_access_token, algorithm=ALGORITHM)


def verify_token(token: str):
    try:
        return jwt.decode(token, settings.secret_key_access_token, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Error verifying access token: {e}")
        return None
