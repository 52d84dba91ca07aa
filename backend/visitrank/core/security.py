"""
JWT token utilities.
Never import DB models here — keep this layer pure.

Accounts and passwords are managed by the auth service; this API only needs
to verify the bearer tokens it issues (create_access_token exists for local
tooling and tests).
"""
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from visitrank.core.config import settings


def create_access_token(
    subject: Any,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed JWT.

    Args:
        subject: Usually the user's UUID (converted to str).
        expires_delta: Override the default expiry from settings.

    Returns:
        Encoded JWT string.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta
        or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": str(subject), "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> str | None:
    """
    Decode a JWT and return the *sub* claim (user UUID string).
    Returns None on any error (expired, tampered, malformed).
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
        return payload.get("sub")
    except JWTError:
        return None
