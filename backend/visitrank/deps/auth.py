"""
Bearer-token dependency for the ranking endpoints.

Visitrank does not log anyone in. Clients send the JWT issued by the auth
service as `Authorization: Bearer <token>`; the token's `sub` must name an
active row in `users`, which is what every ranking query is scoped to.
"""
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from visitrank.core.security import decode_access_token
from visitrank.db.models import User
from visitrank.db.session import get_db

# auto_error=False so a missing header gets the same 401 as a bad token
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_id_from_credentials(credentials: HTTPAuthorizationCredentials | None) -> UUID:
    """Verify the bearer token and return the user id it was issued for."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing bearer token")

    subject = decode_access_token(credentials.credentials)
    if subject is None:
        raise _unauthorized("Invalid or expired token")
    try:
        return UUID(subject)
    except ValueError:
        raise _unauthorized("Invalid or expired token")


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    user_id = user_id_from_credentials(credentials)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise _unauthorized("Invalid or expired token")
    if not user.is_active:
        raise _unauthorized("Account is deactivated")
    return user
