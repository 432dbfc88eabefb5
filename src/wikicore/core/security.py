"""JWT helpers mapping bearer tokens to caller identities."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from wikicore.core.settings import settings
from wikicore.services.permissions import Caller


class InvalidTokenError(ValueError):
    """Raised when a bearer token cannot be turned into a caller."""


def create_access_token(user_id: int, *, admin: bool = False, expires_minutes: int | None = None) -> str:
    """Create a signed access token whose ``sub`` claim is the user id."""
    minutes = settings.access_token_expire_minutes if expires_minutes is None else expires_minutes
    to_encode: dict[str, Any] = {
        "sub": str(user_id),
        "admin": admin,
        "exp": datetime.now(UTC) + timedelta(minutes=minutes),
    }
    encoded_jwt: str = jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)
    return encoded_jwt


def caller_from_token(token: str) -> Caller:
    """Decode ``token`` and return the caller it identifies.

    Raises:
        InvalidTokenError: If the signature, expiry or claims are invalid.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as err:
        raise InvalidTokenError("Could not validate credentials") from err

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as err:
        raise InvalidTokenError("Token subject is not a user id") from err
    return Caller(user_id=user_id, is_admin=bool(payload.get("admin", False)))
