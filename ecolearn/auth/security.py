"""JWT validation for tokens issued by the hosted auth backend.

The backend signs access tokens with a shared secret; ``sub`` carries the
user id and ``aud`` the audience configured in settings.
"""

from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from ecolearn.config.settings import get_settings


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Validates:
    - JWT signature
    - Expiration time
    - Audience (when configured)

    Raises:
        JWTError: If token is invalid or expired
    """
    settings = get_settings()

    options = {"verify_aud": settings.auth_audience is not None}
    return jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
        audience=settings.auth_audience,
        options=options,
    )


def user_id_from_token(token: str) -> UUID:
    """Validate a token and return its subject as a UUID.

    Raises:
        JWTError: If token is invalid, expired or has no UUID subject
    """
    payload = decode_access_token(token)
    subject = payload.get("sub")
    if not subject:
        msg = "Token has no subject"
        raise JWTError(msg)
    try:
        return UUID(subject)
    except ValueError as e:
        msg = "Token subject is not a user id"
        raise JWTError(msg) from e
