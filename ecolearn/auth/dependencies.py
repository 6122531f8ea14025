"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current user id extraction from the bearer token
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from ecolearn.auth.security import user_id_from_token
from ecolearn.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


async def get_current_user_id(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> UUID:
    """Get the authenticated user's id.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing access token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = user_id_from_token(token)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    set_user_id(user_id)
    return user_id


CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
