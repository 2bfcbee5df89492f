"""FastAPI dependencies for database, authentication, and organization scoping."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Header, status
from sqlalchemy.ext.asyncio import AsyncSession
import jwt
from jwt import PyJWTError

from .database import get_async_session
from .exceptions import AuthenticationError
from .config import settings


@dataclass(frozen=True)
class ServiceContext:
    """Tenant scope every service call runs under."""

    organization_id: UUID
    user_id: Optional[str] = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        dict: User information from validated token

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError("Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError("Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")

    try:
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError("Invalid token payload")

    # Check token expiration
    exp = payload.get("exp")
    if exp and datetime.now(timezone.utc).timestamp() > exp:
        raise AuthenticationError("Token has expired")

    return {
        "user_id": user_id,
        "organization_id": payload.get("org_id"),
        "username": payload.get("username"),
        "email": payload.get("email"),
        "roles": payload.get("roles", []),
    }


async def get_service_context(
    current_user: dict = Depends(get_current_user),
) -> ServiceContext:
    """
    Resolve the organization the caller acts for.

    Raises:
        HTTPException: If the token carries no usable ``org_id`` claim
    """
    org_id = current_user.get("organization_id")
    if not org_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not scoped to an organization",
        )
    try:
        organization_id = UUID(str(org_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid organization id in token",
        )
    return ServiceContext(organization_id=organization_id, user_id=current_user["user_id"])


DatabaseSession = Depends(get_db)
OrganizationScope = Depends(get_service_context)
