"""
ASC Inventory API Dependencies

Dependency injection for DB sessions, auth, and facility context.
"""

import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.session import AsyncSessionLocal

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)

# Dev identity used when debug bypasses auth
DEV_FACILITY_ID = "00000000-0000-0000-0000-000000000001"
DEV_USER_ID = "00000000-0000-0000-0000-000000000002"


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller identity and facility scope."""

    user_id: uuid.UUID
    facility_id: uuid.UUID


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode JWT and return user payload. Bypassed in debug mode."""
    if settings.debug:
        return {
            "sub": DEV_USER_ID,
            "email": "dev@asc-inventory.local",
            "facility_id": DEV_FACILITY_ID,
        }

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    from core.security import decode_access_token

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


def get_caller(user: dict = Depends(get_current_user)) -> CallerContext:
    """Resolve the caller's user id and facility scope from the token payload."""
    try:
        return CallerContext(
            user_id=uuid.UUID(str(user.get("sub"))),
            facility_id=uuid.UUID(str(user.get("facility_id"))),
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No facility context",
        )


async def get_tenant_db(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> AsyncSession:
    """
    Get a DB session with facility context set.
    Sets PostgreSQL RLS variable for row-level security.
    """
    facility_id = user.get("facility_id")
    if not facility_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No facility context",
        )
    await db.execute(
        text("SELECT set_config('app.current_facility_id', :fid, true)"),
        {"fid": str(facility_id)},
    )
    return db
