"""
ShelfLens API Dependencies

Dependency injection for DB sessions, auth, tenant context, and the
detection client.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.session import AsyncSessionLocal
from integrations.detection import DetectionClient

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)

# Dev customer_id must match seed_planograms.py
DEV_CUSTOMER_ID = "00000000-0000-0000-0000-000000000001"


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
            "sub": "dev-user",
            "email": "dev@shelflens.com",
            "customer_id": DEV_CUSTOMER_ID,
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


async def get_tenant_db(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> AsyncSession:
    """
    Get a DB session for a caller that carries a tenant.
    Queries filter on customer_id explicitly; isolation policy lives upstream.
    """
    if not user.get("customer_id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No customer context",
        )
    return db


def get_detection_client() -> DetectionClient:
    """Detection workflow client built from settings."""
    return DetectionClient.from_settings()
