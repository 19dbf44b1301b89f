# btu_api/routers/health.py
"""
Health and storage status endpoints.

GET /api/health          - Database round-trip plus storage availability
GET /api/storage/status  - Storage backend, availability and principal
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from btu_api.config import Settings, get_settings
from btu_api.database import get_db, ping
from btu_api.errors import StoreError
from btu_api.routers.news import get_storage
from btu_api.schemas.status import HealthResponse, StorageStatus
from btu_api.storage.base import StorageProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


async def describe_storage(storage: StorageProvider) -> StorageStatus:
    """Availability snapshot; never raises."""
    try:
        available = await storage.is_available()
        principal = await storage.principal() if available else None
    except Exception as e:
        logger.warning(f"Storage status check failed: {type(e).__name__}: {e}")
        available, principal = False, None
    return StorageStatus(backend=storage.name, available=available, principal=principal)


@router.get("/health", response_model=HealthResponse)
async def health(
    db: AsyncSession = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """Report database connectivity and storage availability."""
    try:
        await ping(db)
    except SQLAlchemyError as e:
        logger.error(f"Health check database ping failed: {e}")
        error = StoreError()
        return JSONResponse(
            status_code=error.status_code,
            content={
                "status": "Server running",
                "database": "Disconnected",
                "message": error.message,
                "error": error.error,
            },
        )

    return HealthResponse(
        status="Server running",
        database="Connected",
        storage=await describe_storage(storage),
        environment=settings.ENVIRONMENT,
    )


@router.get("/storage/status", response_model=StorageStatus)
async def storage_status(storage: StorageProvider = Depends(get_storage)) -> StorageStatus:
    """Which backend is active and whether it can be reached."""
    return await describe_storage(storage)
