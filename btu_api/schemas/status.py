# btu_api/schemas/status.py
"""
Health and storage status schemas.
"""

from pydantic import BaseModel


class StorageStatus(BaseModel):
    backend: str
    available: bool
    principal: str | None = None


class HealthResponse(BaseModel):
    status: str
    database: str
    storage: StorageStatus
    environment: str
