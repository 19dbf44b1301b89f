# btu_api/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.
"""

from btu_api.schemas.news import (
    ErrorResponse,
    MessageResponse,
    NewsCreateResponse,
    NewsItem,
    NewsListResponse,
    PaginationMeta,
)
from btu_api.schemas.status import HealthResponse, StorageStatus

__all__ = [
    "ErrorResponse",
    "MessageResponse",
    "NewsCreateResponse",
    "NewsItem",
    "NewsListResponse",
    "PaginationMeta",
    "HealthResponse",
    "StorageStatus",
]
