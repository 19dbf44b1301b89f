# btu_api/schemas/news.py
"""
News feed API schemas.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class NewsItem(BaseModel):
    """A news post as returned to clients. image_url is always a proxy path or null."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    text: str | None = None
    image_url: str | None = Field(None, description="Proxy path (/proxy-image/{token}) or null")
    created_at: datetime


class PaginationMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_page: int = Field(..., alias="currentPage")
    total_pages: int = Field(..., alias="totalPages")
    total_items: int = Field(..., alias="totalItems")


class NewsListResponse(BaseModel):
    data: list[NewsItem]
    pagination: PaginationMeta


class NewsCreateResponse(BaseModel):
    message: str
    news: NewsItem


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Body of every error response."""

    message: str
    error: str = Field(..., description="Stable machine-readable error kind")
