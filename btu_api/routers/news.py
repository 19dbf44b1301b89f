# btu_api/routers/news.py
"""
News feed endpoints.

GET    /api/news          - Paginated list, newest first
POST   /api/news          - Create a post (multipart: text and/or image)
DELETE /api/news/{id}     - Delete a post and its image
"""

import os
import re

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from btu_api.config import Settings, get_settings
from btu_api.database import get_db
from btu_api.errors import ValidationError
from btu_api.schemas.news import MessageResponse, NewsCreateResponse, NewsListResponse, PaginationMeta
from btu_api.services.news_service import ImageUpload, NewsService
from btu_api.storage.base import StorageProvider
from btu_api.storage.factory import get_storage_provider

router = APIRouter(prefix="/api/news", tags=["news"])

_IMAGE_TYPES_RE = re.compile(r"jpeg|jpg|png|gif")


def get_storage() -> StorageProvider:
    return get_storage_provider()


def get_news_service(
    db: AsyncSession = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> NewsService:
    return NewsService(db, storage, settings)


async def read_image_upload(image: UploadFile | None, max_bytes: int) -> ImageUpload | None:
    """
    Apply the upload filter to a multipart file part.

    Returns None for an absent or empty part. Both the filename extension and
    the declared content type must name an accepted image type.
    """
    if image is None or not image.filename:
        return None

    extension = os.path.splitext(image.filename)[1].lower()
    content_type = (image.content_type or "").lower()
    if not _IMAGE_TYPES_RE.fullmatch(extension.lstrip(".")) or not _IMAGE_TYPES_RE.search(content_type):
        raise ValidationError("Only image files are allowed (jpeg, jpg, png, gif)")

    # One byte past the limit is enough to know it's too large
    content = await image.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise ValidationError(f"Image exceeds the {max_bytes // (1024 * 1024)}MB limit")
    if not content:
        return None

    return ImageUpload(content=content, extension=extension)


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.get("", response_model=NewsListResponse)
async def list_news(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: NewsService = Depends(get_news_service),
) -> NewsListResponse:
    """List news posts, newest first."""
    result = await service.list_page(page, limit)
    return NewsListResponse(
        data=result.items,
        pagination=PaginationMeta(
            current_page=result.page,
            total_pages=result.total_pages,
            total_items=result.total_items,
        ),
    )


@router.post("", response_model=NewsCreateResponse, status_code=201)
async def create_news(
    text: str | None = Form(None),
    image: UploadFile | None = File(None),
    service: NewsService = Depends(get_news_service),
    settings: Settings = Depends(get_settings),
) -> NewsCreateResponse:
    """Create a news post with text, an image, or both."""
    upload = await read_image_upload(image, settings.MAX_IMAGE_BYTES)
    news = await service.create(text, upload)
    return NewsCreateResponse(message="News added successfully", news=news)


@router.delete("/{news_id}", response_model=MessageResponse)
async def delete_news(
    news_id: int,
    service: NewsService = Depends(get_news_service),
) -> MessageResponse:
    """Delete a news post. Its image is removed best effort."""
    await service.delete(news_id)
    return MessageResponse(message="News deleted successfully")
