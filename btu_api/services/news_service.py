# btu_api/services/news_service.py
"""
News record coordination.

Keeps the news table and the image backend consistent:
- create: validate → upload blob → insert row; a failed insert deletes the
  just-uploaded blob before the error surfaces, so no blob is left without
  an owning row
- an upload that outlives its timeout is deleted once it lands
- list: offset pagination, newest first, every image_url normalized
- delete: best-effort blob delete, then the row; blob failures never block
  the row delete
"""

import asyncio
import logging
import math
import re
import secrets
import time
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from btu_api.config import Settings, get_settings
from btu_api.errors import NotFoundError, StoreError, ValidationError
from btu_api.models import News
from btu_api.schemas.news import NewsItem
from btu_api.services.resilience import OperationTimeoutError, with_timeout
from btu_api.storage.base import (
    StorageError,
    StorageProvider,
    StorageUnavailableError,
    TransferFailedError,
    UploadUnavailableError,
    guess_image_mime,
)
from btu_api.storage.references import stored_blob_token, to_external, to_proxy_path

logger = logging.getLogger(__name__)

_UNSAFE_CHARS_RE = re.compile(r"[<>'\";]")

# Cleanup tasks for uploads that finished after their request gave up on them
_background_tasks: set[asyncio.Task] = set()


@dataclass
class ImageUpload:
    """An accepted image file from a multipart request."""
    content: bytes
    extension: str  # including the dot, e.g. ".jpg"


@dataclass
class NewsPage:
    items: list[NewsItem]
    page: int
    total_pages: int
    total_items: int


def sanitize_text(text: str | None) -> str | None:
    """Strip markup/quote characters; empty results count as no text."""
    if text is None:
        return None
    cleaned = _UNSAFE_CHARS_RE.sub("", text).strip()
    return cleaned or None


def generate_filename(extension: str) -> str:
    """news-{epoch ms}-{random}{ext}: unique without any coordination."""
    return f"news-{int(time.time() * 1000)}-{secrets.randbelow(1_000_000_000)}{extension.lower()}"


def to_news_item(row: News) -> NewsItem:
    return NewsItem(
        id=row.id,
        text=row.text,
        image_url=to_external(row.image_url),
        created_at=row.created_at,
    )


class NewsService:
    """Coordinates news rows with their image blobs."""

    def __init__(self, db: AsyncSession, storage: StorageProvider, settings: Settings | None = None):
        self.db = db
        self.storage = storage
        self.settings = settings or get_settings()

    async def create(self, text: str | None, image: ImageUpload | None = None) -> NewsItem:
        """
        Create a news post.

        Raises:
            ValidationError: neither text nor image given (checked before any I/O)
            UploadUnavailableError: storage unavailable and the policy is 'fail'
            TransferFailedError: the upload itself failed
            StoreError: the insert failed (the uploaded blob has been discarded)
        """
        text = sanitize_text(text)
        if not text and image is None:
            raise ValidationError("Either text or image is required")

        token = await self._upload(image) if image is not None else None
        row = News(text=text, image_url=to_proxy_path(token) if token else None)

        try:
            self.db.add(row)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error adding news: {e}", extra={"event": "news_insert_failed"})
            if token:
                logger.warning(
                    f"Discarding uploaded blob {token} after failed insert",
                    extra={"event": "news_compensating_delete", "key": token},
                )
                await self._discard_blob(token)
            raise StoreError("Error adding news") from e

        # The row is committed from here on, so its blob must stay
        try:
            await self.db.refresh(row)
        except SQLAlchemyError as e:
            logger.error(f"Error reading back news {row.id}: {e}")
            raise StoreError("Error adding news") from e

        logger.info(
            f"News {row.id} created (image={'yes' if token else 'no'})",
            extra={"event": "news_created", "news_id": row.id},
        )
        return to_news_item(row)

    async def _upload(self, image: ImageUpload) -> str | None:
        """Upload an image; returns its token, or None when degrading without storage."""
        filename = generate_filename(image.extension)
        put_task = asyncio.ensure_future(self.storage.put(image.content, filename, guess_image_mime(filename)))
        try:
            # Shielded: a timeout must not abandon an upload that may still land
            ref = await with_timeout(
                asyncio.shield(put_task),
                self.settings.UPLOAD_TIMEOUT_SECONDS,
                f"Upload of {filename}",
            )
        except StorageUnavailableError as e:
            if self.settings.degrade_on_unavailable:
                logger.warning(
                    "Image storage unavailable; creating news without image",
                    extra={"event": "image_upload_skipped", "backend": self.storage.name},
                )
                return None
            logger.error("Image storage unavailable; rejecting news with image")
            raise UploadUnavailableError() from e
        except OperationTimeoutError as e:
            put_task.add_done_callback(self._discard_late_upload)
            raise TransferFailedError() from e
        except asyncio.CancelledError:
            put_task.add_done_callback(self._discard_late_upload)
            raise
        except TransferFailedError:
            logger.error(f"Failed to upload image {filename}")
            raise
        except StorageError as e:
            logger.error(f"Failed to upload image {filename}: {type(e).__name__}")
            raise TransferFailedError() from e
        return ref.token

    def _discard_late_upload(self, task: asyncio.Task) -> None:
        """Done-callback: delete a blob whose upload completed after the request failed."""
        if task.cancelled() or task.exception() is not None:
            return
        token = task.result().token
        logger.warning(
            f"Discarding blob {token} uploaded after its request timed out",
            extra={"event": "news_compensating_delete", "key": token},
        )
        cleanup = asyncio.ensure_future(self._discard_blob(token))
        _background_tasks.add(cleanup)
        cleanup.add_done_callback(_background_tasks.discard)

    async def list_page(self, page: int, limit: int) -> NewsPage:
        """Newest first; ties on created_at fall back to id so pages never overlap."""
        try:
            total = await self.db.scalar(select(func.count()).select_from(News)) or 0
            result = await self.db.scalars(
                select(News)
                .order_by(News.created_at.desc(), News.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching news: {e}")
            raise StoreError("Error fetching news") from e

        return NewsPage(
            items=[to_news_item(r) for r in rows],
            page=page,
            total_pages=math.ceil(total / limit),
            total_items=total,
        )

    async def delete(self, news_id: int) -> None:
        """
        Delete a news post and, best effort, its image blob.

        Raises:
            NotFoundError: no such post
            StoreError: the row delete failed
        """
        try:
            row = await self.db.get(News, news_id)
        except SQLAlchemyError as e:
            raise StoreError("Error deleting news") from e
        if row is None:
            raise NotFoundError("News not found")

        token = stored_blob_token(row.image_url)
        if token:
            await self._discard_blob(token)

        try:
            await self.db.delete(row)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error deleting news {news_id}: {e}")
            raise StoreError("Error deleting news") from e

        logger.info(f"News {news_id} deleted", extra={"event": "news_deleted", "news_id": news_id})

    async def _discard_blob(self, token: str) -> bool:
        """Delete a blob, logging and swallowing any backend failure."""
        try:
            return await self.storage.delete(token)
        except StorageUnavailableError:
            logger.warning(f"Skipping delete of blob {token}: storage unavailable")
        except Exception as e:
            logger.warning(f"Error deleting blob {token} (may not exist): {e}", extra={"key": token})
        return False
