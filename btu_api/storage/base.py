# btu_api/storage/base.py
"""
Storage provider interface for news image blobs.

Design principles:
- Image bytes live in a remote backend (Drive or the legacy FTP host), never in the database
- The database stores only a reference (the blob token, encoded as a proxy path)
- Clients never talk to the backend; the API streams blobs through /proxy-image
- Backend SDKs are blocking; providers run them in the default executor
"""

import asyncio
import mimetypes
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from btu_api.errors import AppError

T = TypeVar("T")

IMAGE_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
}

STREAM_CHUNK_SIZE = 64 * 1024


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------


class StorageError(AppError):
    """Generic backend failure."""

    status_code = 500
    error = "storage_error"
    default_message = "Storage backend error"


class StorageUnavailableError(StorageError):
    """Backend is not configured or could not authenticate. Feature is disabled, process keeps running."""

    status_code = 503
    error = "storage_unavailable"
    default_message = "Image service temporarily unavailable"


class UploadUnavailableError(StorageError):
    """Upload refused because storage is unavailable and the deployment does not degrade."""

    status_code = 500
    error = "storage_unavailable"
    default_message = "Failed to upload image: storage is not available"


class BlobNotFoundError(StorageError):
    status_code = 404
    error = "blob_not_found"
    default_message = "Image not found"


class NotAnImageError(StorageError):
    status_code = 400
    error = "not_an_image"
    default_message = "Not an image file"


class TransferFailedError(StorageError):
    """Upload failed after exhausting retries."""

    status_code = 500
    error = "transfer_failed"
    default_message = "Failed to upload image"


# -----------------------------------------------------------------------------
# Data types
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class BlobRef:
    """Reference to a stored blob."""
    token: str  # Drive file id or generated FTP filename
    public_url: str | None = None  # Direct backend URL, informational only


@dataclass(frozen=True)
class BlobMetadata:
    """Metadata about a stored blob, fetched without the body."""
    token: str
    mime_type: str
    size_bytes: int | None = None
    name: str | None = None

    @property
    def is_image(self) -> bool:
        return is_image_mime(self.mime_type)


def is_image_mime(mime_type: str | None) -> bool:
    return bool(mime_type) and mime_type.lower().startswith("image/")


def guess_image_mime(filename: str) -> str:
    """MIME type for an upload filename; unknown extensions fall back to mimetypes."""
    dot = filename.rfind(".")
    ext = filename[dot:].lower() if dot >= 0 else ""
    if ext in IMAGE_MIME_TYPES:
        return IMAGE_MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking SDK call in the default thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


# -----------------------------------------------------------------------------
# Provider interface
# -----------------------------------------------------------------------------


class StorageProvider(ABC):
    """
    Abstract interface for image blob storage.

    Implementations must:
    - Raise StorageUnavailableError (not crash) when unconfigured or unauthenticated
    - Bootstrap their container once per process and reuse it
    - Treat deletion of an absent blob as success-with-False, never an error
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (e.g., 'drive', 'ftp')."""
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """
        Whether the backend is configured and reachable.

        Never raises; a False result is retried on the next call.
        """
        pass

    async def principal(self) -> str | None:
        """Identity the backend authenticates as (for status reporting)."""
        return None

    @abstractmethod
    async def ensure_container(self) -> str:
        """
        Locate or create the folder/directory that scopes all uploads.

        Returns:
            Backend-specific container reference (folder id or directory path)
        """
        pass

    @abstractmethod
    async def put(self, content: bytes, filename: str, mime_type: str | None = None) -> BlobRef:
        """
        Store binary content under the given logical name.

        Raises:
            StorageUnavailableError: backend not configured
            TransferFailedError: upload failed after retries
        """
        pass

    @abstractmethod
    async def get_metadata(self, token: str) -> BlobMetadata:
        """
        Fetch blob metadata without transferring the body.

        Raises:
            BlobNotFoundError: token does not resolve
        """
        pass

    @abstractmethod
    def stream(self, token: str) -> AsyncIterator[bytes]:
        """Yield the blob body in chunks."""
        pass

    @abstractmethod
    async def delete(self, token: str) -> bool:
        """
        Delete a blob.

        Returns:
            True if deleted, False if not found
        """
        pass

    async def get(self, token: str) -> tuple[str, AsyncIterator[bytes]]:
        """
        Resolve a blob for streaming.

        Metadata is checked first so non-image blobs are rejected before any body
        bytes move. The first chunk is then read eagerly: a blob that vanished
        after the metadata call fails here, before any response headers go out.

        Raises:
            BlobNotFoundError, NotAnImageError, StorageUnavailableError
        """
        metadata = await self.get_metadata(token)
        if not metadata.is_image:
            raise NotAnImageError()

        chunks = self.stream(token)
        try:
            first = await anext(chunks)
        except StopAsyncIteration:
            first = b""
        return metadata.mime_type, _chain_chunks(first, chunks)


async def _chain_chunks(first: bytes, rest: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    if first:
        yield first
    async for chunk in rest:
        yield chunk
