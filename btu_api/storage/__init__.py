# btu_api/storage/__init__.py
"""
Storage provider abstraction for news images.

Image bytes live in a remote backend (Google Drive or a legacy FTP host); the
database keeps only a reference. Backend SDK imports stay inside the provider
modules so an unused backend's dependencies are never loaded.
"""

from btu_api.storage.base import (
    BlobMetadata,
    BlobNotFoundError,
    BlobRef,
    NotAnImageError,
    StorageError,
    StorageProvider,
    StorageUnavailableError,
    TransferFailedError,
    UploadUnavailableError,
)
from btu_api.storage.factory import (
    get_storage_provider,
    reset_storage_provider,
    set_storage_provider,
)

__all__ = [
    "StorageProvider",
    "BlobRef",
    "BlobMetadata",
    "StorageError",
    "StorageUnavailableError",
    "UploadUnavailableError",
    "BlobNotFoundError",
    "NotAnImageError",
    "TransferFailedError",
    "get_storage_provider",
    "set_storage_provider",
    "reset_storage_provider",
]
