# btu_api/storage/factory.py
"""
Factory function for creating storage providers.
"""

import logging

from btu_api.config import get_settings
from btu_api.storage.base import StorageProvider

logger = logging.getLogger(__name__)

# Global singleton instance
_storage_provider: StorageProvider | None = None


def get_storage_provider(provider_name: str | None = None, **kwargs) -> StorageProvider:
    """
    Get or create the storage provider instance.

    The backend is chosen once, at first use, from STORAGE_PROVIDER; handlers
    never branch on which one is active.

    Args:
        provider_name: 'drive' or 'ftp' (default from STORAGE_PROVIDER)
        **kwargs: Additional arguments for the provider

    Returns:
        StorageProvider instance (singleton)
    """
    global _storage_provider

    if _storage_provider is not None:
        return _storage_provider

    name = (provider_name or get_settings().STORAGE_PROVIDER).lower().strip()

    if name == "drive":
        from btu_api.storage.drive_provider import DriveStorageProvider
        _storage_provider = DriveStorageProvider(**kwargs)
    elif name == "ftp":
        from btu_api.storage.ftp_provider import FTPStorageProvider
        _storage_provider = FTPStorageProvider(**kwargs)
    else:
        raise ValueError(f"Unknown storage provider: {name}. Available: drive, ftp")

    logger.info(f"Storage provider initialized: {_storage_provider.name}")
    return _storage_provider


def set_storage_provider(provider: StorageProvider) -> None:
    """
    Set a custom storage provider (useful for testing).
    """
    global _storage_provider
    _storage_provider = provider


def reset_storage_provider() -> None:
    """
    Reset the storage provider singleton (for testing).
    """
    global _storage_provider
    _storage_provider = None
