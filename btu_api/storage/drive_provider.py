# btu_api/storage/drive_provider.py
"""
Google Drive storage provider (Drive API v3).

Uploads go into a single public-read folder; each file also gets its own
public-read permission. Blob tokens are Drive file ids.
"""

import io
import logging
from collections.abc import AsyncIterator

from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload, MediaIoBaseUpload

from btu_api.config import get_settings
from btu_api.logging_config import log_storage_operation
from btu_api.storage.base import (
    BlobMetadata,
    BlobNotFoundError,
    BlobRef,
    StorageError,
    StorageProvider,
    StorageUnavailableError,
    TransferFailedError,
    guess_image_mime,
    run_blocking,
)
from btu_api.storage.credentials import AuthHandle, CredentialResolver
from btu_api.storage.lazy import LazyCell

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
PUBLIC_READER = {"role": "reader", "type": "anyone"}
DOWNLOAD_CHUNK_SIZE = 256 * 1024

# Drive answers 400 for malformed ids and 404 for unknown ones
_MISSING_STATUSES = (400, 404)


def _http_status(error: HttpError) -> int | None:
    resp = getattr(error, "resp", None)
    status = getattr(resp, "status", None)
    return int(status) if status is not None else None


class DriveStorageProvider(StorageProvider):
    """
    Google Drive storage provider.

    Configuration via settings:
    - GOOGLE_* credential sources (see credentials.py)
    - DRIVE_FOLDER_NAME: upload folder (default: BTU_News_Images)
    """

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        folder_name: str | None = None,
    ):
        settings = get_settings()
        self._resolver = resolver or CredentialResolver(settings)
        self._folder_name = folder_name or settings.DRIVE_FOLDER_NAME
        self._folder: LazyCell[str] = LazyCell(self._locate_or_create_folder)

        logger.info(f"Drive storage configured: folder={self._folder_name}")

    @property
    def name(self) -> str:
        return "drive"

    async def _handle(self) -> AuthHandle:
        handle = await self._resolver.resolve()
        if handle is None:
            raise StorageUnavailableError()
        return handle

    async def is_available(self) -> bool:
        return await self._resolver.resolve() is not None

    async def principal(self) -> str | None:
        handle = await self._resolver.resolve()
        return handle.principal if handle else None

    # -- container ----------------------------------------------------------

    async def ensure_container(self) -> str:
        return await self._folder.get()

    async def _locate_or_create_folder(self) -> str:
        handle = await self._handle()
        folder_name = self._folder_name

        def _work() -> tuple[str, bool]:
            drive = handle.drive()
            escaped = folder_name.replace("\\", "\\\\").replace("'", "\\'")
            response = drive.files().list(
                q=f"mimeType='{FOLDER_MIME_TYPE}' and name='{escaped}' and trashed=false",
                fields="files(id, name)",
                spaces="drive",
            ).execute()
            existing = response.get("files", [])
            if existing:
                return existing[0]["id"], False

            folder = drive.files().create(
                body={"name": folder_name, "mimeType": FOLDER_MIME_TYPE},
                fields="id",
            ).execute()
            folder_id = folder["id"]
            drive.permissions().create(fileId=folder_id, body=PUBLIC_READER).execute()
            return folder_id, True

        try:
            folder_id, created = await run_blocking(_work)
        except (HttpError, GoogleAuthError, OSError) as e:
            logger.error(f"Failed to ensure Drive folder '{folder_name}': {e}")
            raise StorageError("Failed to prepare upload folder") from e

        if created:
            logger.info(f"Created Drive upload folder {folder_id}")
        else:
            logger.info(f"Using existing Drive upload folder {folder_id}")
        return folder_id

    # -- blobs --------------------------------------------------------------

    async def put(self, content: bytes, filename: str, mime_type: str | None = None) -> BlobRef:
        handle = await self._handle()
        mime_type = mime_type or guess_image_mime(filename)

        def _upload(folder_id: str) -> str:
            drive = handle.drive()
            media = MediaIoBaseUpload(io.BytesIO(content), mimetype=mime_type, resumable=False)
            created = drive.files().create(
                body={"name": filename, "parents": [folder_id], "mimeType": mime_type},
                media_body=media,
                fields="id",
            ).execute()
            file_id = created["id"]
            try:
                drive.permissions().create(fileId=file_id, body=PUBLIC_READER).execute()
            except HttpError:
                # Do not leave a private, unreferenced file behind
                drive.files().delete(fileId=file_id).execute()
                raise
            return file_id

        with log_storage_operation("put", self.name, filename) as metrics:
            folder_id = await self.ensure_container()
            try:
                file_id = await run_blocking(_upload, folder_id)
            except HttpError as e:
                if _http_status(e) != 404:
                    raise TransferFailedError() from e
                # Cached folder was deleted out from under us; locate or recreate it once
                logger.warning(f"Drive upload folder {folder_id} is gone; locating it again")
                self._folder.reset()
                folder_id = await self.ensure_container()
                try:
                    file_id = await run_blocking(_upload, folder_id)
                except (HttpError, GoogleAuthError, OSError) as retry_error:
                    raise TransferFailedError() from retry_error
            except (GoogleAuthError, OSError) as e:
                raise TransferFailedError() from e
            metrics["size_bytes"] = len(content)

        logger.info(f"Uploaded {filename} to Drive as {file_id}")
        return BlobRef(token=file_id)

    async def get_metadata(self, token: str) -> BlobMetadata:
        handle = await self._handle()

        def _get() -> dict:
            return handle.drive().files().get(fileId=token, fields="id, name, mimeType, size").execute()

        try:
            data = await run_blocking(_get)
        except HttpError as e:
            if _http_status(e) in _MISSING_STATUSES:
                raise BlobNotFoundError() from e
            raise StorageError() from e
        except (GoogleAuthError, OSError) as e:
            raise StorageError() from e

        size = data.get("size")
        return BlobMetadata(
            token=data.get("id", token),
            mime_type=data.get("mimeType", ""),
            size_bytes=int(size) if size is not None else None,
            name=data.get("name"),
        )

    async def stream(self, token: str) -> AsyncIterator[bytes]:
        handle = await self._handle()
        drive = await run_blocking(handle.drive)
        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, drive.files().get_media(fileId=token), chunksize=DOWNLOAD_CHUNK_SIZE)

        done = False
        while not done:
            try:
                _, done = await run_blocking(downloader.next_chunk)
            except HttpError as e:
                if _http_status(e) in _MISSING_STATUSES:
                    raise BlobNotFoundError() from e
                raise StorageError() from e
            except (GoogleAuthError, OSError) as e:
                raise StorageError() from e
            chunk = buffer.getvalue()
            buffer.seek(0)
            buffer.truncate(0)
            if chunk:
                yield chunk

    async def delete(self, token: str) -> bool:
        handle = await self._handle()

        def _delete() -> None:
            handle.drive().files().delete(fileId=token).execute()

        with log_storage_operation("delete", self.name, token):
            try:
                await run_blocking(_delete)
            except HttpError as e:
                if _http_status(e) in _MISSING_STATUSES:
                    logger.info(f"Drive file {token} already absent")
                    return False
                raise StorageError() from e
            except (GoogleAuthError, OSError) as e:
                raise StorageError() from e

        logger.info(f"Deleted Drive file {token}")
        return True
