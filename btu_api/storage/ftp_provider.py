# btu_api/storage/ftp_provider.py
"""
Legacy FTP host storage provider.

Mimics the object-store contract on top of a shared web host: blobs are files
in a fixed nested directory, and the blob token is the generated filename.
Each operation opens its own FTP session; ftplib is blocking, so sessions run
in the default executor.
"""

import ftplib
import io
import logging
import mimetypes
import os
import tempfile
from collections.abc import AsyncIterator, Callable
from contextlib import contextmanager

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from btu_api.config import get_settings
from btu_api.logging_config import log_storage_operation
from btu_api.storage.base import (
    STREAM_CHUNK_SIZE,
    BlobMetadata,
    BlobNotFoundError,
    BlobRef,
    StorageError,
    StorageProvider,
    StorageUnavailableError,
    TransferFailedError,
    run_blocking,
)
from btu_api.storage.lazy import LazyCell

logger = logging.getLogger(__name__)


class _VerificationError(Exception):
    """Uploaded file did not show up in the directory listing."""


def _is_missing(error: ftplib.Error) -> bool:
    return str(error).startswith("550")


class FTPStorageProvider(StorageProvider):
    """
    FTP/FTPS storage provider.

    Configuration via settings:
    - FTP_HOST, FTP_PORT, FTP_USER, FTP_PASSWORD, FTP_USE_TLS
    - FTP_REMOTE_DIR: nested upload directory, created component by component
    - FTP_TIMEOUT_SECONDS: connect/transfer timeout
    - FTP_TRANSFER_ATTEMPTS, FTP_RETRY_WAIT_SECONDS: bounded fixed-backoff retry
    - PUBLIC_DOMAIN: web host serving the upload directory
    """

    def __init__(
        self,
        host: str | None = None,
        user: str | None = None,
        password: str | None = None,
        remote_dir: str | None = None,
        ftp_factory: Callable[[], ftplib.FTP] | None = None,
    ):
        settings = get_settings()
        self._host = host or settings.FTP_HOST
        self._port = settings.FTP_PORT
        self._user = user or settings.FTP_USER
        self._password = password if password is not None else settings.FTP_PASSWORD
        self._remote_dir = remote_dir or settings.FTP_REMOTE_DIR
        self._use_tls = settings.FTP_USE_TLS
        self._timeout = settings.FTP_TIMEOUT_SECONDS
        self._attempts = settings.FTP_TRANSFER_ATTEMPTS
        self._retry_wait = settings.FTP_RETRY_WAIT_SECONDS
        self._public_domain = settings.PUBLIC_DOMAIN
        self._ftp_factory = ftp_factory
        self._container: LazyCell[str] = LazyCell(self._bootstrap_directory)

        if self.configured:
            logger.info(f"FTP storage configured: host={self._host} dir={self._remote_dir}")
        else:
            logger.warning("FTP storage selected but FTP_HOST/FTP_USER are not set. Image uploads are disabled.")

    @property
    def name(self) -> str:
        return "ftp"

    @property
    def configured(self) -> bool:
        return bool(self._host and self._user)

    async def is_available(self) -> bool:
        if not self.configured:
            return False
        try:
            await self.ensure_container()
            return True
        except StorageError as e:
            logger.warning(f"FTP storage not available: {type(e).__name__}")
            return False

    async def principal(self) -> str | None:
        return self._user

    def public_url(self, token: str) -> str | None:
        """Direct web URL of a blob on the public host, if PUBLIC_DOMAIN is set."""
        if not self._public_domain:
            return None
        domain = self._public_domain.removeprefix("https://").removeprefix("http://").strip("/")
        web_dir = self._remote_dir.strip("/")
        if web_dir == "public_html":
            web_dir = ""
        web_dir = web_dir.removeprefix("public_html/")
        path = f"{web_dir}/{token}" if web_dir else token
        return f"https://{domain}/{path}"

    # -- sessions -----------------------------------------------------------

    def _connect(self) -> ftplib.FTP:
        if self._ftp_factory is not None:
            ftp = self._ftp_factory()
        elif self._use_tls:
            ftp = ftplib.FTP_TLS(timeout=self._timeout)
        else:
            ftp = ftplib.FTP(timeout=self._timeout)

        ftp.connect(self._host, self._port, timeout=self._timeout)
        try:
            ftp.login(self._user, self._password or "")
        except ftplib.error_perm as e:
            ftp.close()
            logger.warning(f"FTP login rejected for {self._user}@{self._host}: {e}")
            raise StorageUnavailableError() from e
        if isinstance(ftp, ftplib.FTP_TLS):
            ftp.prot_p()
        return ftp

    @contextmanager
    def _session(self):
        if not self.configured:
            raise StorageUnavailableError()
        ftp = self._connect()
        try:
            yield ftp
        finally:
            try:
                ftp.quit()
            except ftplib.all_errors:
                ftp.close()

    @staticmethod
    def _check_token(token: str) -> str:
        """Tokens are bare filenames inside the container; anything else cannot resolve."""
        if not token or "/" in token or "\\" in token or token in (".", ".."):
            raise BlobNotFoundError()
        return token

    # -- container ----------------------------------------------------------

    async def ensure_container(self) -> str:
        return await self._container.get()

    async def _bootstrap_directory(self) -> str:
        if not self.configured:
            raise StorageUnavailableError()
        try:
            path = await run_blocking(self._walk_remote_dir)
        except ftplib.all_errors as e:
            logger.error(f"Failed to ensure FTP directory {self._remote_dir}: {e}")
            raise StorageError("Failed to prepare upload folder") from e
        logger.info(f"Using FTP upload directory {path}")
        return path

    def _walk_remote_dir(self) -> str:
        """Enter FTP_REMOTE_DIR one component at a time, creating what is missing."""
        with self._session() as ftp:
            if self._remote_dir.startswith("/"):
                ftp.cwd("/")
            for part in [p for p in self._remote_dir.split("/") if p]:
                try:
                    ftp.cwd(part)
                    continue
                except ftplib.error_perm:
                    pass
                try:
                    ftp.mkd(part)
                except ftplib.error_perm as e:
                    # Another process created it first
                    if not _is_missing(e):
                        raise
                ftp.cwd(part)
            return ftp.pwd()

    # -- blobs --------------------------------------------------------------

    async def put(self, content: bytes, filename: str, mime_type: str | None = None) -> BlobRef:
        self._check_token(filename)
        container = await self.ensure_container()

        with log_storage_operation("put", self.name, filename) as metrics:
            await run_blocking(self._put_blocking, content, filename, container)
            metrics["size_bytes"] = len(content)

        ref = BlobRef(token=filename, public_url=self.public_url(filename))
        logger.info(f"Uploaded {filename} to FTP host ({ref.public_url or container})")
        return ref

    def _put_blocking(self, content: bytes, filename: str, container: str) -> None:
        suffix = os.path.splitext(filename)[1]
        fd, staging_path = tempfile.mkstemp(prefix="upload-", suffix=suffix)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)

            retryer = Retrying(
                stop=stop_after_attempt(self._attempts),
                wait=wait_fixed(self._retry_wait),
                retry=retry_if_exception_type(ftplib.all_errors + (_VerificationError,)),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            )
            try:
                retryer(self._transfer_once, staging_path, filename, container)
            except ftplib.all_errors + (_VerificationError,) as e:
                logger.error(f"FTP upload of {filename} failed after {self._attempts} attempts: {e}")
                raise TransferFailedError() from e
        finally:
            try:
                os.unlink(staging_path)
            except OSError as e:
                logger.warning(f"Could not remove staging file {staging_path}: {e}")

    def _transfer_once(self, staging_path: str, filename: str, container: str) -> None:
        with self._session() as ftp:
            ftp.cwd(container)
            with open(staging_path, "rb") as f:
                ftp.storbinary(f"STOR {filename}", f)

            try:
                listing = ftp.nlst()
            except ftplib.error_perm as e:
                # Some servers answer 550 for an empty listing
                if not _is_missing(e):
                    raise
                listing = []
            if filename not in {os.path.basename(name) for name in listing}:
                raise _VerificationError(f"{filename} not present after upload")

    async def get_metadata(self, token: str) -> BlobMetadata:
        self._check_token(token)
        container = await self.ensure_container()

        def _size() -> int | None:
            with self._session() as ftp:
                ftp.cwd(container)
                ftp.voidcmd("TYPE I")
                return ftp.size(token)

        try:
            size = await run_blocking(_size)
        except ftplib.error_perm as e:
            if _is_missing(e):
                raise BlobNotFoundError() from e
            raise StorageError() from e
        except ftplib.all_errors as e:
            raise StorageError() from e

        mime_type, _ = mimetypes.guess_type(token)
        return BlobMetadata(
            token=token,
            mime_type=mime_type or "application/octet-stream",
            size_bytes=size,
            name=token,
        )

    async def stream(self, token: str) -> AsyncIterator[bytes]:
        self._check_token(token)
        container = await self.ensure_container()

        def _retrieve() -> bytes:
            buffer = io.BytesIO()
            with self._session() as ftp:
                ftp.cwd(container)
                ftp.retrbinary(f"RETR {token}", buffer.write)
            return buffer.getvalue()

        try:
            data = await run_blocking(_retrieve)
        except ftplib.error_perm as e:
            if _is_missing(e):
                raise BlobNotFoundError() from e
            raise StorageError() from e
        except ftplib.all_errors as e:
            raise StorageError() from e

        for start in range(0, len(data), STREAM_CHUNK_SIZE):
            yield data[start:start + STREAM_CHUNK_SIZE]

    async def delete(self, token: str) -> bool:
        self._check_token(token)
        container = await self.ensure_container()

        def _delete() -> None:
            with self._session() as ftp:
                ftp.cwd(container)
                ftp.delete(token)

        with log_storage_operation("delete", self.name, token):
            try:
                await run_blocking(_delete)
            except ftplib.error_perm as e:
                if _is_missing(e):
                    logger.info(f"FTP file {token} already absent")
                    return False
                raise StorageError() from e
            except ftplib.all_errors as e:
                raise StorageError() from e

        logger.info(f"Deleted FTP file {token}")
        return True
