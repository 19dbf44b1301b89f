# tests/conftest.py
"""
Pytest configuration and fixtures.
"""

import os
import uuid

import pytest
import pytest_asyncio

# Set test environment before any btu_api import reads settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("STORAGE_PROVIDER", "drive")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("FTP_RETRY_WAIT_SECONDS", "0")

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from btu_api.config import Settings, get_settings  # noqa: E402
from btu_api.database import Base, get_db  # noqa: E402
from btu_api.storage.base import (  # noqa: E402
    BlobMetadata,
    BlobNotFoundError,
    BlobRef,
    StorageError,
    StorageProvider,
    StorageUnavailableError,
    TransferFailedError,
    guess_image_mime,
)
from btu_api.storage.factory import reset_storage_provider, set_storage_provider  # noqa: E402



class FakeStorageProvider(StorageProvider):
    """
    In-memory storage backend.

    Flip `available`, `fail_put` or `fail_delete` to simulate backend trouble.
    Every call is recorded in `calls`.
    """

    def __init__(self):
        self.blobs: dict[str, tuple[str, bytes]] = {}
        self.available = True
        self.fail_put = False
        self.fail_delete = False
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return "fake"

    def _require_available(self):
        if not self.available:
            raise StorageUnavailableError()

    async def is_available(self) -> bool:
        return self.available

    async def principal(self) -> str | None:
        return "fake@test.local" if self.available else None

    async def ensure_container(self) -> str:
        self._require_available()
        return "fake-container"

    async def put(self, content: bytes, filename: str, mime_type: str | None = None) -> BlobRef:
        self.calls.append(("put", filename))
        self._require_available()
        if self.fail_put:
            raise TransferFailedError()
        token = uuid.uuid4().hex
        self.blobs[token] = (mime_type or guess_image_mime(filename), content)
        return BlobRef(token=token)

    async def get_metadata(self, token: str) -> BlobMetadata:
        self.calls.append(("get_metadata", token))
        self._require_available()
        if token not in self.blobs:
            raise BlobNotFoundError()
        mime_type, content = self.blobs[token]
        return BlobMetadata(token=token, mime_type=mime_type, size_bytes=len(content))

    async def stream(self, token: str):
        _, content = self.blobs[token]
        for i in range(0, len(content), 16):
            yield content[i:i + 16]

    async def delete(self, token: str) -> bool:
        self.calls.append(("delete", token))
        self._require_available()
        if self.fail_delete:
            raise StorageError("Delete failed")
        return self.blobs.pop(token, None) is not None


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def storage():
    provider = FakeStorageProvider()
    set_storage_provider(provider)
    yield provider
    reset_storage_provider()


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite shared across connections for the duration of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(session_factory, storage, settings):
    from btu_api.main import create_app

    application = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_settings] = lambda: settings
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app):
    """HTTP client against the app; lifespan is not run, so no real DB or backend is touched."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
