"""Tests for NewsService: keeping news rows and image blobs consistent."""

import asyncio
import re
import time
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from btu_api.errors import NotFoundError, StoreError, ValidationError
from btu_api.models import News
from btu_api.services.news_service import ImageUpload, NewsService, generate_filename, sanitize_text
from btu_api.storage.base import TransferFailedError, UploadUnavailableError, run_blocking

DRIVE_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz_0123"
PNG = ImageUpload(content=b"\x89PNG\r\n\x1a\n", extension=".png")


@pytest.fixture
def service(db, storage, settings):
    return NewsService(db, storage, settings)


async def count_rows(db) -> int:
    return await db.scalar(select(func.count()).select_from(News))


async def add_row(db, **values) -> News:
    row = News(**values)
    db.add(row)
    await db.commit()
    return row


class TestHelpers:
    def test_sanitize_strips_markup_characters(self):
        assert sanitize_text("  <b>Funeral notice</b>; 'today' \"noon\"  ") == "bFuneral notice/b today noon"

    @pytest.mark.parametrize("text", [None, "", "   ", "<>;'\""])
    def test_sanitize_empty_is_none(self, text):
        assert sanitize_text(text) is None

    def test_generated_filename(self):
        name = generate_filename(".PNG")
        assert re.fullmatch(r"news-\d{13}-\d{1,9}\.png", name)

    def test_generated_filenames_differ(self):
        assert len({generate_filename(".jpg") for _ in range(50)}) == 50


class TestCreate:
    @pytest.mark.asyncio
    async def test_text_only(self, service, storage, db):
        news = await service.create("Meeting on Sunday")

        assert news.text == "Meeting on Sunday"
        assert news.image_url is None
        assert storage.calls == []
        assert await count_rows(db) == 1

    @pytest.mark.asyncio
    async def test_with_image(self, service, storage, db):
        news = await service.create("Notice", PNG)

        (token,) = storage.blobs
        assert news.image_url == f"/proxy-image/{token}"
        row = await db.get(News, news.id)
        assert row.image_url == f"/proxy-image/{token}"
        assert storage.blobs[token] == ("image/png", PNG.content)

    @pytest.mark.asyncio
    async def test_image_only(self, service, storage):
        news = await service.create(None, PNG)
        assert news.text is None
        assert news.image_url.startswith("/proxy-image/")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [None, "", "  ", "<;>"])
    async def test_validation_gate(self, service, storage, db, text):
        with pytest.raises(ValidationError):
            await service.create(text, None)

        assert storage.calls == []
        assert await count_rows(db) == 0

    @pytest.mark.asyncio
    async def test_unavailable_degrades_to_no_image(self, service, storage, db):
        storage.available = False

        news = await service.create("Notice", PNG)
        assert news.image_url is None
        assert await count_rows(db) == 1

        image_only = await service.create(None, PNG)
        assert image_only.image_url is None
        assert not storage.blobs

    @pytest.mark.asyncio
    async def test_unavailable_fails_when_configured(self, db, storage, settings):
        storage.available = False
        strict = settings.model_copy(update={"IMAGE_UPLOAD_UNAVAILABLE_POLICY": "fail"})
        service = NewsService(db, storage, strict)

        with pytest.raises(UploadUnavailableError):
            await service.create("Notice", PNG)
        assert await count_rows(db) == 0

    @pytest.mark.asyncio
    async def test_transfer_failure_is_not_degraded(self, service, storage, db):
        storage.fail_put = True

        with pytest.raises(TransferFailedError):
            await service.create("Notice", PNG)
        assert await count_rows(db) == 0

    @pytest.mark.asyncio
    async def test_upload_timeout(self, db, storage, settings):
        upload = storage.put

        async def slow_put(content, filename, mime_type=None):
            await run_blocking(time.sleep, 0.3)
            return await upload(content, filename, mime_type)

        storage.put = slow_put
        quick = settings.model_copy(update={"UPLOAD_TIMEOUT_SECONDS": 0.05})

        with pytest.raises(TransferFailedError):
            await NewsService(db, storage, quick).create("Notice", PNG)
        assert await count_rows(db) == 0

        # The upload still lands after the request gave up; it must not stay orphaned
        await asyncio.sleep(0.6)
        assert storage.blobs == {}
        assert [op for op, _ in storage.calls] == ["put", "delete"]

    @pytest.mark.asyncio
    async def test_late_upload_failure_needs_no_cleanup(self, db, storage, settings):
        async def slow_failing_put(content, filename, mime_type=None):
            await asyncio.sleep(0.2)
            raise TransferFailedError()

        storage.put = slow_failing_put
        quick = settings.model_copy(update={"UPLOAD_TIMEOUT_SECONDS": 0.05})

        with pytest.raises(TransferFailedError):
            await NewsService(db, storage, quick).create("Notice", PNG)

        await asyncio.sleep(0.4)
        assert storage.calls == []


class TestCompensatingDelete:
    def failing_session(self):
        session = MagicMock()
        session.commit = AsyncMock(side_effect=OperationalError("INSERT INTO news", {}, Exception("disk full")))
        session.rollback = AsyncMock()
        return session

    @pytest.mark.asyncio
    async def test_failed_insert_removes_uploaded_blob(self, storage, settings):
        session = self.failing_session()

        with pytest.raises(StoreError):
            await NewsService(session, storage, settings).create("Notice", PNG)

        session.rollback.assert_awaited_once()
        assert storage.blobs == {}
        assert [op for op, _ in storage.calls] == ["put", "delete"]

    @pytest.mark.asyncio
    async def test_failed_compensation_still_reports_store_error(self, storage, settings):
        storage.fail_delete = True

        with pytest.raises(StoreError):
            await NewsService(self.failing_session(), storage, settings).create("Notice", PNG)

    @pytest.mark.asyncio
    async def test_failed_text_insert_touches_no_storage(self, storage, settings):
        with pytest.raises(StoreError):
            await NewsService(self.failing_session(), storage, settings).create("Notice")
        assert storage.calls == []


class TestListPage:
    @pytest.mark.asyncio
    async def test_pages_partition_rows(self, service, db):
        tied = datetime(2024, 5, 1, 12, 0, 0)
        for i in range(25):
            await add_row(db, text=f"post {i}", created_at=tied)

        pages = [await service.list_page(page, 10) for page in (1, 2, 3)]
        ids = [item.id for page in pages for item in page.items]

        assert [len(p.items) for p in pages] == [10, 10, 5]
        assert len(set(ids)) == 25
        assert ids == sorted(ids, reverse=True)
        assert all(p.total_pages == 3 and p.total_items == 25 for p in pages)

        beyond = await service.list_page(4, 10)
        assert beyond.items == []
        assert beyond.page == 4

    @pytest.mark.asyncio
    async def test_newest_first(self, service, db):
        await add_row(db, text="old", created_at=datetime(2023, 1, 1))
        await add_row(db, text="new", created_at=datetime(2024, 1, 1))

        page = await service.list_page(1, 10)
        assert [item.text for item in page.items] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_empty(self, service):
        page = await service.list_page(1, 10)
        assert page.items == []
        assert page.total_pages == 0
        assert page.total_items == 0

    @pytest.mark.asyncio
    async def test_every_format_normalized(self, service, db):
        await add_row(db, text="proxy", image_url=f"/proxy-image/{DRIVE_ID}")
        await add_row(db, text="bare", image_url=DRIVE_ID)
        await add_row(db, text="drive link", image_url=f"https://drive.google.com/uc?export=view&id={DRIVE_ID}")
        await add_row(db, text="old host", image_url="https://old-host.example/uploads/news-1.png")
        await add_row(db, text="none", image_url=None)

        items = {item.text: item.image_url for item in (await service.list_page(1, 10)).items}
        assert items == {
            "proxy": f"/proxy-image/{DRIVE_ID}",
            "bare": f"/proxy-image/{DRIVE_ID}",
            "drive link": None,
            "old host": None,
            "none": None,
        }


class TestDelete:
    @pytest.mark.asyncio
    async def test_removes_row_and_blob(self, service, storage, db):
        news = await service.create("Notice", PNG)

        await service.delete(news.id)

        assert storage.blobs == {}
        assert await db.get(News, news.id) is None

    @pytest.mark.asyncio
    async def test_missing(self, service):
        with pytest.raises(NotFoundError):
            await service.delete(999)

    @pytest.mark.asyncio
    async def test_blob_failure_does_not_block(self, service, storage, db):
        news = await service.create("Notice", PNG)
        storage.fail_delete = True

        await service.delete(news.id)
        assert await count_rows(db) == 0

    @pytest.mark.asyncio
    async def test_unavailable_storage_does_not_block(self, service, storage, db):
        news = await service.create("Notice", PNG)
        storage.available = False

        await service.delete(news.id)
        assert await count_rows(db) == 0

    @pytest.mark.asyncio
    async def test_already_gone_blob(self, service, storage, db):
        row = await add_row(db, text="orphan ref", image_url=f"/proxy-image/{DRIVE_ID}")

        await service.delete(row.id)
        assert ("delete", DRIVE_ID) in storage.calls
        assert await count_rows(db) == 0

    @pytest.mark.asyncio
    async def test_legacy_drive_link_deletes_by_id(self, service, storage, db):
        row = await add_row(db, image_url=f"https://drive.google.com/uc?export=view&id={DRIVE_ID}")

        await service.delete(row.id)
        assert ("delete", DRIVE_ID) in storage.calls

    @pytest.mark.asyncio
    async def test_legacy_host_url_deletes_uploaded_file(self, service, storage, db):
        filename = "news-1700000000000-123456789.jpg"
        storage.blobs[filename] = ("image/jpeg", b"\xff\xd8")
        row = await add_row(db, image_url=f"https://btu.example.org/uploads/news/{filename}")

        await service.delete(row.id)
        assert ("delete", filename) in storage.calls
        assert storage.blobs == {}
        assert await count_rows(db) == 0

    @pytest.mark.asyncio
    async def test_legacy_drive_view_link_deletes_by_id(self, service, storage, db):
        row = await add_row(db, image_url=f"https://drive.google.com/file/d/{DRIVE_ID}/view")

        await service.delete(row.id)
        assert ("delete", DRIVE_ID) in storage.calls


class TestNoOrphans:
    @pytest.mark.asyncio
    async def test_blobs_match_rows(self, service, storage, db):
        created = [await service.create(f"post {i}", PNG) for i in range(4)]
        await service.create("text only")
        await service.delete(created[0].id)

        storage.fail_put = True
        with pytest.raises(TransferFailedError):
            await service.create("broken", PNG)

        referenced = await db.scalars(select(News.image_url).where(News.image_url.is_not(None)))
        assert {f"/proxy-image/{token}" for token in storage.blobs} == set(referenced.all())
