from datetime import datetime, timedelta
from unittest.mock import AsyncMock
import uuid

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from core.exceptions import DatabaseConnectionError, DatabaseError, RetryableError
from models.base import JobStatus, JobType, PackageStatus
from worker.store import RecordStore


class TestJobQueries:

    @pytest.mark.asyncio
    async def test_empty_queue(self, db_session):
        assert await RecordStore(db_session).fetch_next_pending_job() is None

    @pytest.mark.asyncio
    async def test_oldest_pending_render_job_first(self, db_session, package_factory, job_factory):
        package, _ = await package_factory([1])
        base = datetime(2024, 3, 1, 9, 0, 0)

        await job_factory(package, status=JobStatus.SUCCEEDED, created_at=base)
        await job_factory(package, job_type=JobType.EXTRACT_METADATA, created_at=base + timedelta(minutes=1))
        newer = await job_factory(package, created_at=base + timedelta(minutes=3))
        older = await job_factory(package, created_at=base + timedelta(minutes=2))

        job = await RecordStore(db_session).fetch_next_pending_job(JobType.RENDER_PACKAGE)
        assert job.id == older.id
        assert job.id != newer.id

    @pytest.mark.asyncio
    async def test_claim_is_conditional(self, db_session, session_factory, package_factory, job_factory):
        package, _ = await package_factory([1])
        job = await job_factory(package)

        async with session_factory() as first, session_factory() as second:
            assert await RecordStore(first).claim_job(job.id) is True
            assert await RecordStore(second).claim_job(job.id) is False

        claimed = await RecordStore(db_session).get_job(job.id)
        assert claimed.status == JobStatus.RUNNING
        assert claimed.progress == 0.0

    @pytest.mark.asyncio
    async def test_terminal_states(self, db_session, package_factory, job_factory):
        package, _ = await package_factory([1])
        ok_job = await job_factory(package)
        bad_job = await job_factory(package)
        store = RecordStore(db_session)

        await store.update_job_progress(ok_job.id, 0.5)
        await store.mark_job_succeeded(ok_job.id)
        await store.mark_job_failed(bad_job.id, "Package not found: x")

        ok_job = await store.get_job(ok_job.id)
        bad_job = await store.get_job(bad_job.id)
        assert (ok_job.status, ok_job.progress, ok_job.error) == (JobStatus.SUCCEEDED, 1.0, None)
        assert (bad_job.status, bad_job.error) == (JobStatus.FAILED, "Package not found: x")

    @pytest.mark.asyncio
    async def test_enqueue_render_job(self, db_session, package_factory):
        package, _ = await package_factory([1])
        store = RecordStore(db_session)

        job = await store.enqueue_render_job(package.project_id, package.created_by, package.id)

        assert job.status == JobStatus.PENDING
        assert job.type == JobType.RENDER_PACKAGE
        assert job.payload == {"packageId": str(package.id)}
        assert (await store.get_package(package.id)).status == PackageStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_count_jobs_by_status(self, db_session, package_factory, job_factory):
        package, _ = await package_factory([1])
        await job_factory(package)
        await job_factory(package)
        await job_factory(package, status=JobStatus.FAILED)

        counts = await RecordStore(db_session).count_jobs_by_status()
        assert counts == {"pending": 2, "failed": 1}


class TestDocumentAndSheetQueries:

    @pytest.mark.asyncio
    async def test_documents_in_upload_order(self, db_session, package_factory):
        package, documents = await package_factory([1, 1, 1])

        listed = await RecordStore(db_session).list_documents(package.id)
        assert [d.id for d in listed] == [d.id for d in documents]

    @pytest.mark.asyncio
    async def test_unknown_package(self, db_session):
        store = RecordStore(db_session)
        assert await store.get_package(uuid.uuid4()) is None
        assert await store.list_documents(uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_page_count(self, db_session, package_factory):
        package, (document,) = await package_factory([1])
        store = RecordStore(db_session)

        await store.set_document_page_count(document.id, 12)

        (listed,) = await store.list_documents(package.id)
        assert listed.page_count == 12

    @pytest.mark.asyncio
    async def test_sheet_lifecycle(self, db_session, package_factory):
        package, (doc_a, doc_b) = await package_factory([1, 1])
        store = RecordStore(db_session)

        for index in range(3):
            await store.insert_sheet(doc_a.id, package.id, index)
        other = await store.insert_sheet(doc_b.id, package.id, 0)
        await store.update_sheet(other.id, image_path="o/p/k/s/page.png", width_px=1224, height_px=1584)

        assert [s.page_index for s in await store.list_sheets(doc_a.id)] == [0, 1, 2]
        assert await store.count_sheets(package_id=package.id) == 4
        assert await store.count_sheets(document_id=doc_a.id) == 3

        assert await store.delete_sheets_for_document(doc_a.id) == 3
        assert await store.list_sheets(doc_a.id) == []

        (kept,) = await store.list_sheets(doc_b.id)
        assert (kept.image_path, kept.width_px, kept.height_px) == ("o/p/k/s/page.png", 1224, 1584)
        assert kept.thumb_path is None

    @pytest.mark.asyncio
    async def test_failed_write_raises_database_error(self, db_session):
        store = RecordStore(db_session)
        db_session.execute = AsyncMock(side_effect=OperationalError("UPDATE jobs", {}, Exception("db gone")))
        db_session.rollback = AsyncMock()

        with pytest.raises(DatabaseError) as exc_info:
            await store.mark_job_failed(uuid.uuid4(), "boom")

        assert exc_info.value.context["table_name"] == "jobs"
        assert isinstance(exc_info.value, DatabaseConnectionError)
        assert isinstance(exc_info.value, RetryableError)
        db_session.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_constraint_violation_is_not_retryable(self, db_session):
        store = RecordStore(db_session)
        db_session.execute = AsyncMock(side_effect=IntegrityError("UPDATE jobs", {}, Exception("constraint")))
        db_session.rollback = AsyncMock()

        with pytest.raises(DatabaseError) as exc_info:
            await store.update_job_progress(uuid.uuid4(), 0.5)

        assert not isinstance(exc_info.value, DatabaseConnectionError)
        assert isinstance(exc_info.value.original_exception, IntegrityError)

    @pytest.mark.asyncio
    async def test_duplicate_page_is_rejected(self, db_session, package_factory):
        package, (document,) = await package_factory([2])
        store = RecordStore(db_session)
        first = await store.insert_sheet(document.id, package.id, 0)

        with pytest.raises(DatabaseError) as exc_info:
            await store.insert_sheet(document.id, package.id, 0)
        assert exc_info.value.context["page_index"] == 0

        await store.insert_sheet(document.id, package.id, 1)
        assert (await store.list_sheets(document.id))[0].id == first.id
        assert await store.count_sheets(document_id=document.id) == 2
