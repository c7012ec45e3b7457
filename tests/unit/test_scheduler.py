import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch
import uuid

import pytest

from core.exceptions import DatabaseError, EmptyPackageError, PackageNotFoundError
from models.base import JobType, PackageStatus
from schemas.results import PackageResult
from worker.scheduler import JobScheduler


def _job(job_type=JobType.RENDER_PACKAGE, payload=None):
    package_id = uuid.uuid4()
    job = MagicMock()
    job.id = uuid.uuid4()
    job.type = job_type
    job.created_at = datetime(2024, 1, 15, 10, 0, 0)
    job.payload = payload if payload is not None else {"packageId": str(package_id)}
    return job, package_id


def _mock_store(job=None, claimed=True):
    store = MagicMock()
    store.fetch_next_pending_job = AsyncMock(return_value=job)
    store.claim_job = AsyncMock(return_value=claimed)
    store.mark_job_succeeded = AsyncMock()
    store.mark_job_failed = AsyncMock()
    store.set_package_status = AsyncMock()
    store.rollback = AsyncMock()
    return store


def _scheduler(store, **kwargs) -> JobScheduler:
    session_maker = MagicMock()
    session_maker.return_value.__aenter__.return_value = AsyncMock()
    return JobScheduler(
        session_maker,
        blob_store=MagicMock(),
        store_factory=lambda session: store,
        **kwargs
    )


@pytest.mark.asyncio
async def test_scheduler_initialization():
    scheduler = _scheduler(_mock_store(), poll_interval_ms=250)
    assert scheduler.scheduler is not None
    assert scheduler.poll_interval_ms == 250


@pytest.mark.asyncio
async def test_empty_queue_writes_nothing():
    store = _mock_store(job=None)
    scheduler = _scheduler(store)

    assert await scheduler.poll_once() is False
    store.fetch_next_pending_job.assert_awaited_once_with(JobType.RENDER_PACKAGE)
    store.claim_job.assert_not_called()
    store.mark_job_succeeded.assert_not_called()
    store.mark_job_failed.assert_not_called()


@pytest.mark.asyncio
async def test_store_error_while_polling_is_swallowed():
    store = _mock_store()
    store.fetch_next_pending_job.side_effect = DatabaseError("SELECT on jobs failed")
    scheduler = _scheduler(store)

    assert await scheduler.poll_once() is False
    store.claim_job.assert_not_called()


@pytest.mark.asyncio
async def test_store_error_while_claiming_is_swallowed():
    job, _ = _job()
    store = _mock_store(job)
    store.claim_job.side_effect = DatabaseError("UPDATE on jobs failed")
    scheduler = _scheduler(store)

    handler = AsyncMock()
    with patch.dict(scheduler._handlers, {JobType.RENDER_PACKAGE: handler}):
        assert await scheduler.poll_once() is False
    handler.assert_not_called()


@pytest.mark.asyncio
async def test_lost_claim_skips_job():
    job, _ = _job()
    store = _mock_store(job, claimed=False)
    scheduler = _scheduler(store)

    handler = AsyncMock()
    with patch.dict(scheduler._handlers, {JobType.RENDER_PACKAGE: handler}):
        assert await scheduler.poll_once() is True

    handler.assert_not_called()
    store.mark_job_succeeded.assert_not_called()
    store.mark_job_failed.assert_not_called()


@pytest.mark.asyncio
async def test_successful_job_is_marked_succeeded():
    job, package_id = _job()
    store = _mock_store(job)
    scheduler = _scheduler(store)
    result = PackageResult(package_id=package_id, documents_total=1)

    handler = AsyncMock(return_value=result)
    with patch.dict(scheduler._handlers, {JobType.RENDER_PACKAGE: handler}):
        assert await scheduler.poll_once() is True

    handler.assert_awaited_once_with(store, job)
    store.claim_job.assert_awaited_once_with(job.id)
    store.mark_job_succeeded.assert_awaited_once_with(job.id)
    store.mark_job_failed.assert_not_called()


@pytest.mark.asyncio
async def test_failed_job_marks_job_and_package_failed():
    job, package_id = _job()
    store = _mock_store(job)
    scheduler = _scheduler(store)
    error = EmptyPackageError("No documents found for package")

    with patch.dict(scheduler._handlers, {JobType.RENDER_PACKAGE: AsyncMock(side_effect=error)}):
        assert await scheduler.poll_once() is True

    store.rollback.assert_awaited()
    store.mark_job_failed.assert_awaited_once_with(job.id, "No documents found for package")
    store.set_package_status.assert_awaited_once_with(package_id, PackageStatus.FAILED)
    store.mark_job_succeeded.assert_not_called()


@pytest.mark.asyncio
async def test_missing_package_is_not_marked():
    job, _ = _job()
    store = _mock_store(job)
    scheduler = _scheduler(store)
    error = PackageNotFoundError("Package not found: x")

    with patch.dict(scheduler._handlers, {JobType.RENDER_PACKAGE: AsyncMock(side_effect=error)}):
        await scheduler.poll_once()

    store.mark_job_failed.assert_awaited_once_with(job.id, "Package not found: x")
    store.set_package_status.assert_not_called()


@pytest.mark.asyncio
async def test_unexpected_error_uses_its_message():
    job, package_id = _job()
    store = _mock_store(job)
    scheduler = _scheduler(store)

    with patch.dict(scheduler._handlers, {JobType.RENDER_PACKAGE: AsyncMock(side_effect=KeyError("width"))}):
        await scheduler.poll_once()

    store.mark_job_failed.assert_awaited_once_with(job.id, "'width'")
    store.set_package_status.assert_awaited_once_with(package_id, PackageStatus.FAILED)


@pytest.mark.asyncio
async def test_unknown_job_type():
    job, package_id = _job(job_type=JobType.EXTRACT_METADATA)
    store = _mock_store(job)
    scheduler = _scheduler(store)

    await scheduler.poll_once()

    store.mark_job_failed.assert_awaited_once_with(job.id, "Unknown job type: extract_metadata")
    store.set_package_status.assert_awaited_once_with(package_id, PackageStatus.FAILED)


@pytest.mark.asyncio
async def test_failure_to_mark_failed_is_logged_not_raised():
    job, _ = _job()
    store = _mock_store(job)
    store.mark_job_failed.side_effect = DatabaseError("UPDATE on jobs failed")
    scheduler = _scheduler(store)

    with patch.dict(scheduler._handlers, {JobType.RENDER_PACKAGE: AsyncMock(side_effect=RuntimeError("boom"))}):
        assert await scheduler.poll_once() is True

    store.set_package_status.assert_awaited_once()


@pytest.mark.asyncio
async def test_job_timeout():
    job, _ = _job()
    store = _mock_store(job)
    scheduler = _scheduler(store, job_timeout_seconds=0.01)

    async def slow_handler(store, job):
        await asyncio.sleep(1)

    with patch.dict(scheduler._handlers, {JobType.RENDER_PACKAGE: slow_handler}):
        await scheduler.poll_once()

    store.mark_job_failed.assert_awaited_once_with(job.id, "Job timed out after 0.01 seconds")


@pytest.mark.asyncio
async def test_run_pending_drains_queue():
    scheduler = _scheduler(_mock_store())

    with patch.object(scheduler, "poll_once", new=AsyncMock(side_effect=[True, True, True, False])):
        assert await scheduler.run_pending() == 3


@pytest.mark.asyncio
async def test_run_pending_stops_when_asked():
    scheduler = _scheduler(_mock_store())
    scheduler._stop_event.set()

    with patch.object(scheduler, "poll_once", new=AsyncMock(return_value=True)) as poll:
        assert await scheduler.run_pending() == 0
    poll.assert_not_called()


@pytest.mark.asyncio
async def test_start_and_stop():
    scheduler = _scheduler(_mock_store(), poll_interval_ms=1000)

    with patch.object(scheduler, "run_pending", new=AsyncMock(return_value=0)):
        scheduler.start()
        try:
            job = scheduler.scheduler.get_job("render_job_poll")
            assert job is not None
            assert job.max_instances == 1
            assert scheduler.scheduler.running
        finally:
            scheduler.stop()

    assert scheduler._stop_event.is_set()


@pytest.mark.asyncio
async def test_shutdown_waits_for_job_in_progress():
    job, _ = _job()
    store = _mock_store(job)
    scheduler = _scheduler(store)
    started = asyncio.Event()

    async def slow_handler(store, job):
        started.set()
        await asyncio.sleep(0.2)

    with patch.dict(scheduler._handlers, {JobType.RENDER_PACKAGE: slow_handler}):
        drain = asyncio.create_task(scheduler.run_pending())
        await asyncio.wait_for(started.wait(), timeout=5)
        await scheduler.shutdown()

        # The job was recorded before shutdown returned, and nothing else was claimed
        assert drain.done()
        store.mark_job_succeeded.assert_awaited_once_with(job.id)
        store.claim_job.assert_awaited_once()
        assert await drain == 1


@pytest.mark.asyncio
async def test_shutdown_when_idle_returns_immediately():
    scheduler = _scheduler(_mock_store())

    await asyncio.wait_for(scheduler.shutdown(), timeout=1)
    assert scheduler._stop_event.is_set()
