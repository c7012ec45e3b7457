"""
Job scheduler - the worker's poll loop.

Every POLL_INTERVAL_MS the scheduler drains the queue of pending
render_package jobs, oldest first, one job at a time:

1. Fetch the oldest pending job
2. Claim it with a conditional update (pending -> running, progress 0)
3. Dispatch by job type
4. Record succeeded (progress 1) or failed (error message, package failed)

Errors while polling or claiming are logged and treated as an empty
queue; nothing raised inside the loop stops the process.
"""

from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional
import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import settings
from core.exceptions import (
    JobTimeoutError,
    PackageNotFoundError,
    UnknownJobTypeError,
    WorkerException,
    error_message,
)
from models.base import JobType, PackageStatus
from models.job import Job
from schemas.jobs import package_id_from_payload
from worker.blob_store import BlobStore
from worker.document_processor import DocumentProcessor
from worker.package_processor import PackageJobProcessor
from worker.store import RecordStore

logger = logging.getLogger(__name__)


class JobScheduler:
    """
    Polls the jobs table and runs claimed jobs sequentially.

    Collaborators are injected so the loop can be driven directly in
    tests; nothing here reads module-level database or storage clients.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        blob_store: BlobStore,
        poll_interval_ms: int = settings.POLL_INTERVAL_MS,
        job_timeout_seconds: Optional[float] = settings.JOB_TIMEOUT_SECONDS,
        render_scale: float = settings.RENDER_SCALE,
        thumbnail_max_width: int = settings.THUMBNAIL_MAX_WIDTH,
        require_rendered_sheet: bool = settings.REQUIRE_RENDERED_SHEET,
        store_factory: Callable[[AsyncSession], RecordStore] = RecordStore
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.poll_interval_ms = poll_interval_ms
        self.job_timeout_seconds = job_timeout_seconds
        self.render_scale = render_scale
        self.thumbnail_max_width = thumbnail_max_width
        self.require_rendered_sheet = require_rendered_sheet
        self.store_factory = store_factory

        self.scheduler = AsyncIOScheduler()
        self._stop_event = asyncio.Event()
        # Clear while run_pending is working through the queue
        self._idle = asyncio.Event()
        self._idle.set()
        self._handlers: Dict[JobType, Callable[[RecordStore, Job], Awaitable]] = {
            JobType.RENDER_PACKAGE: self._run_render_package,
        }

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    async def poll_once(self) -> bool:
        """
        Run one scheduler iteration.

        Returns:
            True if a job was found (whether or not this worker won the
            claim), False if the queue was empty or the store failed.
        """
        async with self.session_factory() as session:
            store = self.store_factory(session)

            try:
                job = await store.fetch_next_pending_job(JobType.RENDER_PACKAGE)
                if job is None:
                    return False

                logger.info(f"Found job {job.id} (type={_type_name(job)}, created={job.created_at})")

                claimed = await store.claim_job(job.id)
            except Exception as e:
                logger.error(f"Error fetching jobs: {error_message(e)}")
                return False

            if not claimed:
                logger.info(f"Job {job.id} was claimed by another worker")
                return True

            await self._execute(store, job)
            return True

    async def run_pending(self) -> int:
        """Process jobs until the queue is empty. Returns the number handled."""
        handled = 0
        self._idle.clear()
        try:
            while not self._stop_event.is_set():
                if not await self.poll_once():
                    break
                handled += 1
        finally:
            self._idle.set()
        return handled

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    async def _execute(self, store: RecordStore, job: Job) -> None:
        try:
            result = await self._dispatch(store, job)
            await store.mark_job_succeeded(job.id)
            summary = result.summary() if hasattr(result, "summary") else {}
            logger.info(f"Job {job.id} completed successfully {summary}")
        except Exception as e:
            await store.rollback()
            message = error_message(e)
            extra = {"error_context": e.to_dict()} if isinstance(e, WorkerException) else {}
            logger.error(f"Job {job.id} failed: {message}", extra=extra)
            await self._record_failure(store, job, e, message)

    async def _dispatch(self, store: RecordStore, job: Job):
        job_type = _job_type(job)
        handler = self._handlers.get(job_type) if job_type else None
        if handler is None:
            raise UnknownJobTypeError(
                f"Unknown job type: {_type_name(job)}",
                context={"job_id": str(job.id)}
            )

        if not self.job_timeout_seconds:
            return await handler(store, job)

        try:
            return await asyncio.wait_for(handler(store, job), timeout=self.job_timeout_seconds)
        except asyncio.TimeoutError:
            raise JobTimeoutError(
                f"Job timed out after {self.job_timeout_seconds} seconds",
                context={"job_id": str(job.id)}
            )

    async def _run_render_package(self, store: RecordStore, job: Job):
        document_processor = DocumentProcessor(
            store,
            self.blob_store,
            render_scale=self.render_scale,
            thumbnail_max_width=self.thumbnail_max_width
        )
        processor = PackageJobProcessor(
            store,
            self.blob_store,
            document_processor=document_processor,
            require_rendered_sheet=self.require_rendered_sheet
        )
        return await processor.process(job)

    async def _record_failure(
        self,
        store: RecordStore,
        job: Job,
        exc: Exception,
        message: str
    ) -> None:
        try:
            await store.mark_job_failed(job.id, message)
        except Exception as e:
            logger.error(f"Failed to mark job {job.id} as failed: {error_message(e)}")

        # A missing package has nothing to mark
        if isinstance(exc, PackageNotFoundError):
            return

        package_id = package_id_from_payload(job.payload)
        if package_id is None:
            return
        try:
            await store.set_package_status(package_id, PackageStatus.FAILED)
        except Exception as e:
            logger.error(f"Failed to mark package {package_id} as failed: {error_message(e)}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start polling on the configured interval"""
        self._stop_event.clear()
        self.scheduler.add_job(
            self.run_pending,
            trigger=IntervalTrigger(seconds=self.poll_interval_ms / 1000),
            id="render_job_poll",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(),
        )
        self.scheduler.start()
        logger.info(f"Worker started, polling for jobs every {self.poll_interval_ms} ms")

    def stop(self):
        """Stop polling immediately; a job in progress is not waited for"""
        self._stop_event.set()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Worker stopped")

    async def shutdown(self):
        """
        Stop polling after the job in progress reaches succeeded or failed.

        run_pending checks the stop flag between jobs, so the current job
        finishes and no new one is claimed.
        """
        self._stop_event.set()
        if not self._idle.is_set():
            logger.info("Waiting for the current job to finish before stopping")
            await self._idle.wait()
        self.stop()

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None):
        """Poll until stop_event is set, then shut down gracefully."""
        stop_event = stop_event or asyncio.Event()
        self.start()
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()


def _job_type(job: Job) -> Optional[JobType]:
    try:
        return JobType(job.type)
    except ValueError:
        return None


def _type_name(job: Job) -> str:
    return getattr(job.type, "value", str(job.type))
