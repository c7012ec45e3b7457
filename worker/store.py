"""
Record store used by the render worker.

Wraps an AsyncSession with the handful of predicate queries the worker
needs. Every write commits on its own: the worker relies only on
single-row update semantics, never on multi-row transactions. A failed
write rolls the session back and raises DatabaseError so the caller's
isolation boundary (page, document or job) decides what happens next.

Rows are returned detached from the session, as snapshots of the moment
they were read.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import TABLES
from core.exceptions import DatabaseConnectionError, DatabaseError
from models.base import JobStatus, JobType, PackageStatus
from models.document import Document
from models.job import Job
from models.package import Package
from models.sheet import Sheet

logger = logging.getLogger(__name__)


def _error_class(exc: SQLAlchemyError):
    """Connection-level failures are retryable; everything else is a plain DatabaseError."""
    return DatabaseConnectionError if isinstance(exc, OperationalError) else DatabaseError


class RecordStore:
    """
    Typed CRUD over projects, packages, documents, sheets and jobs.

    All cross-entity lookups are two-step (fetch the parent id, then
    filter the child table); no joins.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def rollback(self) -> None:
        """Reset the session after a failed statement."""
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"Session rollback failed: {str(e)}")

    async def _write(self, stmt, operation: str, table_name: str, **context):
        """Execute a write statement and commit it."""
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
            return result
        except SQLAlchemyError as e:
            await self.rollback()
            raise _error_class(e)(
                f"{operation} on {table_name} failed",
                context={"operation": operation, "table_name": table_name, **context},
                original_exception=e
            )

    def _detach(self, row):
        # Callers keep rows across rollbacks, which would expire attached ones
        if row is not None:
            self.db.expunge(row)
        return row

    async def _read(self, stmt, table_name: str):
        # Bulk UPDATEs bypass the identity map, so reload rows on every read
        stmt = stmt.execution_options(populate_existing=True)
        try:
            return await self.db.execute(stmt)
        except SQLAlchemyError as e:
            await self.rollback()
            raise _error_class(e)(
                f"SELECT on {table_name} failed",
                context={"operation": "SELECT", "table_name": table_name},
                original_exception=e
            )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def fetch_next_pending_job(
        self,
        job_type: JobType = JobType.RENDER_PACKAGE
    ) -> Optional[Job]:
        """Oldest pending job of the given type, or None."""
        result = await self._read(
            select(Job)
            .where(Job.status == JobStatus.PENDING, Job.type == job_type)
            .order_by(Job.created_at.asc())
            .limit(1),
            TABLES.JOBS
        )
        return self._detach(result.scalars().first())

    async def claim_job(self, job_id: UUID) -> bool:
        """
        Move a job from pending to running.

        The update only matches while the row is still pending, so when two
        workers race for the same job exactly one of them gets rowcount 1.
        """
        result = await self._write(
            update(Job)
            .where(Job.id == job_id, Job.status == JobStatus.PENDING)
            .values(status=JobStatus.RUNNING, progress=0.0, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False),
            "UPDATE", TABLES.JOBS, job_id=str(job_id)
        )
        return result.rowcount == 1

    async def get_job(self, job_id: UUID) -> Optional[Job]:
        result = await self._read(select(Job).where(Job.id == job_id), TABLES.JOBS)
        return self._detach(result.scalar_one_or_none())

    async def update_job_progress(self, job_id: UUID, progress: float) -> None:
        await self._update_job(job_id, progress=progress)

    async def mark_job_succeeded(self, job_id: UUID) -> None:
        await self._update_job(job_id, status=JobStatus.SUCCEEDED, progress=1.0, error=None)

    async def mark_job_failed(self, job_id: UUID, error: str) -> None:
        await self._update_job(job_id, status=JobStatus.FAILED, error=error)

    async def _update_job(self, job_id: UUID, **values) -> None:
        values["updated_at"] = datetime.utcnow()
        await self._write(
            update(Job)
            .where(Job.id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False),
            "UPDATE", TABLES.JOBS, job_id=str(job_id)
        )

    async def enqueue_render_job(
        self,
        project_id: UUID,
        created_by: UUID,
        package_id: UUID
    ) -> Job:
        """
        Create the pending render_package job for an upload batch.

        This is what the upload endpoint does after storing the PDFs; the
        worker itself never calls it.
        """
        job = Job(
            project_id=project_id,
            created_by=created_by,
            type=JobType.RENDER_PACKAGE,
            status=JobStatus.PENDING,
            progress=0.0,
            payload={"packageId": str(package_id)},
        )
        try:
            self.db.add(job)
            await self.db.commit()
            await self.db.refresh(job)
        except SQLAlchemyError as e:
            await self.rollback()
            raise _error_class(e)(
                "INSERT on jobs failed",
                context={"operation": "INSERT", "table_name": TABLES.JOBS, "package_id": str(package_id)},
                original_exception=e
            )
        await self.set_package_status(package_id, PackageStatus.PROCESSING)
        return self._detach(job)

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    async def get_package(self, package_id: UUID) -> Optional[Package]:
        result = await self._read(select(Package).where(Package.id == package_id), TABLES.PACKAGES)
        return self._detach(result.scalar_one_or_none())

    async def set_package_status(self, package_id: UUID, status: PackageStatus) -> None:
        await self._write(
            update(Package)
            .where(Package.id == package_id)
            .values(status=status, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False),
            "UPDATE", TABLES.PACKAGES, package_id=str(package_id)
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def list_documents(self, package_id: UUID) -> List[Document]:
        """All documents of a package, oldest first."""
        result = await self._read(
            select(Document)
            .where(Document.package_id == package_id)
            .order_by(Document.created_at.asc()),
            TABLES.DOCUMENTS
        )
        return [self._detach(row) for row in result.scalars().all()]

    async def set_document_page_count(self, document_id: UUID, page_count: int) -> None:
        await self._write(
            update(Document)
            .where(Document.id == document_id)
            .values(page_count=page_count)
            .execution_options(synchronize_session=False),
            "UPDATE", TABLES.DOCUMENTS, document_id=str(document_id)
        )

    # ------------------------------------------------------------------
    # Sheets
    # ------------------------------------------------------------------

    async def delete_sheets_for_document(self, document_id: UUID) -> int:
        result = await self._write(
            delete(Sheet)
            .where(Sheet.document_id == document_id)
            .execution_options(synchronize_session=False),
            "DELETE", TABLES.SHEETS, document_id=str(document_id)
        )
        return result.rowcount or 0

    async def insert_sheet(
        self,
        document_id: UUID,
        package_id: UUID,
        page_index: int
    ) -> Sheet:
        """Insert a placeholder sheet row and return it with its id."""
        sheet = Sheet(document_id=document_id, package_id=package_id, page_index=page_index)
        try:
            self.db.add(sheet)
            await self.db.commit()
            await self.db.refresh(sheet)
            return self._detach(sheet)
        except SQLAlchemyError as e:
            await self.rollback()
            raise _error_class(e)(
                "INSERT on sheets failed",
                context={
                    "operation": "INSERT",
                    "table_name": TABLES.SHEETS,
                    "document_id": str(document_id),
                    "page_index": page_index
                },
                original_exception=e
            )

    async def update_sheet(self, sheet_id: UUID, **fields: Any) -> None:
        await self._write(
            update(Sheet)
            .where(Sheet.id == sheet_id)
            .values(**fields)
            .execution_options(synchronize_session=False),
            "UPDATE", TABLES.SHEETS, sheet_id=str(sheet_id)
        )

    async def list_sheets(self, document_id: UUID) -> List[Sheet]:
        result = await self._read(
            select(Sheet)
            .where(Sheet.document_id == document_id)
            .order_by(Sheet.page_index.asc()),
            TABLES.SHEETS
        )
        return [self._detach(row) for row in result.scalars().all()]

    async def count_sheets(self, **predicate: Any) -> int:
        """Count sheets matching equality predicates, e.g. package_id=..."""
        stmt = select(func.count()).select_from(Sheet)
        for column, value in predicate.items():
            stmt = stmt.where(getattr(Sheet, column) == value)
        result = await self._read(stmt, TABLES.SHEETS)
        return result.scalar() or 0

    async def count_jobs_by_status(self) -> Dict[str, int]:
        result = await self._read(
            select(Job.status, func.count()).group_by(Job.status),
            TABLES.JOBS
        )
        return {
            (status.value if isinstance(status, JobStatus) else str(status)): count
            for status, count in result.all()
        }
