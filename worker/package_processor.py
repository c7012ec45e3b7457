"""
Package job processor - orchestrates rendering of every document in a package.

This module handles render_package jobs:
- Payload validation and package lookup (fatal when they fail)
- Document-level failure isolation (one bad PDF never aborts the job)
- Job progress tracking after every document
- Final package status (best effort: partial success still yields ready)
"""

from typing import Optional
import logging

from core.exceptions import (
    DatabaseError,
    EmptyPackageError,
    NoSheetsRenderedError,
    PackageNotFoundError,
    WorkerException,
    error_message,
)
from models.base import PackageStatus
from models.job import Job
from schemas.jobs import RenderPackagePayload
from schemas.results import DocumentResult, PackageResult
from worker.blob_store import BlobStore
from worker.document_processor import DocumentProcessor
from worker.store import RecordStore

logger = logging.getLogger(__name__)


class PackageJobProcessor:
    """
    Runs a render_package job.

    Responsibilities:
    - Resolve the package named in the job payload
    - Render documents in upload order
    - Report progress k/N to the job after the k-th document
    - Mark the package processing, then ready
    """

    def __init__(
        self,
        store: RecordStore,
        blob_store: BlobStore,
        document_processor: Optional[DocumentProcessor] = None,
        require_rendered_sheet: bool = False
    ):
        self.store = store
        self.blob_store = blob_store
        self.document_processor = document_processor or DocumentProcessor(store, blob_store)
        self.require_rendered_sheet = require_rendered_sheet

    async def process(self, job: Job) -> PackageResult:
        """
        Render every document of the job's package.

        Returns:
            PackageResult with per-document outcomes

        Raises:
            JobPayloadError: If the payload has no usable packageId
            PackageNotFoundError: If the package does not exist
            EmptyPackageError: If the package has no documents
            NoSheetsRenderedError: If require_rendered_sheet is set and
                no page was rendered
        """
        payload = RenderPackagePayload.from_job_payload(job.payload, job_id=job.id)
        package_id = payload.package_id
        logger.info(f"Processing package {package_id}")

        package = await self.store.get_package(package_id)
        if package is None:
            raise PackageNotFoundError(
                f"Package not found: {package_id}",
                context={"job_id": str(job.id), "package_id": str(package_id)}
            )

        await self.store.set_package_status(package_id, PackageStatus.PROCESSING)

        documents = await self.store.list_documents(package_id)
        if not documents:
            raise EmptyPackageError(
                "No documents found for package",
                context={"job_id": str(job.id), "package_id": str(package_id)}
            )

        total = len(documents)
        logger.info(f"Found {total} document(s) to process")

        result = PackageResult(package_id=package_id, documents_total=total)

        for index, document in enumerate(documents, start=1):
            logger.info(f"[{index}/{total}] document {document.id}")
            try:
                document_result = await self.document_processor.process(
                    document, package, package.created_by
                )
            except Exception as e:
                await self.store.rollback()
                extra = {"error_context": e.to_dict()} if isinstance(e, WorkerException) else {}
                logger.error(
                    f"Error processing document {document.id}: {error_message(e)}",
                    extra=extra
                )
                document_result = DocumentResult.failed(document.id, error_message(e))

            result.documents.append(document_result)

            # The scheduler writes 1.0 together with the succeeded status
            if index < total:
                try:
                    await self.store.update_job_progress(job.id, index / total)
                except DatabaseError as e:
                    logger.warning(f"Failed to update progress for job {job.id}: {e.message}")

        if self.require_rendered_sheet and result.pages_rendered == 0:
            raise NoSheetsRenderedError(
                "No pages were rendered for package",
                context={"job_id": str(job.id), **result.summary()}
            )

        await self.store.set_package_status(package_id, PackageStatus.READY)

        logger.info(
            f"Package {package_id} processing complete: "
            f"{result.documents_succeeded}/{total} documents, "
            f"{result.pages_rendered} pages rendered, {result.pages_failed} failed"
        )
        return result
