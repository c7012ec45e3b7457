"""
Document processor - renders every page of one PDF into sheet rows.

For each document:
1. Download the PDF from the raw uploads bucket
2. Open it and record the authoritative page count
3. Purge the document's existing sheet rows (re-runs never duplicate)
4. Per page: reserve a sheet row, rasterize, thumbnail, upload, fill the row

Failures are isolated per page: a page that cannot be rendered or stored
is recorded as failed and the next page is attempted. Errors before the
page loop (download, open, purge) propagate to the package processor,
which isolates them per document.
"""

from typing import Optional
from uuid import UUID
import asyncio
import logging

from core.constants import (
    BUCKETS,
    RENDER_SCALE,
    SHEET_IMAGE_CONTENT_TYPE,
    THUMBNAIL_MAX_WIDTH,
    get_sheet_image_path,
)
from core.exceptions import DownloadError, WorkerException, error_message
from models.document import Document
from models.package import Package
from schemas.results import DocumentResult, PageResult, PageStatus
from worker import rendering
from worker.blob_store import BlobStore
from worker.store import RecordStore

logger = logging.getLogger(__name__)


class DocumentProcessor:
    """
    Renders a document's pages and persists one sheet per page.

    Responsibilities:
    - Keep document.page_count in sync with the PDF
    - Guarantee at most one sheet row per (document_id, page_index)
    - Store page images and thumbnails at deterministic paths
    """

    def __init__(
        self,
        store: RecordStore,
        blob_store: BlobStore,
        render_scale: float = RENDER_SCALE,
        thumbnail_max_width: int = THUMBNAIL_MAX_WIDTH
    ):
        self.store = store
        self.blob_store = blob_store
        self.render_scale = render_scale
        self.thumbnail_max_width = thumbnail_max_width

    async def process(
        self,
        document: Document,
        package: Package,
        owner_id: UUID
    ) -> DocumentResult:
        """
        Render all pages of a document.

        Args:
            document: Document row to render
            package: Package the document belongs to (for project_id)
            owner_id: User id used as the first storage path segment

        Returns:
            DocumentResult with one PageResult per page

        Raises:
            DownloadError: If the PDF cannot be fetched
            PdfOpenError: If the PDF cannot be opened
            DatabaseError: If page_count or the sheet purge cannot be written
        """
        logger.info(f"Processing document {document.id} ({document.original_filename})")

        pdf_bytes = await self._download(document)
        page_count = await asyncio.to_thread(rendering.count_pages, pdf_bytes)
        logger.info(f"Document {document.id}: {page_count} page(s)")

        await self.store.set_document_page_count(document.id, page_count)

        removed = await self.store.delete_sheets_for_document(document.id)
        if removed:
            logger.info(f"Cleared {removed} existing sheet(s) for document {document.id}")

        result = DocumentResult(document_id=document.id, page_count=page_count)

        for page_index in range(page_count):
            logger.debug(f"Document {document.id}: page {page_index + 1}/{page_count}")
            page_result = await self._process_page(
                pdf_bytes, page_index, document, package, owner_id
            )
            result.pages.append(page_result)

        logger.info(
            f"Document {document.id} complete: "
            f"{result.pages_rendered} rendered, {result.pages_failed} failed"
        )
        return result

    async def _download(self, document: Document) -> bytes:
        logger.debug(f"Downloading {BUCKETS.RAW_UPLOADS}/{document.storage_path}")
        try:
            data = await self.blob_store.download(BUCKETS.RAW_UPLOADS, document.storage_path)
        except WorkerException:
            raise
        except Exception as e:
            raise DownloadError(
                "Failed to download PDF",
                context={"document_id": str(document.id), "path": document.storage_path},
                original_exception=e
            )
        if not data:
            raise DownloadError(
                "Failed to download PDF: no data",
                context={"document_id": str(document.id), "path": document.storage_path}
            )
        return data

    async def _process_page(
        self,
        pdf_bytes: bytes,
        page_index: int,
        document: Document,
        package: Package,
        owner_id: UUID
    ) -> PageResult:
        """Render and store a single page. Never raises."""
        stage = "insert"
        sheet_id: Optional[UUID] = None

        try:
            sheet = await self.store.insert_sheet(
                document_id=document.id,
                package_id=document.package_id,
                page_index=page_index
            )
            sheet_id = sheet.id

            stage = "render"
            rendered = await asyncio.to_thread(
                rendering.render_page, pdf_bytes, page_index, self.render_scale
            )
            logger.debug(f"Rendered page {page_index} at {rendered.width}x{rendered.height}px")

            stage = "thumbnail"
            thumb_bytes = await asyncio.to_thread(
                rendering.create_thumbnail, rendered.image_bytes, self.thumbnail_max_width
            )

            image_path = get_sheet_image_path(
                owner_id, package.project_id, document.package_id, sheet_id, "page"
            )
            thumb_path = get_sheet_image_path(
                owner_id, package.project_id, document.package_id, sheet_id, "thumb"
            )

            stage = "upload"
            await self.blob_store.upload(
                BUCKETS.SHEET_IMAGES, image_path, rendered.image_bytes,
                content_type=SHEET_IMAGE_CONTENT_TYPE, overwrite=True
            )

            status = PageStatus.RENDERED
            thumb_error = None
            try:
                await self.blob_store.upload(
                    BUCKETS.SHEET_IMAGES, thumb_path, thumb_bytes,
                    content_type=SHEET_IMAGE_CONTENT_TYPE, overwrite=True
                )
            except Exception as e:
                # The page image is usable without a thumbnail
                logger.error(f"Thumbnail upload failed for sheet {sheet_id}: {error_message(e)}")
                thumb_path = None
                thumb_error = error_message(e)
                status = PageStatus.PARTIAL

            stage = "update"
            await self.store.update_sheet(
                sheet_id,
                image_path=image_path,
                thumb_path=thumb_path,
                width_px=rendered.width,
                height_px=rendered.height,
            )

            return PageResult(
                page_index=page_index,
                sheet_id=sheet_id,
                status=status,
                stage="thumbnail_upload" if thumb_error else None,
                error=thumb_error
            )

        except Exception as e:
            await self.store.rollback()
            extra = {"error_context": e.to_dict()} if isinstance(e, WorkerException) else {}
            logger.error(
                f"Page {page_index} of document {document.id} failed at {stage}: {error_message(e)}",
                extra=extra
            )
            return PageResult(
                page_index=page_index,
                sheet_id=sheet_id,
                status=PageStatus.FAILED,
                stage=stage,
                error=error_message(e)
            )
