"""
PDF rasterization and thumbnail generation.

Pages are rendered with PyMuPDF at a fixed scale; thumbnails are derived
with Pillow. These functions are synchronous and CPU-bound, so the
processors run them through asyncio.to_thread.
"""

from dataclasses import dataclass
import io
import logging
import math

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from core.constants import RENDER_SCALE, THUMBNAIL_MAX_WIDTH
from core.exceptions import PdfOpenError, RenderError, ThumbnailError

logger = logging.getLogger(__name__)


@dataclass
class RenderedPage:
    """PNG bytes of one page plus its pixel size."""
    image_bytes: bytes
    width: int
    height: int


def _open_pdf(pdf_bytes: bytes) -> fitz.Document:
    if not pdf_bytes:
        raise PdfOpenError("PDF is empty", context={"size_bytes": 0})
    try:
        return fitz.open(stream=pdf_bytes, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise PdfOpenError(
            "Failed to open PDF",
            context={"size_bytes": len(pdf_bytes)},
            original_exception=e
        )


def count_pages(pdf_bytes: bytes) -> int:
    """Authoritative page count of a PDF."""
    with _open_pdf(pdf_bytes) as doc:
        return doc.page_count


def render_page(
    pdf_bytes: bytes,
    page_index: int,
    scale: float = RENDER_SCALE
) -> RenderedPage:
    """
    Rasterize one page to PNG.

    Pixel dimensions are the floor of the page size times scale. If the
    page content fails to render, a blank raster of that size is returned
    instead so the page still gets a sheet image.

    Args:
        pdf_bytes: Raw PDF data
        page_index: Zero-based page index
        scale: Multiplier applied to the page's native size

    Raises:
        RenderError: If the page cannot be loaded at all
    """
    try:
        doc = _open_pdf(pdf_bytes)
    except PdfOpenError as e:
        raise RenderError(
            "Failed to open PDF for rendering",
            context={"page_index": page_index, "scale": scale},
            original_exception=e
        )

    with doc:
        if page_index < 0 or page_index >= doc.page_count:
            raise RenderError(
                f"Page index {page_index} out of range",
                context={"page_index": page_index, "page_count": doc.page_count}
            )
        try:
            page = doc.load_page(page_index)
        except (RuntimeError, ValueError) as e:
            raise RenderError(
                f"Failed to load page {page_index}",
                context={"page_index": page_index, "scale": scale},
                original_exception=e
            )

        width = math.floor(page.rect.width * scale)
        height = math.floor(page.rect.height * scale)
        if width <= 0 or height <= 0:
            raise RenderError(
                f"Page {page_index} has an empty viewport",
                context={"page_index": page_index, "width": width, "height": height}
            )

        try:
            pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
            image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
            if image.size != (width, height):
                image = image.crop((0, 0, width, height))
        except (RuntimeError, ValueError) as e:
            logger.warning(f"Partial render failure on page {page_index}, continuing with blank raster: {e}")
            image = Image.new("RGB", (width, height), "white")

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return RenderedPage(image_bytes=buffer.getvalue(), width=width, height=height)


def create_thumbnail(
    image_bytes: bytes,
    max_width: int = THUMBNAIL_MAX_WIDTH
) -> bytes:
    """
    Shrink an image so its width is at most max_width.

    Images already narrow enough are never upscaled. The output keeps the
    input's aspect ratio and format.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image_format = image.format or "PNG"
            if image.width > max_width:
                height = max(1, round(image.height * max_width / image.width))
                thumb = image.resize((max_width, height), Image.LANCZOS)
            else:
                thumb = image.copy()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ThumbnailError(
            "Failed to create thumbnail",
            context={"size_bytes": len(image_bytes), "max_width": max_width},
            original_exception=e
        )

    buffer = io.BytesIO()
    thumb.save(buffer, format=image_format)
    return buffer.getvalue()
