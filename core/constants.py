"""
Table names, storage buckets and storage path conventions.

Paths written here are read back by the web client, so their layout
must not change:

    {owner_id}/{project_id}/{package_id}/{document_id}/{filename}
    {owner_id}/{project_id}/{package_id}/{sheet_id}/{page|thumb}.png
"""

from typing import Literal, Union
from uuid import UUID


class TABLES:
    PROJECTS = "projects"
    PACKAGES = "packages"
    DOCUMENTS = "documents"
    SHEETS = "sheets"
    JOBS = "jobs"


class BUCKETS:
    RAW_UPLOADS = "raw_uploads"
    SHEET_IMAGES = "sheet_images"
    ANALYSIS_ARTIFACTS = "analysis_artifacts"
    EVIDENCE_TILES = "evidence_tiles"
    EXPORTS = "exports"


# Defaults; the worker reads the effective values from settings
RENDER_SCALE = 2.0
THUMBNAIL_MAX_WIDTH = 400

SHEET_IMAGE_CONTENT_TYPE = "image/png"

SheetImageKind = Literal["page", "thumb"]
Identifier = Union[str, UUID]


def get_document_storage_path(
    owner_id: Identifier,
    project_id: Identifier,
    package_id: Identifier,
    document_id: Identifier,
    filename: str,
) -> str:
    """Path of an uploaded source PDF inside the raw uploads bucket."""
    return f"{owner_id}/{project_id}/{package_id}/{document_id}/{filename}"


def get_sheet_image_path(
    owner_id: Identifier,
    project_id: Identifier,
    package_id: Identifier,
    sheet_id: Identifier,
    kind: SheetImageKind,
) -> str:
    """Path of a rendered page or its thumbnail inside the sheet images bucket."""
    if kind not in ("page", "thumb"):
        raise ValueError(f"Unknown sheet image kind: {kind}")
    return f"{owner_id}/{project_id}/{package_id}/{sheet_id}/{kind}.png"
