"""
Per-item outcomes collected while rendering a package.

Processors return these instead of only logging failures, so a caller
can see how many documents and pages succeeded or failed.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from uuid import UUID
import enum


class PageStatus(str, enum.Enum):
    """Outcome of a single page"""
    RENDERED = "rendered"  # image and thumbnail stored
    PARTIAL = "partial"    # image stored, thumbnail missing
    FAILED = "failed"      # no image stored


class PageResult(BaseModel):
    page_index: int
    status: PageStatus
    sheet_id: Optional[UUID] = None
    stage: Optional[str] = None  # insert, render, thumbnail, upload, update
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status != PageStatus.FAILED


class DocumentResult(BaseModel):
    document_id: UUID
    page_count: Optional[int] = None
    pages: List[PageResult] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def pages_rendered(self) -> int:
        return sum(1 for page in self.pages if page.succeeded)

    @property
    def pages_failed(self) -> int:
        return sum(1 for page in self.pages if not page.succeeded)

    @classmethod
    def failed(cls, document_id: UUID, error: str) -> "DocumentResult":
        return cls(document_id=document_id, error=error)


class PackageResult(BaseModel):
    package_id: UUID
    documents_total: int = 0
    documents: List[DocumentResult] = Field(default_factory=list)

    @property
    def documents_succeeded(self) -> int:
        return sum(1 for document in self.documents if document.succeeded)

    @property
    def documents_failed(self) -> int:
        return sum(1 for document in self.documents if not document.succeeded)

    @property
    def pages_rendered(self) -> int:
        return sum(document.pages_rendered for document in self.documents)

    @property
    def pages_failed(self) -> int:
        return sum(document.pages_failed for document in self.documents)

    def summary(self) -> Dict[str, Any]:
        return {
            "package_id": str(self.package_id),
            "documents_total": self.documents_total,
            "documents_succeeded": self.documents_succeeded,
            "documents_failed": self.documents_failed,
            "pages_rendered": self.pages_rendered,
            "pages_failed": self.pages_failed,
        }
