"""
Custom exceptions for the render worker with structured error context.

This module provides the exception hierarchy used throughout the job
pipeline. The class an error belongs to decides how far it propagates:
job errors fail the whole job, document errors skip one document, page
errors skip one page. Each exception carries context for logging.

Exception Hierarchy:
    WorkerException (base)
    ├── JobError (fatal to the job)
    │   ├── JobPayloadError
    │   ├── PackageNotFoundError
    │   ├── EmptyPackageError
    │   ├── UnknownJobTypeError
    │   ├── NoSheetsRenderedError
    │   └── JobTimeoutError
    ├── DocumentError (isolated to one document)
    │   └── PdfOpenError
    ├── PageError (isolated to one page)
    │   ├── RenderError
    │   └── ThumbnailError
    ├── StoreError
    │   └── DatabaseError
    ├── BlobStoreError
    │   ├── UploadError
    │   ├── DownloadError (also a DocumentError)
    │   ├── BlobNotFoundError
    │   └── BlobAuthenticationError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class WorkerException(Exception):
    """
    Base exception for all worker errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (job id, document id, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


def error_message(exc: BaseException) -> str:
    """Message stored on a failed job row."""
    if isinstance(exc, WorkerException):
        return exc.message
    return str(exc) or type(exc).__name__


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(WorkerException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Storage service unavailable (HTTP 5xx)
    - Temporary database connection issues
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(WorkerException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Missing packages or blobs
    - Malformed job payloads
    """
    pass


# ============================================================================
# Job Errors (fatal to the job)
# ============================================================================

class JobError(WorkerException):
    """Base exception for errors that fail a whole job."""
    pass


class JobPayloadError(NonRetryableError, JobError):
    """
    Exception raised when a job payload is missing a required key.

    Context should include:
        - job_id: ID of the job
        - payload: The payload as stored
    """
    pass


class PackageNotFoundError(NonRetryableError, JobError):
    """
    Exception raised when the package named by a job does not exist.

    Context should include:
        - job_id: ID of the job
        - package_id: The package id from the payload
    """
    pass


class EmptyPackageError(NonRetryableError, JobError):
    """Exception raised when a package has no documents to render."""
    pass


class UnknownJobTypeError(NonRetryableError, JobError):
    """Exception raised for job types this worker does not implement."""
    pass


class NoSheetsRenderedError(JobError):
    """Exception raised when a package run rendered no page at all."""
    pass


class JobTimeoutError(JobError):
    """Exception raised when a job exceeds the configured timeout."""
    pass


# ============================================================================
# Document Errors (isolated to one document)
# ============================================================================

class DocumentError(WorkerException):
    """Base exception for errors that skip a single document."""
    pass


class PdfOpenError(NonRetryableError, DocumentError):
    """
    Exception raised when PDF bytes cannot be opened.

    Context should include:
        - document_id: ID of the document (if known)
        - size_bytes: Size of the payload
    """
    pass


# ============================================================================
# Page Errors (isolated to one page)
# ============================================================================

class PageError(WorkerException):
    """Base exception for errors that skip a single page."""
    pass


class RenderError(PageError):
    """
    Exception raised when a page cannot be rasterized at all.

    Context should include:
        - page_index: Zero-based page index
        - scale: Render scale in use
    """
    pass


class ThumbnailError(PageError):
    """Exception raised when a thumbnail cannot be derived from a raster."""
    pass


# ============================================================================
# Store Errors
# ============================================================================

class StoreError(WorkerException):
    """Base exception for record store failures."""
    pass


class DatabaseError(StoreError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (INSERT, UPDATE, DELETE)
        - table_name: Name of the table
    """
    pass


class DatabaseConnectionError(RetryableError, DatabaseError):
    """Database connection errors that should be retried."""
    pass


# ============================================================================
# Blob Store Errors
# ============================================================================

class BlobStoreError(WorkerException):
    """
    Base exception for blob store failures.

    Context should include:
        - bucket: Bucket name
        - path: Object path within the bucket
        - status_code: HTTP status code (if applicable)
    """
    pass


class UploadError(BlobStoreError):
    """Exception raised when an upload fails."""
    pass


class DownloadError(BlobStoreError, DocumentError):
    """Exception raised when a download fails or returns no data."""
    pass


class BlobNotFoundError(NonRetryableError, DownloadError):
    """Object does not exist (HTTP 404)."""
    pass


class BlobAuthenticationError(NonRetryableError, BlobStoreError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass
