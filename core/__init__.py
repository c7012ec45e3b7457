"""
Core utilities and configuration for the render worker.

This package provides foundational components used throughout the worker:

Modules:
    config: Application configuration and environment variable management
    database: Database connection and session management
    constants: Table names, storage buckets and storage path conventions
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.constants import BUCKETS, get_sheet_image_path
    from core.exceptions import PackageNotFoundError, DownloadError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "WorkerException",
    "JobError",
    "JobPayloadError",
    "PackageNotFoundError",
    "EmptyPackageError",
    "UnknownJobTypeError",
    "NoSheetsRenderedError",
    "JobTimeoutError",
    "DocumentError",
    "PdfOpenError",
    "PageError",
    "RenderError",
    "ThumbnailError",
    "StoreError",
    "DatabaseError",
    "DatabaseConnectionError",
    "BlobStoreError",
    "UploadError",
    "DownloadError",
    "BlobNotFoundError",
    "BlobAuthenticationError",
    "RetryableError",
    "NonRetryableError",
]
