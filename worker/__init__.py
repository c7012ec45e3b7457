"""
Render worker components.

Modules:
    store: Record store over the projects/packages/documents/sheets/jobs tables
    blob_store: Upload/download of PDFs and sheet images (Supabase Storage, local disk)
    rendering: PyMuPDF rasterization and Pillow thumbnails
    document_processor: One document -> one sheet per page
    package_processor: One render_package job -> every document of the package
    scheduler: APScheduler-driven poll loop that claims and dispatches jobs

Architecture:
    JobScheduler
      └── PackageJobProcessor      (failures isolated per document)
            └── DocumentProcessor  (failures isolated per page)
                  ├── rendering.render_page / create_thumbnail
                  ├── BlobStore.upload
                  └── RecordStore sheet writes

Usage:
    from worker.scheduler import JobScheduler
    from worker.blob_store import create_blob_store

    scheduler = JobScheduler(async_session_maker, create_blob_store(settings))
    await scheduler.run_forever(stop_event)
"""

__all__ = [
    "RecordStore",
    "BlobStore",
    "SupabaseBlobStore",
    "LocalBlobStore",
    "DocumentProcessor",
    "PackageJobProcessor",
    "JobScheduler",
]
