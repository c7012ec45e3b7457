"""
Pydantic schemas for data validation and serialization.

Schemas:
    jobs: Job payload validation (RenderPackagePayload)
    results: Per-page / per-document / per-package outcomes
    api: Status API response models

Usage:
    from schemas.jobs import RenderPackagePayload
    from schemas.results import PackageResult, DocumentResult, PageResult

Example:
    payload = RenderPackagePayload.from_job_payload(job.payload, job_id=job.id)
    package = await store.get_package(payload.package_id)
"""

__all__ = [
    "RenderPackagePayload",
    "PageStatus",
    "PageResult",
    "DocumentResult",
    "PackageResult",
    "HealthCheckResponse",
    "JobResponse",
    "PackageDetailResponse",
]
