"""
Read-only job and package status endpoints
"""

from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db
from models.document import Document
from schemas.api import JobResponse, PackageDetailResponse
from worker.store import RecordStore
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Status"])


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: UUID, db: AsyncSession = Depends(get_db)):
    """Job status, progress and error message."""
    job = await RecordStore(db).get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.model_validate(job)


@router.get("/packages/{package_id}", response_model=PackageDetailResponse)
async def get_package(package_id: UUID, db: AsyncSession = Depends(get_db)):
    """Package details with document and sheet counts."""
    store = RecordStore(db)
    package = await store.get_package(package_id)
    if package is None:
        raise HTTPException(status_code=404, detail="Package not found")

    documents_result = await db.execute(
        select(func.count()).select_from(Document).where(Document.package_id == package_id)
    )
    documents_count = documents_result.scalar() or 0
    sheets_count = await store.count_sheets(package_id=package_id)

    detail = PackageDetailResponse.model_validate(package)
    detail.documents_count = documents_count
    detail.sheets_count = sheets_count
    return detail
