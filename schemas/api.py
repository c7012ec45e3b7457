"""
Pydantic schemas for API response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, Dict, Any
from datetime import datetime, date
from uuid import UUID
from models.base import JobStatus, JobType, PackageStatus


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    jobs_by_status: Dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.jobs_by_status.get(JobStatus.FAILED.value, 0) > 0:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "jobs_by_status": {
                    "pending": 1,
                    "running": 1,
                    "succeeded": 12,
                    "failed": 0
                }
            }
        }


# ============================================================================
# Job Schemas
# ============================================================================

class JobResponse(BaseModel):
    """Response model for a job"""
    id: UUID
    project_id: Optional[UUID] = None
    type: JobType
    status: JobStatus
    progress: float = Field(..., ge=0, le=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


# ============================================================================
# Package Schemas
# ============================================================================

class PackageDetailResponse(BaseModel):
    """Package row with document and sheet counts"""
    id: UUID
    project_id: UUID
    created_by: UUID
    label: str
    package_date: Optional[date] = None
    notes: Optional[str] = None
    status: PackageStatus
    created_at: datetime
    updated_at: datetime
    documents_count: int = 0
    sheets_count: int = 0

    class Config:
        from_attributes = True
        use_enum_values = True

