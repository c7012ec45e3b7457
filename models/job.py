from sqlalchemy import Column, Float, DateTime, Text, String, Index, Uuid
from datetime import datetime
import uuid
from models.base import Base, JobStatus, JobType, JSONType, enum_column


class Job(Base):
    """
    A unit of asynchronous work tracked with status, progress and error.

    Lifecycle:
    - Created pending by the upload path
    - Claimed (pending -> running) by exactly one scheduler iteration
    - Terminal in succeeded or failed

    progress never decreases while running and is exactly 1.0 only once
    the job has succeeded. payload is an opaque map; render_package jobs
    carry {"packageId": "<uuid>"}.
    """
    __tablename__ = "jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, nullable=True, index=True)
    created_by = Column(Uuid, nullable=True)

    type = Column(enum_column(JobType, "job_type"), nullable=False)
    status = Column(
        enum_column(JobStatus, "job_status"),
        default=JobStatus.PENDING,
        nullable=False,
    )
    progress = Column(Float, nullable=False, default=0.0)
    payload = Column(JSONType, nullable=False, default=dict)

    error = Column(Text, nullable=True)
    logs_path = Column(String(1024), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_job_status_type_created", "status", "type", "created_at"),
    )
