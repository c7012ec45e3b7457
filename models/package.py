from sqlalchemy import Column, String, Text, DateTime, Date, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, PackageStatus, enum_column


class Package(Base):
    """
    A versioned set of uploaded drawing documents belonging to a project.

    Status is driven by the render job lifecycle:
    - draft -> processing when a render job is enqueued or picked up
    - processing -> ready when the job succeeds
    - processing -> failed when the job fails
    The worker never deletes packages.
    """
    __tablename__ = "packages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)
    created_by = Column(Uuid, nullable=False)

    label = Column(String(200), nullable=False)
    package_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(
        enum_column(PackageStatus, "package_status"),
        default=PackageStatus.DRAFT,
        nullable=False,
    )

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("Project", back_populates="packages")
    documents = relationship("Document", back_populates="package")

    __table_args__ = (
        Index("idx_package_project_created", "project_id", "created_at"),
    )
