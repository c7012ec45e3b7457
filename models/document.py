from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base


class Document(Base):
    """
    One uploaded PDF file within a package.

    page_count stays NULL until the rasterizer opens the file and is
    rewritten on every processing pass.
    """
    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    package_id = Column(Uuid, ForeignKey("packages.id"), nullable=False, index=True)

    discipline = Column(String(100), nullable=True)
    original_filename = Column(String(500), nullable=False)
    storage_path = Column(String(1024), nullable=False)  # Path inside the raw uploads bucket
    page_count = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    package = relationship("Package", back_populates="documents")

    __table_args__ = (
        Index("idx_document_package_created", "package_id", "created_at"),
    )
