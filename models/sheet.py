from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey, Index, Uuid
from datetime import datetime
import uuid
from models.base import Base


class Sheet(Base):
    """
    One rendered page of one document.

    Design:
    - package_id is denormalized so sheets can be listed per package
      without joining through documents
    - The row is inserted before rendering to reserve its id; image_path,
      thumb_path and pixel dimensions are filled in afterwards, so a NULL
      image_path marks a page that did not finish
    - (document_id, page_index) is unique; re-processing a document
      deletes its rows before inserting new ones
    """
    __tablename__ = "sheets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id = Column(Uuid, ForeignKey("documents.id"), nullable=False, index=True)
    package_id = Column(Uuid, ForeignKey("packages.id"), nullable=False, index=True)
    page_index = Column(Integer, nullable=False)

    # Rendered artifacts
    image_path = Column(String(1024), nullable=True)
    thumb_path = Column(String(1024), nullable=True)
    width_px = Column(Integer, nullable=True)
    height_px = Column(Integer, nullable=True)

    # Metadata filled by later extraction jobs
    sheet_number = Column(String(100), nullable=True)
    sheet_title = Column(String(500), nullable=True)
    discipline_guess = Column(String(100), nullable=True)
    meta_confidence = Column(Float, nullable=True)
    text_extract_path = Column(String(1024), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_sheet_document_page", "document_id", "page_index", unique=True),
    )
