"""
SQLAlchemy ORM models for database tables.

This package defines the schema shared by the upload API and the render
worker:

Models:
    base: Base declarative class and shared enums (PackageStatus, JobStatus, JobType)
    project: Projects owning packages
    package: Drawing packages
    document: Uploaded PDF files
    sheet: Rendered pages
    job: Asynchronous work items

Usage:
    from models import Job, Package, Document, Sheet
    from models.base import JobStatus, JobType

Relationships:
    - Project → Package (one-to-many)
    - Package → Document (one-to-many)
    - Document → Sheet (one-to-many, sheets also carry package_id)
    - Job → Package (by payload["packageId"], no foreign key)
"""

from models.base import Base, PackageStatus, JobStatus, JobType
from models.project import Project
from models.package import Package
from models.document import Document
from models.sheet import Sheet
from models.job import Job

__all__ = [
    "Base",
    "PackageStatus",
    "JobStatus",
    "JobType",
    "Project",
    "Package",
    "Document",
    "Sheet",
    "Job",
]
