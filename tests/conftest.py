"""
Pytest configuration and fixtures
"""

from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable, Dict, List, Optional, Tuple
import uuid

import fitz
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from core.constants import BUCKETS, get_document_storage_path
from core.database import build_session_factory
from core.exceptions import BlobNotFoundError, UploadError
from models import Base, Document, Job, Package, Project
from models.base import JobStatus, JobType, PackageStatus
from worker.blob_store import BlobStore

# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session maker bound to the test engine, as the worker receives it"""
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


class InMemoryBlobStore(BlobStore):
    """
    Blob store keeping objects in a dict keyed by (bucket, path).

    fail_upload is called with (bucket, path) before every upload; when it
    returns True the upload raises UploadError.
    """

    def __init__(self, fail_upload: Optional[Callable[[str, str], bool]] = None):
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.content_types: Dict[Tuple[str, str], str] = {}
        self.upload_attempts: List[Tuple[str, str]] = []
        self.fail_upload = fail_upload

    async def upload(self, bucket, path, data, content_type, overwrite=True):
        self.upload_attempts.append((bucket, path))
        if self.fail_upload is not None and self.fail_upload(bucket, path):
            raise UploadError(f"Upload rejected: {bucket}/{path}", context={"bucket": bucket, "path": path})
        self.objects[(bucket, path)] = data
        self.content_types[(bucket, path)] = content_type

    async def download(self, bucket, path):
        if (bucket, path) not in self.objects:
            raise BlobNotFoundError(f"Object not found: {bucket}/{path}", context={"bucket": bucket, "path": path})
        return self.objects[(bucket, path)]

    def keys(self, bucket: str) -> List[str]:
        return [path for (b, path) in self.objects if b == bucket]


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


def build_pdf(page_count: int = 3, width: float = 612, height: float = 792) -> bytes:
    """Build a small PDF with one line of text per page."""
    doc = fitz.open()
    for index in range(page_count):
        page = doc.new_page(width=width, height=height)
        page.insert_text((72, 72), f"SHEET A-{index + 101}", fontsize=24)
        page.draw_rect(fitz.Rect(36, 36, width - 36, height - 36), color=(0, 0, 0), width=2)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def pdf_factory():
    """Factory for in-memory PDFs: pdf_factory(page_count, width, height)"""
    return build_pdf


@pytest_asyncio.fixture
async def package_factory(db_session, blob_store):
    """
    Seed a project, a draft package and its documents.

    Each entry of page_counts becomes one document, uploaded in list
    order. An int stores a PDF with that many pages; bytes are stored
    as-is; None leaves the upload missing from the blob store.
    """

    async def _create(page_counts, label: str = "Issued for Construction"):
        owner_id = uuid.uuid4()
        project = Project(owner_id=owner_id, name="Riverside Tower")
        db_session.add(project)
        await db_session.flush()

        package = Package(
            project_id=project.id,
            created_by=owner_id,
            label=label,
            status=PackageStatus.DRAFT,
        )
        db_session.add(package)
        await db_session.flush()

        documents = []
        uploaded_at = datetime(2024, 1, 15, 10, 0, 0)
        for index, content in enumerate(page_counts):
            document_id = uuid.uuid4()
            filename = f"drawings-{index + 1}.pdf"
            storage_path = get_document_storage_path(
                owner_id, project.id, package.id, document_id, filename
            )
            document = Document(
                id=document_id,
                package_id=package.id,
                original_filename=filename,
                storage_path=storage_path,
                created_at=uploaded_at + timedelta(minutes=index),
            )
            db_session.add(document)
            documents.append(document)

            if isinstance(content, int):
                blob_store.objects[(BUCKETS.RAW_UPLOADS, storage_path)] = build_pdf(content)
            elif isinstance(content, bytes):
                blob_store.objects[(BUCKETS.RAW_UPLOADS, storage_path)] = content

        await db_session.commit()
        # Detached, like rows handed out by RecordStore
        db_session.expunge_all()
        return package, documents

    return _create


@pytest_asyncio.fixture
async def job_factory(db_session):
    """Insert a job row; defaults to a pending render_package job for package."""

    async def _create(
        package: Optional[Package] = None,
        payload: Optional[dict] = None,
        job_type: JobType = JobType.RENDER_PACKAGE,
        status: JobStatus = JobStatus.PENDING,
        created_at: Optional[datetime] = None,
    ) -> Job:
        if payload is None:
            payload = {"packageId": str(package.id)} if package is not None else {}
        job = Job(
            project_id=package.project_id if package is not None else None,
            created_by=package.created_by if package is not None else None,
            type=job_type,
            status=status,
            progress=0.0,
            payload=payload,
            created_at=created_at or datetime.utcnow(),
        )
        db_session.add(job)
        await db_session.commit()
        db_session.expunge(job)
        return job

    return _create
