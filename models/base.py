from sqlalchemy import Enum, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class PackageStatus(str, enum.Enum):
    """Package lifecycle status"""
    DRAFT = "draft"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class JobStatus(str, enum.Enum):
    """Job lifecycle status"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobType(str, enum.Enum):
    """Job types that can be enqueued"""
    RENDER_PACKAGE = "render_package"
    EXTRACT_METADATA = "extract_metadata"
    ALIGN_SHEETS = "align_sheets"
    DETECT_CHANGES = "detect_changes"


def enum_column(enum_cls, name: str) -> Enum:
    """Enum column persisted by value ("pending"), not by member name."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        validate_strings=True,
    )
