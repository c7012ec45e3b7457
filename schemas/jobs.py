"""
Pydantic schemas for job payloads
"""

from pydantic import BaseModel, Field, ValidationError
from typing import Any, Dict, Optional
from uuid import UUID
from core.exceptions import JobPayloadError


class RenderPackagePayload(BaseModel):
    """
    Payload carried by render_package jobs.

    Stored as {"packageId": "<uuid>"} by the upload API.
    """
    package_id: UUID = Field(..., alias="packageId")

    class Config:
        populate_by_name = True
        extra = "allow"

    @classmethod
    def from_job_payload(
        cls,
        payload: Optional[Dict[str, Any]],
        job_id: Optional[Any] = None
    ) -> "RenderPackagePayload":
        """Validate a stored payload, raising JobPayloadError when unusable."""
        payload = payload or {}
        if "packageId" not in payload:
            raise JobPayloadError(
                "Job payload missing packageId",
                context={"job_id": str(job_id), "payload": payload}
            )
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise JobPayloadError(
                "Job payload has an invalid packageId",
                context={"job_id": str(job_id), "payload": payload},
                original_exception=e
            )


def package_id_from_payload(payload: Optional[Dict[str, Any]]) -> Optional[UUID]:
    """Best-effort package id lookup used when marking a package failed."""
    try:
        return RenderPackagePayload.from_job_payload(payload).package_id
    except JobPayloadError:
        return None
