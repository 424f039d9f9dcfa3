"""Admin review schemas."""
from datetime import datetime
from typing import Literal
from pydantic import Field
from app.schemas.auth import CamelModel, UserResponse


class VerificationReview(CamelModel):
    decision: Literal["verified", "rejected"]
    notes: str | None = Field(default=None, max_length=2000)


class PendingVerificationResponse(UserResponse):
    """A user awaiting review, with the stored document paths."""
    id_scan_url: str | None = None
    face_scan_url: str | None = None
    buyer_id_scan_url: str | None = None
    buyer_face_scan_url: str | None = None
    verification_submitted_at: datetime | None = None
    verification_reviewed_at: datetime | None = None
    verification_notes: str | None = None
