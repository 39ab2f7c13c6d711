# db/schemas/response.py
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional
from egirs.db.schemas._base import OrmModel
from egirs.db.enums import ReviewStatus
from egirs.utils.sentinels import Missing

class ResponseSave(OrmModel):
    submission_id: uuid.UUID
    sub_question_id: uuid.UUID
    response_value: str = ""
    evidence_link: Optional[str] = None
    evidence_file_path: Optional[str] = None

class ResponseRead(OrmModel):
    id: uuid.UUID
    submission_id: uuid.UUID
    sub_question_id: uuid.UUID
    response_value: str = ""
    evidence_link: Optional[str] = None
    evidence_file_path: Optional[str] = None
    answered_at: datetime
    regional_approval_status: ReviewStatus = ReviewStatus.PENDING
    regional_rejection_reason: Optional[str] = None
    regional_note: Optional[str] = None
    validation_status: ReviewStatus = ReviewStatus.PENDING
    central_rejection_reason: Optional[str] = None
    general_note: Optional[str] = None
    central_reviewed_at: Optional[datetime] = None
    chairman_score: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_answered(self) -> bool:
        return bool((self.response_value or "").strip())

class ResponseReviewUpdate(OrmModel):
    """Stage annotations written by the approval workflow; never by ``save_response``."""
    id: uuid.UUID
    regional_approval_status: ReviewStatus | Missing = Missing()
    regional_rejection_reason: str | None | Missing = Missing()
    regional_note: str | None | Missing = Missing()
    validation_status: ReviewStatus | Missing = Missing()
    central_rejection_reason: str | None | Missing = Missing()
    general_note: str | None | Missing = Missing()
    central_reviewed_at: datetime | None | Missing = Missing()
    chairman_score: Decimal | None | Missing = Missing()
