# db/schemas/submission.py
import uuid
from datetime import datetime
from typing import Optional
from egirs.db.schemas._base import OrmModel
from egirs.db.enums import SubmissionStatus
from egirs.utils.sentinels import Missing

class SubmissionBase(OrmModel):
    unit_id: uuid.UUID
    assessment_year_id: uuid.UUID
    contributor_user_id: uuid.UUID
    submission_name: Optional[str] = None

class SubmissionCreate(SubmissionBase): ...
class SubmissionRead(SubmissionBase):
    id: uuid.UUID
    status: SubmissionStatus = SubmissionStatus.DRAFT
    approver_user_id: Optional[uuid.UUID] = None
    submitted_date: Optional[datetime] = None
    approval_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    validator_user_id: Optional[uuid.UUID] = None
    validation_date: Optional[datetime] = None
    finalized_by_user_id: Optional[uuid.UUID] = None
    finalized_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status == SubmissionStatus.SCORING_COMPLETE

class SubmissionUpdate(OrmModel):
    id: uuid.UUID
    submission_name: str | None | Missing = Missing()
    status: SubmissionStatus | Missing = Missing()
    approver_user_id: uuid.UUID | Missing = Missing()
    submitted_date: datetime | Missing = Missing()
    approval_date: datetime | Missing = Missing()
    rejection_reason: str | None | Missing = Missing()
    validator_user_id: uuid.UUID | Missing = Missing()
    validation_date: datetime | Missing = Missing()
    finalized_by_user_id: uuid.UUID | Missing = Missing()
    finalized_at: datetime | Missing = Missing()
