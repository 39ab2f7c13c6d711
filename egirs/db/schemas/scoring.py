# db/schemas/scoring.py
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any
from pydantic import field_validator
from egirs.db.schemas._base import OrmModel

ALLOWED_SCORES: frozenset[Decimal] = frozenset({Decimal("0"), Decimal("0.5"), Decimal("1")})


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.5 exact for floats
    return Decimal(str(value))


class SubjectiveScoreCreate(OrmModel):
    response_id: uuid.UUID
    committee_member_id: uuid.UUID
    assigned_score: Decimal

    @field_validator("assigned_score", mode="before")
    @classmethod
    def _allowed_score(cls, value: Any) -> Decimal:
        try:
            score = to_decimal(value)
        except ArithmeticError:
            raise ValueError("Score must be a number.")
        if score not in ALLOWED_SCORES:
            raise ValueError("Score must be one of 0, 0.5 or 1.")
        return score

class SubjectiveScoreRead(OrmModel):
    id: uuid.UUID
    response_id: uuid.UUID
    committee_member_id: uuid.UUID
    assigned_score: Decimal
    created_at: datetime
    updated_at: datetime

class ChairmanScoringSubmissionRead(OrmModel):
    id: uuid.UUID
    submission_id: uuid.UUID
    committee_member_id: uuid.UUID
    submitted_at: datetime

class ScoringProgress(OrmModel):
    submission_id: uuid.UUID
    submitted_count: int
    committee_size: int
    member_ids: list[uuid.UUID] = []

    @property
    def is_complete(self) -> bool:
        return self.committee_size > 0 and self.submitted_count >= self.committee_size
