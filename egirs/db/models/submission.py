# db/models/submission.py
import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import Enum as SAEnum, DateTime, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from egirs.db.models._base import Base
from egirs.db.enums import SubmissionStatus
from egirs.utils.clock import utcnow

class Submission(Base):
    __tablename__ = "submission"
    __table_args__ = (
        Index("ix_submission_owner", "unit_id", "assessment_year_id", "contributor_user_id"),
        # at most one open submission per owner triple; the enum column stores member names
        Index(
            "uq_submission_open_owner",
            "unit_id",
            "assessment_year_id",
            "contributor_user_id",
            unique=True,
            postgresql_where=text("status <> 'SCORING_COMPLETE'"),
            sqlite_where=text("status <> 'SCORING_COMPLETE'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    unit_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    assessment_year_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    contributor_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    submission_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    status: Mapped[SubmissionStatus] = mapped_column(
        SAEnum(SubmissionStatus, name="submission_status"),
        nullable=False,
        default=SubmissionStatus.DRAFT,
        index=True,
    )

    approver_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    submitted_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    approval_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    validator_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    validation_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    finalized_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    responses: Mapped[List["Response"]] = relationship(back_populates="submission", passive_deletes=True)
