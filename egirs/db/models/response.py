# db/models/response.py
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import Enum as SAEnum, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from egirs.db.models._base import Base
from egirs.db.enums import ReviewStatus
from egirs.utils.clock import utcnow

class Response(Base):
    __tablename__ = "response"
    __table_args__ = (
        UniqueConstraint("submission_id", "sub_question_id", name="uq_response_submission_sub_question"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("submission.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sub_question_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    response_value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    evidence_link: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    evidence_file_path: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    answered_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    regional_approval_status: Mapped[ReviewStatus] = mapped_column(
        SAEnum(ReviewStatus, name="review_status"), nullable=False, default=ReviewStatus.PENDING
    )
    regional_rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    regional_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    validation_status: Mapped[ReviewStatus] = mapped_column(
        SAEnum(ReviewStatus, name="review_status"), nullable=False, default=ReviewStatus.PENDING
    )
    central_rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    general_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    central_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    # frozen at chairman finalization
    chairman_score: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 4), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    submission = relationship("Submission", back_populates="responses")
