# db/models/chairman_scoring_submission.py
import uuid
from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from egirs.db.models._base import Base
from egirs.utils.clock import utcnow

class ChairmanScoringSubmission(Base):
    __tablename__ = "chairman_scoring_submission"
    __table_args__ = (
        UniqueConstraint("submission_id", "committee_member_id", name="uq_chairman_scoring_member"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("submission.id", ondelete="CASCADE"), nullable=False, index=True
    )
    committee_member_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
