# db/models/subjective_score.py
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import DateTime, ForeignKey, Numeric, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from egirs.db.models._base import Base
from egirs.utils.clock import utcnow

class SubjectiveScore(Base):
    __tablename__ = "subjective_score"
    __table_args__ = (
        UniqueConstraint("response_id", "committee_member_id", name="uq_subjective_score_member"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    response_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("response.id", ondelete="CASCADE"), nullable=False, index=True
    )
    committee_member_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    assigned_score: Mapped[Decimal] = mapped_column(Numeric(3, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
