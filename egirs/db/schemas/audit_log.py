# db/schemas/audit_log.py
import uuid
from datetime import datetime
from typing import Any, Optional
from pydantic import Field
from egirs.db.schemas._base import OrmModel

class AuditLogCreate(OrmModel):
    action: str = Field(max_length=128)
    actor_id: Optional[uuid.UUID] = None
    payload: dict[str, Any] = Field(default_factory=dict)

class AuditLogRead(AuditLogCreate):
    id: uuid.UUID
    created_at: datetime

    @property
    def is_error(self) -> bool:
        return self.action.endswith(".error")

    @property
    def submission_id(self) -> Optional[uuid.UUID]:
        raw = self.payload.get("submission_id")
        return uuid.UUID(raw) if raw else None

    @property
    def actor_role(self) -> Optional[str]:
        return (self.payload.get("actor") or {}).get("role")
