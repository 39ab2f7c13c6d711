# db/schemas/actor.py
import uuid
from typing import Optional
from egirs.db.schemas._base import OrmModel
from egirs.db.enums import ActorRole

class ActorRead(OrmModel):
    """The authenticated user on whose behalf a workflow call is made."""
    user_id: uuid.UUID
    role: ActorRole
    official_unit_id: Optional[uuid.UUID] = None
    full_name: Optional[str] = None
