# db/schemas/_base.py
from pydantic import BaseModel, ConfigDict

class OrmModel(BaseModel):
    """DTO base; every Read model is built straight from an ORM row."""
    model_config = ConfigDict(from_attributes=True)
