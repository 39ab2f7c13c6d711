# db/schemas/framework.py
import uuid
from typing import Optional
from egirs.db.schemas._base import OrmModel
from egirs.db.enums import ResponseType, UnitType

class UnitRead(OrmModel):
    unit_id: uuid.UUID
    official_unit_name: str
    unit_type: UnitType
    parent_unit_id: Optional[uuid.UUID] = None

class DimensionRead(OrmModel):
    dimension_id: uuid.UUID
    assessment_year_id: uuid.UUID
    dimension_name: str
    dimension_weight: float = 0.0

class IndicatorRead(OrmModel):
    indicator_id: uuid.UUID
    dimension_id: uuid.UUID
    indicator_name: str
    indicator_weight: float = 0.0
    applicable_unit_type: UnitType

class SubQuestionRead(OrmModel):
    sub_question_id: uuid.UUID
    parent_indicator_id: uuid.UUID
    parent_sub_question_id: Optional[uuid.UUID] = None
    sub_question_text: str
    sub_weight_percentage: float = 0.0
    response_type: ResponseType
    checkbox_options: Optional[str] = None

    @property
    def is_subjective(self) -> bool:
        return self.response_type == ResponseType.TEXT_EXPLANATION

class QuestionnaireItem(OrmModel):
    dimension: DimensionRead
    indicator: IndicatorRead
    sub_question: SubQuestionRead
    depth: int = 0
