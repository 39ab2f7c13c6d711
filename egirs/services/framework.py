# services/framework.py
"""Read contracts of the assessment framework and administrative unit collaborators."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple
from uuid import UUID

from egirs.db.enums import UnitType
from egirs.db.schemas.framework import (
	DimensionRead,
	IndicatorRead,
	QuestionnaireItem,
	SubQuestionRead,
	UnitRead,
)

logger = logging.getLogger(__name__)

# deepest sub-question nesting level (0-based) the framework allows
MAX_SUB_QUESTION_DEPTH = 2

_UNIT_TYPE_ALIASES: dict[UnitType, UnitType] = {
	UnitType.FEDERAL_INSTITUTE: UnitType.REGION,
	UnitType.CITY_ADMINISTRATION: UnitType.REGION,
	UnitType.SUB_CITY: UnitType.WOREDA,
}


class AssessmentFramework(Protocol):
	async def get_dimensions_by_year(self, assessment_year_id: UUID) -> List[DimensionRead]: ...

	async def get_indicators_by_dimension(self, dimension_id: UUID) -> List[IndicatorRead]: ...

	async def get_sub_questions_by_indicator(self, indicator_id: UUID) -> List[SubQuestionRead]: ...

	async def get_sub_question_by_id(self, sub_question_id: UUID) -> Optional[SubQuestionRead]: ...


class AdministrativeUnitDirectory(Protocol):
	async def get_unit_by_id(self, unit_id: UUID) -> Optional[UnitRead]: ...

	async def list_units(self) -> List[UnitRead]: ...


def applicable_unit_type(unit_type: UnitType | str) -> UnitType:
	"""Indicator unit type a unit answers: institutes and city administrations use Region, sub-cities use Woreda."""
	unit_type = UnitType(unit_type)
	return _UNIT_TYPE_ALIASES.get(unit_type, unit_type)


def order_sub_questions_tree(sub_questions: Sequence[SubQuestionRead]) -> List[Tuple[SubQuestionRead, int]]:
	"""
	Flatten sub-questions of one indicator depth-first, parent before children.

	Siblings keep their input order. A sub-question whose parent is not part of the
	input is treated as a root. Returns ``(sub_question, depth)`` pairs.
	"""
	known = {sq.sub_question_id for sq in sub_questions}
	children: dict[Optional[UUID], list[SubQuestionRead]] = {}
	for sq in sub_questions:
		parent = sq.parent_sub_question_id if sq.parent_sub_question_id in known else None
		children.setdefault(parent, []).append(sq)

	ordered: List[Tuple[SubQuestionRead, int]] = []
	visited: set[UUID] = set()

	def _walk(parent: Optional[UUID], depth: int) -> None:
		for sq in children.get(parent, []):
			if sq.sub_question_id in visited:
				continue
			visited.add(sq.sub_question_id)
			if depth > MAX_SUB_QUESTION_DEPTH:
				logger.warning(
					"Sub-question %s nested deeper than %s levels",
					sq.sub_question_id,
					MAX_SUB_QUESTION_DEPTH + 1,
				)
			ordered.append((sq, depth))
			_walk(sq.sub_question_id, depth + 1)

	_walk(None, 0)

	# parent cycles leave nodes unreachable from any root
	for sq in sub_questions:
		if sq.sub_question_id not in visited:
			visited.add(sq.sub_question_id)
			ordered.append((sq, 0))
	return ordered


async def get_sub_questions_in_tree_order(framework: AssessmentFramework, indicator_id: UUID) -> List[SubQuestionRead]:
	sub_questions = await framework.get_sub_questions_by_indicator(indicator_id)
	return [sq for sq, _depth in order_sub_questions_tree(sub_questions)]


async def build_questionnaire(
	framework: AssessmentFramework,
	assessment_year_id: UUID,
	unit_type: UnitType | str,
) -> List[QuestionnaireItem]:
	"""Every sub-question a unit of ``unit_type`` must answer for the year, in display order."""
	target = applicable_unit_type(unit_type)
	items: List[QuestionnaireItem] = []
	for dimension in await framework.get_dimensions_by_year(assessment_year_id):
		for indicator in await framework.get_indicators_by_dimension(dimension.dimension_id):
			if indicator.applicable_unit_type != target:
				continue
			sub_questions = await framework.get_sub_questions_by_indicator(indicator.indicator_id)
			for sq, depth in order_sub_questions_tree(sub_questions):
				items.append(
					QuestionnaireItem(dimension=dimension, indicator=indicator, sub_question=sq, depth=depth)
				)
	return items


def index_questionnaire(items: Iterable[QuestionnaireItem]) -> dict[UUID, QuestionnaireItem]:
	return {item.sub_question.sub_question_id: item for item in items}
