# services/_base.py
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from egirs.db.database import DataBase
from egirs.db.schemas.actor import ActorRead
from egirs.db.schemas.framework import QuestionnaireItem, UnitRead
from egirs.db.schemas.response import ResponseRead
from egirs.db.schemas.submission import SubmissionRead
from egirs.services.access import APPROVER_ROLES
from egirs.services.audit_log import AuditLogService
from egirs.services.errors import MissingItem, NotFound, ValidationError
from egirs.services.events import NotificationCreated, SubmissionEventBus
from egirs.services.framework import (
	AdministrativeUnitDirectory,
	AssessmentFramework,
	build_questionnaire,
	index_questionnaire,
)

logger = logging.getLogger(__name__)

UNKNOWN_UNIT = "Unknown Unit"


class WorkflowService:
	"""Shared wiring of the workflow services: store handle, collaborators, event bus and audit."""

	def __init__(
		self,
		database: DataBase,
		framework: Optional[AssessmentFramework] = None,
		units: Optional[AdministrativeUnitDirectory] = None,
		events: Optional[SubmissionEventBus] = None,
		*,
		audit_enabled: Optional[bool] = None,
	) -> None:
		self._database = database
		self._framework = framework
		self._units = units
		self._events = events or SubmissionEventBus()
		self._audit = AuditLogService(database, enabled=audit_enabled)

	@property
	def events(self) -> SubmissionEventBus:
		return self._events

	# --- lookups ---

	async def _lock_submission(self, s: AsyncSession, submission_id: UUID) -> SubmissionRead:
		submission = await self._database.get_submission_by_id(submission_id, session=s, for_update=True)
		if submission is None:
			raise NotFound(f"Submission {submission_id} not found.")
		return submission

	async def _require_submission(self, submission_id: UUID) -> SubmissionRead:
		submission = await self._database.get_submission_by_id(submission_id)
		if submission is None:
			raise NotFound(f"Submission {submission_id} not found.")
		return submission

	async def _require_response(self, response_id: UUID, s: Optional[AsyncSession] = None) -> ResponseRead:
		response = await self._database.get_response_by_id(response_id, session=s)
		if response is None:
			raise NotFound(f"Response {response_id} not found.")
		return response

	async def _scope_units(self, actor: ActorRead) -> List[UnitRead]:
		"""Unit list needed to resolve an approver's scope; other roles never need it."""
		if actor is None or actor.role not in APPROVER_ROLES or self._units is None:
			return []
		return await self._units.list_units()

	async def _unit_name(self, unit_id: UUID) -> str:
		if self._units is None:
			return UNKNOWN_UNIT
		unit = await self._units.get_unit_by_id(unit_id)
		return unit.official_unit_name if unit is not None else UNKNOWN_UNIT

	# --- questionnaire helpers ---

	async def _questionnaire(self, submission: SubmissionRead) -> List[QuestionnaireItem]:
		if self._framework is None or self._units is None:
			return []
		unit = await self._units.get_unit_by_id(submission.unit_id)
		if unit is None:
			return []
		return await build_questionnaire(self._framework, submission.assessment_year_id, unit.unit_type)

	async def _order_responses(
		self,
		submission: SubmissionRead,
		responses: Iterable[ResponseRead],
		questionnaire: Optional[Sequence[QuestionnaireItem]] = None,
	) -> List[ResponseRead]:
		if questionnaire is None:
			questionnaire = await self._questionnaire(submission)
		position = {item.sub_question.sub_question_id: idx for idx, item in enumerate(questionnaire)}
		return sorted(responses, key=lambda r: (position.get(r.sub_question_id, len(position)), r.created_at))

	async def _sub_question_text(self, sub_question_id: UUID) -> str:
		if self._framework is not None:
			sq = await self._framework.get_sub_question_by_id(sub_question_id)
			if sq is not None:
				return sq.sub_question_text
		return f"ID: {sub_question_id}"

	async def _describe(
		self,
		submission: SubmissionRead,
		sub_question_ids: Iterable[UUID],
		questionnaire: Optional[Sequence[QuestionnaireItem]] = None,
	) -> List[MissingItem]:
		if questionnaire is None:
			questionnaire = await self._questionnaire(submission)
		index = index_questionnaire(questionnaire)
		described: List[MissingItem] = []
		for sq_id in sub_question_ids:
			item = index.get(sq_id)
			if item is not None:
				described.append(MissingItem(
					dimension_name=item.dimension.dimension_name,
					indicator_name=item.indicator.indicator_name,
					sub_question_text=item.sub_question.sub_question_text,
					sub_question_id=sq_id,
				))
			else:
				described.append(MissingItem(
					dimension_name="",
					indicator_name="",
					sub_question_text=await self._sub_question_text(sq_id),
					sub_question_id=sq_id,
				))
		return described

	async def _require_questionnaire(self, submission: SubmissionRead) -> List[QuestionnaireItem]:
		if self._units is None or self._framework is None:
			raise RuntimeError(f"{type(self).__name__} needs the framework and unit directory to check completeness")
		unit = await self._units.get_unit_by_id(submission.unit_id)
		if unit is None:
			raise NotFound(f"Administrative unit {submission.unit_id} not found.")
		questionnaire = await build_questionnaire(self._framework, submission.assessment_year_id, unit.unit_type)
		if not questionnaire:
			raise ValidationError(f"No assessment questions apply to unit type '{unit.unit_type}' for this year.")
		return questionnaire

	async def _ensure_complete(self, s: AsyncSession, submission: SubmissionRead) -> None:
		"""
		Completeness gate for leaving Draft or a rejected state: every sub-question applicable to
		the unit's type needs a non-empty answer. Responses are read inside the caller's transaction.
		"""
		questionnaire = await self._require_questionnaire(submission)
		responses = await self._database.list_responses_by_submission(submission.id, session=s)
		answered = {r.sub_question_id for r in responses if r.is_answered}
		missing_ids = [
			item.sub_question.sub_question_id
			for item in questionnaire
			if item.sub_question.sub_question_id not in answered
		]
		if not missing_ids:
			return
		missing = await self._describe(submission, missing_ids, questionnaire)
		dimensions = list(dict.fromkeys(item.dimension_name for item in missing))
		raise ValidationError(
			f"Please answer all questions before submitting. Incomplete: {', '.join(dimensions)}.",
			missing,
		)

	# --- misc ---

	@staticmethod
	def _require_text(value: Optional[str], message: str) -> str:
		text = (value or "").strip()
		if not text:
			raise ValidationError(message)
		return text

	async def _notify(self, notification: Optional[NotificationCreated]) -> None:
		if notification is None:
			return
		await self._events.publish_notification(notification)
