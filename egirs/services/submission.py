# services/submission.py
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from egirs.db.enums import SubmissionStatus, WorkflowEvent
from egirs.db.schemas.actor import ActorRead
from egirs.db.schemas.framework import QuestionnaireItem
from egirs.db.schemas.submission import SubmissionCreate, SubmissionRead, SubmissionUpdate
from egirs.services import events as notifications
from egirs.services._base import WorkflowService
from egirs.services.access import (
	CONTRIBUTOR_ROLES,
	EDIT_SUBMISSION,
	SUBMIT_DATA,
	can_access_unit,
	ensure_permitted,
	filter_submissions_by_access,
)
from egirs.services.audit_log import instrument_service_class
from egirs.services.errors import PermissionDenied
from egirs.services.events import notify_update
from egirs.services.state_machine import next_status
from egirs.utils.clock import utcnow

logger = logging.getLogger(__name__)


class SubmissionService(WorkflowService):
	"""Contributor side of the lifecycle: draft creation, naming, submission and queries."""

	async def get_or_create_draft_submission(
		self,
		unit_id: UUID,
		assessment_year_id: UUID,
		actor: ActorRead,
		submission_name: Optional[str] = None,
	) -> SubmissionRead:
		ensure_permitted(actor, SUBMIT_DATA)
		if not can_access_unit(actor, unit_id, []):
			raise PermissionDenied(f"User {actor.user_id} cannot submit data for unit {unit_id}.")

		try:
			async with self._database.session() as s:
				existing = await self._database.find_open_submission(
					unit_id, assessment_year_id, actor.user_id, session=s
				)
				if existing is not None:
					return existing
				created = await self._database.create_submission(
					SubmissionCreate(
						unit_id=unit_id,
						assessment_year_id=assessment_year_id,
						contributor_user_id=actor.user_id,
						submission_name=(submission_name or "").strip() or None,
					),
					session=s,
				)
		except IntegrityError:
			# a concurrent call opened the draft first
			existing = await self._database.find_open_submission(unit_id, assessment_year_id, actor.user_id)
			if existing is None:
				raise
			return existing

		logger.info("Draft submission %s created for unit %s", created.id, unit_id)
		return created

	@notify_update("submission_id")
	async def rename_submission(self, submission_id: UUID, actor: ActorRead, submission_name: Optional[str]) -> SubmissionRead:
		async with self._database.session() as s:
			submission = await self._lock_submission(s, submission_id)
			ensure_permitted(actor, EDIT_SUBMISSION, submission, await self._scope_units(actor))
			return await self._database.update_submission(
				SubmissionUpdate(id=submission.id, submission_name=(submission_name or "").strip() or None),
				session=s,
			)

	@notify_update("submission_id")
	async def submit_for_approval(self, submission_id: UUID, actor: ActorRead) -> SubmissionRead:
		"""
		Hand a Draft (or rejected) submission to the regional/federal approvers.

		Every sub-question applicable to the unit's type must carry a non-empty answer; otherwise
		ValidationError names the incomplete dimension(s) and lists each missing item.
		"""
		async with self._database.session() as s:
			submission = await self._lock_submission(s, submission_id)
			if actor.role not in CONTRIBUTOR_ROLES or submission.contributor_user_id != actor.user_id:
				raise PermissionDenied("Only the contributor who owns the submission can submit it.")
			target = next_status(submission.status, WorkflowEvent.SUBMIT_FOR_APPROVAL)

			await self._ensure_complete(s, submission)

			updated = await self._database.update_submission(
				SubmissionUpdate(id=submission.id, status=target, submitted_date=utcnow()),
				session=s,
			)

		logger.info("Submission %s submitted for approval (%s -> %s)", updated.id, submission.status, updated.status)
		await self._notify(notifications.submission_received(updated, await self._unit_name(updated.unit_id)))
		return updated

	# --- queries ---

	async def get_submission(self, submission_id: UUID) -> SubmissionRead:
		return await self._require_submission(submission_id)

	async def get_questionnaire(self, submission_id: UUID) -> List[QuestionnaireItem]:
		submission = await self._require_submission(submission_id)
		return await self._require_questionnaire(submission)

	async def list_submissions(
		self,
		status: SubmissionStatus | None = None,
		unit_id: UUID | None = None,
		contributor_user_id: UUID | None = None,
	) -> List[SubmissionRead]:
		return await self._database.list_submissions(
			statuses=[status] if status is not None else None,
			unit_id=unit_id,
			contributor_user_id=contributor_user_id,
		)

	async def list_submissions_for_actor(self, actor: ActorRead, status: SubmissionStatus | None = None) -> List[SubmissionRead]:
		submissions = await self.list_submissions(status=status)
		units = await self._units.list_units() if self._units is not None else []
		return filter_submissions_by_access(submissions, actor, units)

	async def get_submissions_pending_chairman_approval(self) -> List[SubmissionRead]:
		"""Submissions awaiting the Chairman: explicitly pending, or Validated with member scoring submitted."""
		candidates = await self._database.list_submissions(
			statuses=[SubmissionStatus.PENDING_CHAIRMAN_APPROVAL, SubmissionStatus.VALIDATED]
		)
		with_records = await self._database.submission_ids_with_chairman_records()
		return [
			sub for sub in candidates
			if sub.status == SubmissionStatus.PENDING_CHAIRMAN_APPROVAL or sub.id in with_records
		]


instrument_service_class(
	SubmissionService,
	prefix="services.submission",
	exclude=(
		"get_submission",
		"get_questionnaire",
		"list_submissions",
		"list_submissions_for_actor",
		"get_submissions_pending_chairman_approval",
	),
)
