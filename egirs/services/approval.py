# services/approval.py
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from egirs.db.enums import AggregateResult, ReviewStatus, SubmissionStatus, WorkflowEvent
from egirs.db.schemas.actor import ActorRead
from egirs.db.schemas.response import ResponseRead, ResponseReviewUpdate
from egirs.db.schemas.submission import SubmissionRead, SubmissionUpdate
from egirs.services import events as notifications
from egirs.services._base import WorkflowService
from egirs.services.access import (
	APPROVE_SUBMISSION,
	CONTRIBUTOR_ROLES,
	VALIDATE_SUBMISSION,
	can_perform_action,
	ensure_permitted,
)
from egirs.services.audit_log import instrument_service_class
from egirs.services.errors import PermissionDenied, PreconditionViolation, ValidationError
from egirs.services.events import notify_update
from egirs.services.state_machine import aggregate_review, ensure_status, next_status
from egirs.utils.clock import utcnow

logger = logging.getLogger(__name__)

REGIONAL_REJECTION_HEADER = "Regional Approver Rejection Reasons:"
CENTRAL_REJECTION_HEADER = "Central Committee Rejection Reasons:"
ADDITIONAL_COMMENTS_PREFIX = "Additional Comments from Approver: "


class ApprovalCoordinator(WorkflowService):
	"""
	Regional/federal approval and Central Committee validation of submissions.

	Per-response decisions never move the submission; the ``submit_*`` operations re-read
	every response under the submission row lock, aggregate, and flip the status in the
	same transaction.
	"""

	# ---------- regional / federal stage ----------

	async def approve_response_by_regional_approver(
		self,
		response_id: UUID,
		actor: ActorRead,
		note: Optional[str] = None,
	) -> ResponseRead:
		update = ResponseReviewUpdate(
			id=response_id,
			regional_approval_status=ReviewStatus.APPROVED,
			regional_rejection_reason=None,
		)
		if note is not None:
			# an explicit note replaces the saved one; omitted keeps it
			update.regional_note = note.strip() or None
		async with self._database.session() as s:
			await self._regional_target(s, response_id, actor)
			return await self._database.update_response_review(update, session=s)

	async def reject_response_by_regional_approver(
		self,
		response_id: UUID,
		actor: ActorRead,
		reason: str,
	) -> ResponseRead:
		reason = self._require_text(reason, "A rejection reason is required.")
		async with self._database.session() as s:
			response, _submission = await self._regional_target(s, response_id, actor)
			return await self._database.update_response_review(
				ResponseReviewUpdate(
					id=response.id,
					regional_approval_status=ReviewStatus.REJECTED,
					regional_rejection_reason=reason,
				),
				session=s,
			)

	async def save_regional_note(self, response_id: UUID, actor: ActorRead, note: Optional[str]) -> ResponseRead:
		async with self._database.session() as s:
			response, _submission = await self._regional_target(s, response_id, actor)
			return await self._database.update_response_review(
				ResponseReviewUpdate(id=response.id, regional_note=(note or "").strip() or None),
				session=s,
			)

	async def approve_all_answered(
		self,
		submission_id: UUID,
		actor: ActorRead,
		note: Optional[str] = None,
	) -> List[ResponseRead]:
		"""Approve every answered response still pending at the regional stage; decided ones are left alone."""
		note = (note or "").strip() or None
		async with self._database.session() as s:
			submission = await self._regional_submission(s, submission_id, actor)
			responses = await self._database.list_responses_by_submission(submission.id, session=s)
			updated: List[ResponseRead] = []
			for r in responses:
				if not r.is_answered or r.regional_approval_status != ReviewStatus.PENDING:
					continue
				updated.append(await self._database.update_response_review(
					ResponseReviewUpdate(
						id=r.id,
						regional_approval_status=ReviewStatus.APPROVED,
						regional_rejection_reason=None,
						regional_note=note if note is not None else r.regional_note,
					),
					session=s,
				))
		logger.info("Approved %s pending responses of submission %s", len(updated), submission_id)
		return updated

	async def reject_all_answered(self, submission_id: UUID, actor: ActorRead, reason: str) -> List[ResponseRead]:
		reason = self._require_text(reason, "A rejection reason is required.")
		async with self._database.session() as s:
			submission = await self._regional_submission(s, submission_id, actor)
			responses = await self._database.list_responses_by_submission(submission.id, session=s)
			updated: List[ResponseRead] = []
			for r in responses:
				if not r.is_answered:
					continue
				updated.append(await self._database.update_response_review(
					ResponseReviewUpdate(
						id=r.id,
						regional_approval_status=ReviewStatus.REJECTED,
						regional_rejection_reason=reason,
					),
					session=s,
				))
		logger.info("Rejected %s answered responses of submission %s", len(updated), submission_id)
		return updated

	@notify_update("submission_id")
	async def submit_regional_approval(self, submission_id: UUID, actor: ActorRead) -> SubmissionRead:
		"""
		Close the regional stage. All approved: PendingCentralValidation, with every central
		review reset to Pending. Any rejected: RejectedByRegionalApprover, with the numbered
		list of rejected questions written to ``rejection_reason``.
		"""
		async with self._database.session() as s:
			submission = await self._regional_submission(s, submission_id, actor)
			responses = await self._database.list_responses_by_submission(submission.id, session=s)
			answered = await self._answered_in_order(submission, responses)
			await self._ensure_reviewed(
				submission,
				[r for r in answered if r.regional_approval_status == ReviewStatus.PENDING],
				"Please review all questions before submitting approval.",
			)
			outcome = aggregate_review(r.regional_approval_status for r in answered)
			target = next_status(submission.status, WorkflowEvent.SUBMIT_REGIONAL_APPROVAL, outcome)
			now = utcnow()

			if outcome == AggregateResult.ALL_APPROVED:
				for r in responses:
					await self._database.update_response_review(
						ResponseReviewUpdate(
							id=r.id,
							validation_status=ReviewStatus.PENDING,
							central_rejection_reason=None,
							general_note=None,
							central_reviewed_at=None,
						),
						session=s,
					)
				rejection_reason = None
			else:
				rejected = [
					(r.sub_question_id, r.regional_rejection_reason)
					for r in answered
					if r.regional_approval_status == ReviewStatus.REJECTED and r.regional_rejection_reason
				]
				rejection_reason = await self._compose_reasons(REGIONAL_REJECTION_HEADER, rejected)

			updated = await self._database.update_submission(
				SubmissionUpdate(
					id=submission.id,
					status=target,
					approver_user_id=actor.user_id,
					approval_date=now,
					rejection_reason=rejection_reason,
				),
				session=s,
			)

		logger.info("Regional review of submission %s closed: %s", updated.id, updated.status)
		unit_name = await self._unit_name(updated.unit_id)
		if outcome == AggregateResult.ALL_APPROVED:
			approver_name = actor.full_name or "Regional Approver"
			await self._notify(notifications.approved_by_approver(updated, unit_name, approver_name))
		else:
			await self._notify(notifications.rejected_by_approver(updated, unit_name))
		return updated

	# ---------- central stage ----------

	async def validate_response(
		self,
		response_id: UUID,
		actor: ActorRead,
		status: ReviewStatus,
		rejection_reason: Optional[str] = None,
		general_note: Optional[str] = None,
	) -> ResponseRead:
		status = ReviewStatus(status)
		reason: Optional[str] = None
		if status == ReviewStatus.REJECTED:
			reason = self._require_text(rejection_reason, "A rejection reason is required.")
		ensure_permitted(actor, VALIDATE_SUBMISSION)

		async with self._database.session() as s:
			response = await self._require_response(response_id, s)
			submission = await self._lock_submission(s, response.submission_id)
			ensure_status(submission.status, [SubmissionStatus.PENDING_CENTRAL_VALIDATION], "validate a response")
			return await self._database.update_response_review(
				ResponseReviewUpdate(
					id=response.id,
					validation_status=status,
					central_rejection_reason=reason,
					general_note=(general_note or "").strip() or None,
					central_reviewed_at=utcnow(),
				),
				session=s,
			)

	@notify_update("submission_id")
	async def submit_central_validation(self, submission_id: UUID, actor: ActorRead) -> SubmissionRead:
		"""
		Close the central stage. All approved: Validated. Any rejected: RejectedByCentralCommittee,
		and the rejected responses go back to Pending at the regional stage.
		"""
		ensure_permitted(actor, VALIDATE_SUBMISSION)
		async with self._database.session() as s:
			submission = await self._lock_submission(s, submission_id)
			ensure_status(submission.status, [SubmissionStatus.PENDING_CENTRAL_VALIDATION], "submit central validation")
			responses = await self._database.list_responses_by_submission(submission.id, session=s)
			answered = await self._answered_in_order(submission, responses)
			await self._ensure_reviewed(
				submission,
				[r for r in answered if r.validation_status == ReviewStatus.PENDING],
				"Please review and validate all questions before submitting.",
			)
			outcome = aggregate_review(r.validation_status for r in answered)
			target = next_status(submission.status, WorkflowEvent.SUBMIT_CENTRAL_VALIDATION, outcome)

			if outcome == AggregateResult.ANY_REJECTED:
				for r in responses:
					if r.validation_status != ReviewStatus.REJECTED:
						continue
					await self._database.update_response_review(
						ResponseReviewUpdate(
							id=r.id,
							regional_approval_status=ReviewStatus.PENDING,
							regional_rejection_reason=None,
						),
						session=s,
					)
				rejection_reason = await self._compose_reasons(
					CENTRAL_REJECTION_HEADER,
					[
						(r.sub_question_id, r.central_rejection_reason)
						for r in answered
						if r.validation_status == ReviewStatus.REJECTED and r.central_rejection_reason
					],
				)
			else:
				rejection_reason = None

			updated = await self._database.update_submission(
				SubmissionUpdate(
					id=submission.id,
					status=target,
					validator_user_id=actor.user_id,
					validation_date=utcnow(),
					rejection_reason=rejection_reason,
				),
				session=s,
			)

		logger.info("Central validation of submission %s closed: %s", updated.id, updated.status)
		unit_name = await self._unit_name(updated.unit_id)
		if outcome == AggregateResult.ALL_APPROVED:
			await self._notify(notifications.validated_by_central_committee(updated, unit_name))
		else:
			await self._notify(notifications.rejected_by_central_committee(updated, unit_name))
		return updated

	@notify_update("submission_id")
	async def reject_to_contributor(self, submission_id: UUID, actor: ActorRead, additional_comment: str) -> SubmissionRead:
		"""Send a centrally rejected submission back to its contributor with the approver's comment appended."""
		comment = self._require_text(additional_comment, "Please provide comments for the contributor.")
		async with self._database.session() as s:
			submission = await self._lock_submission(s, submission_id)
			ensure_permitted(actor, APPROVE_SUBMISSION, submission, await self._scope_units(actor))
			target = next_status(submission.status, WorkflowEvent.REJECT_TO_CONTRIBUTOR)

			text = submission.rejection_reason or ""
			if not text:
				responses = await self._database.list_responses_by_submission(submission.id, session=s)
				ordered = await self._order_responses(submission, responses)
				text = await self._compose_reasons(
					CENTRAL_REJECTION_HEADER,
					[
						(r.sub_question_id, r.central_rejection_reason)
						for r in ordered
						if r.validation_status == ReviewStatus.REJECTED and r.central_rejection_reason
					],
				) or ""
			text = text.rstrip()
			text += ("\n\n" if text else "") + ADDITIONAL_COMMENTS_PREFIX + comment

			updated = await self._database.update_submission(
				SubmissionUpdate(
					id=submission.id,
					status=target,
					approver_user_id=actor.user_id,
					rejection_reason=text,
				),
				session=s,
			)

		logger.info("Submission %s sent back to contributor %s", updated.id, updated.contributor_user_id)
		await self._notify(notifications.rejected_by_approver(updated, await self._unit_name(updated.unit_id)))
		return updated

	@notify_update("submission_id")
	async def resubmit_to_central_committee(self, submission_id: UUID, actor: ActorRead) -> SubmissionRead:
		"""
		Return a centrally rejected submission straight to central review, skipping the regional
		stage. The submission must be complete, and every rejected response must carry a non-empty
		answer saved after its central review; those go back to Pending while their rejection
		reasons stay readable.
		"""
		async with self._database.session() as s:
			submission = await self._lock_submission(s, submission_id)
			self._ensure_can_resubmit(actor, submission, await self._scope_units(actor))
			target = next_status(submission.status, WorkflowEvent.RESUBMIT_TO_CENTRAL_COMMITTEE)

			await self._ensure_complete(s, submission)
			responses = await self._database.list_responses_by_submission(submission.id, session=s)
			rejected = [r for r in responses if r.validation_status == ReviewStatus.REJECTED]
			stale = [
				r for r in rejected
				if not r.is_answered
				or (r.central_reviewed_at is not None and r.answered_at <= r.central_reviewed_at)
			]
			if stale:
				items = await self._describe(submission, [r.sub_question_id for r in stale])
				listed = "; ".join(item.sub_question_text for item in items)
				raise PreconditionViolation(
					f"Edit the responses rejected by the Central Committee before resubmitting: {listed}"
				)

			for r in rejected:
				await self._database.update_response_review(
					ResponseReviewUpdate(id=r.id, validation_status=ReviewStatus.PENDING),
					session=s,
				)
			updated = await self._database.update_submission(
				SubmissionUpdate(id=submission.id, status=target),
				session=s,
			)

		logger.info("Submission %s resubmitted to the Central Committee", updated.id)
		return updated

	# ---------- helpers ----------

	async def _regional_submission(self, s: AsyncSession, submission_id: UUID, actor: ActorRead) -> SubmissionRead:
		submission = await self._lock_submission(s, submission_id)
		ensure_permitted(actor, APPROVE_SUBMISSION, submission, await self._scope_units(actor))
		ensure_status(submission.status, [SubmissionStatus.PENDING_INITIAL_APPROVAL], "review at the regional stage")
		return submission

	async def _regional_target(self, s: AsyncSession, response_id: UUID, actor: ActorRead) -> tuple[ResponseRead, SubmissionRead]:
		response = await self._require_response(response_id, s)
		submission = await self._regional_submission(s, response.submission_id, actor)
		return response, submission

	def _ensure_can_resubmit(self, actor: ActorRead, submission: SubmissionRead, units) -> None:
		if can_perform_action(actor, APPROVE_SUBMISSION, submission, units):
			return
		if actor.role in CONTRIBUTOR_ROLES and submission.contributor_user_id == actor.user_id:
			return
		raise PermissionDenied(f"Role '{actor.role}' is not allowed to resubmit submission {submission.id}.")

	async def _answered_in_order(self, submission: SubmissionRead, responses: List[ResponseRead]) -> List[ResponseRead]:
		answered = [r for r in responses if r.is_answered]
		if not answered:
			raise ValidationError("The submission has no answered responses to review.")
		return await self._order_responses(submission, answered)

	async def _ensure_reviewed(self, submission: SubmissionRead, pending: List[ResponseRead], message: str) -> None:
		if pending:
			raise ValidationError(message, await self._describe(submission, [r.sub_question_id for r in pending]))

	async def _compose_reasons(self, header: str, rejected: List[tuple[UUID, str]]) -> Optional[str]:
		if not rejected:
			return None
		text = f"{header}\n\n"
		for index, (sub_question_id, reason) in enumerate(rejected, start=1):
			text += f"{index}. Question: {await self._sub_question_text(sub_question_id)}\n"
			text += f"   Reason: {reason}\n\n"
		return text


instrument_service_class(ApprovalCoordinator, prefix="services.approval")
