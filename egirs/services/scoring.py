# services/scoring.py
import logging
from decimal import Decimal, ROUND_HALF_UP
from fractions import Fraction
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

import pydantic
from sqlalchemy.ext.asyncio import AsyncSession

from egirs.db.enums import WorkflowEvent
from egirs.db.schemas.actor import ActorRead
from egirs.db.schemas.response import ResponseRead, ResponseReviewUpdate
from egirs.db.schemas.scoring import (
	ChairmanScoringSubmissionRead,
	ScoringProgress,
	SubjectiveScoreCreate,
	SubjectiveScoreRead,
	to_decimal,
)
from egirs.db.schemas.submission import SubmissionRead, SubmissionUpdate
from egirs.services import events as notifications
from egirs.services._base import WorkflowService
from egirs.services.access import FINALIZE_SCORING, SCORE_SUBMISSION, ensure_permitted
from egirs.services.audit_log import instrument_service_class
from egirs.services.errors import PreconditionViolation, ValidationError
from egirs.services.events import notify_update
from egirs.services.state_machine import SCORING_OPEN, ensure_status, next_status
from egirs.utils.clock import utcnow

logger = logging.getLogger(__name__)

# storage precision of Response.chairman_score
_CHAIRMAN_SCORE_QUANT = Decimal("0.0001")


def consensus_mean(scores: List[SubjectiveScoreRead]) -> Optional[Fraction]:
	"""Exact arithmetic mean of the recorded member scores; None when nobody has scored."""
	if not scores:
		return None
	return sum((Fraction(s.assigned_score) for s in scores), Fraction(0)) / len(scores)


def _to_stored(value: Fraction) -> Decimal:
	return (Decimal(value.numerator) / Decimal(value.denominator)).quantize(_CHAIRMAN_SCORE_QUANT, rounding=ROUND_HALF_UP)


class SubjectiveScoringCoordinator(WorkflowService):
	"""
	Independent committee scoring of free-text responses and the Chairman's sign-off.

	Scores are keyed by (response, member): a member only ever overwrites their own score.
	"""

	async def get_subjective_responses_for_submission(
		self,
		submission_id: UUID,
		*,
		session: Optional[AsyncSession] = None,
	) -> List[ResponseRead]:
		responses = await self._database.list_responses_by_submission(submission_id, session=session)
		subjective: List[ResponseRead] = []
		for r in responses:
			sq = await self._framework.get_sub_question_by_id(r.sub_question_id) if self._framework else None
			if sq is not None and sq.is_subjective:
				subjective.append(r)
		return subjective

	async def assign_subjective_score(self, response_id: UUID, actor: ActorRead, score: Any) -> SubjectiveScoreRead:
		ensure_permitted(actor, SCORE_SUBMISSION)
		try:
			data = SubjectiveScoreCreate(
				response_id=response_id,
				committee_member_id=actor.user_id,
				assigned_score=score,
			)
		except pydantic.ValidationError as exc:
			raise ValidationError("Score must be one of 0, 0.5 or 1.") from exc

		async with self._database.session() as s:
			response = await self._require_response(response_id, s)
			submission = await self._lock_submission(s, response.submission_id)
			ensure_status(submission.status, SCORING_OPEN, "score responses")
			sq = await self._framework.get_sub_question_by_id(response.sub_question_id) if self._framework else None
			if sq is None or not sq.is_subjective:
				raise ValidationError("Only free-text responses are scored by the committee.")
			saved = await self._database.upsert_subjective_score(data, session=s)

		logger.debug("Member %s scored response %s with %s", actor.user_id, response_id, saved.assigned_score)
		return saved

	async def get_subjective_scores_by_response(self, response_id: UUID) -> List[SubjectiveScoreRead]:
		return await self._database.list_scores_by_response(response_id)

	async def get_final_sub_question_score(self, response_id: UUID) -> Optional[Fraction]:
		"""Current consensus mean, recomputed on every read."""
		return consensus_mean(await self._database.list_scores_by_response(response_id))

	async def get_approved_score(self, response_id: UUID) -> Optional[Fraction]:
		"""Score frozen by the Chairman at finalization, else the current consensus mean."""
		response = await self._require_response(response_id)
		if response.chairman_score is not None:
			return Fraction(response.chairman_score)
		return await self.get_final_sub_question_score(response_id)

	async def submit_my_scoring_to_chairman(self, submission_id: UUID, actor: ActorRead) -> ChairmanScoringSubmissionRead:
		"""
		Record that ``actor`` finished scoring. Requires a score from this member on every
		subjective response; leaves the submission status and other members untouched.
		"""
		ensure_permitted(actor, SCORE_SUBMISSION)
		async with self._database.session() as s:
			submission = await self._lock_submission(s, submission_id)
			ensure_status(submission.status, SCORING_OPEN, "submit scoring to the Chairman")
			subjective = await self.get_subjective_responses_for_submission(submission.id, session=s)
			if not subjective:
				raise PreconditionViolation("The submission has no subjective responses to score.")

			scores = await self._database.bulk_scores_by_response([r.id for r in subjective], session=s)
			unscored = [
				r for r in subjective
				if not any(sc.committee_member_id == actor.user_id for sc in scores.get(r.id, []))
			]
			if unscored:
				raise ValidationError(
					"Please score all subjective responses before submitting to the Chairman.",
					await self._describe(submission, [r.sub_question_id for r in unscored]),
				)
			record = await self._database.record_chairman_scoring_submission(submission.id, actor.user_id, session=s)

		logger.info("Member %s submitted scoring of submission %s to the Chairman", actor.user_id, submission_id)
		return record

	async def get_scoring_submissions_to_chairman(self, submission_id: UUID) -> List[ChairmanScoringSubmissionRead]:
		return await self._database.list_chairman_scoring_submissions(submission_id)

	async def get_scoring_progress(self, submission_id: UUID, committee_size: int) -> ScoringProgress:
		records = await self._database.list_chairman_scoring_submissions(submission_id)
		return ScoringProgress(
			submission_id=submission_id,
			submitted_count=len(records),
			committee_size=max(0, int(committee_size)),
			member_ids=[r.committee_member_id for r in records],
		)

	@notify_update("submission_id")
	async def finalize_scoring(
		self,
		submission_id: UUID,
		actor: ActorRead,
		overrides: Optional[Mapping[UUID, Any]] = None,
	) -> SubmissionRead:
		"""
		Chairman sign-off. Freezes ``chairman_score`` on every subjective response (override
		when given, otherwise the consensus mean) and moves the submission to ScoringComplete.
		"""
		ensure_permitted(actor, FINALIZE_SCORING)
		async with self._database.session() as s:
			submission = await self._lock_submission(s, submission_id)
			target = next_status(submission.status, WorkflowEvent.FINALIZE_SCORING)
			subjective = await self.get_subjective_responses_for_submission(submission.id, session=s)
			chosen = self._validate_overrides(overrides, {r.id for r in subjective})

			final: Dict[UUID, Fraction] = {}
			if subjective:
				records = await self._database.list_chairman_scoring_submissions(submission.id, session=s)
				if not records:
					raise PreconditionViolation("No committee member has submitted scoring to the Chairman yet.")
				scores = await self._database.bulk_scores_by_response([r.id for r in subjective], session=s)
				unscored: List[ResponseRead] = []
				for r in subjective:
					value = chosen.get(r.id)
					if value is None:
						value = consensus_mean(scores.get(r.id, []))
					if value is None:
						unscored.append(r)
					else:
						final[r.id] = value
				if unscored:
					raise ValidationError(
						"Every subjective response needs a committee score or a Chairman override.",
						await self._describe(submission, [r.sub_question_id for r in unscored]),
					)

			for response_id, value in final.items():
				await self._database.update_response_review(
					ResponseReviewUpdate(id=response_id, chairman_score=_to_stored(value)),
					session=s,
				)
			updated = await self._database.update_submission(
				SubmissionUpdate(
					id=submission.id,
					status=target,
					finalized_by_user_id=actor.user_id,
					finalized_at=utcnow(),
				),
				session=s,
			)

		logger.info("Scoring of submission %s finalized by %s", updated.id, actor.user_id)
		await self._notify(notifications.scoring_complete(updated, await self._unit_name(updated.unit_id)))
		return updated

	@staticmethod
	def _validate_overrides(overrides: Optional[Mapping[UUID, Any]], allowed_ids: set[UUID]) -> Dict[UUID, Fraction]:
		chosen: Dict[UUID, Fraction] = {}
		for response_id, raw in (overrides or {}).items():
			if response_id not in allowed_ids:
				raise ValidationError(f"Response {response_id} is not a subjective response of this submission.")
			try:
				value = Fraction(to_decimal(raw))
			except (ArithmeticError, ValueError, TypeError) as exc:
				raise ValidationError(f"Override for response {response_id} is not a number.") from exc
			if not 0 <= value <= 1:
				raise ValidationError(f"Override for response {response_id} must be between 0 and 1.")
			chosen[response_id] = value
		return chosen


instrument_service_class(
	SubjectiveScoringCoordinator,
	prefix="services.scoring",
	exclude=(
		"get_subjective_responses_for_submission",
		"get_subjective_scores_by_response",
		"get_final_sub_question_score",
		"get_approved_score",
		"get_scoring_submissions_to_chairman",
		"get_scoring_progress",
	),
)
