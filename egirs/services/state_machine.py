# services/state_machine.py
"""Submission lifecycle: the single place where status transitions are decided."""
from __future__ import annotations

from typing import Iterable, Optional

from egirs.db.enums import AggregateResult, ReviewStatus, SubmissionStatus, WorkflowEvent
from egirs.services.errors import PreconditionViolation

S = SubmissionStatus
E = WorkflowEvent
A = AggregateResult

# (from, event, aggregate) -> to
TRANSITIONS: dict[tuple[SubmissionStatus, WorkflowEvent, Optional[AggregateResult]], SubmissionStatus] = {
	(S.DRAFT, E.SUBMIT_FOR_APPROVAL, None): S.PENDING_INITIAL_APPROVAL,
	(S.REJECTED_BY_REGIONAL_APPROVER, E.SUBMIT_FOR_APPROVAL, None): S.PENDING_INITIAL_APPROVAL,
	(S.REJECTED_BY_CENTRAL_COMMITTEE, E.SUBMIT_FOR_APPROVAL, None): S.PENDING_INITIAL_APPROVAL,
	(S.PENDING_INITIAL_APPROVAL, E.SUBMIT_REGIONAL_APPROVAL, A.ALL_APPROVED): S.PENDING_CENTRAL_VALIDATION,
	(S.PENDING_INITIAL_APPROVAL, E.SUBMIT_REGIONAL_APPROVAL, A.ANY_REJECTED): S.REJECTED_BY_REGIONAL_APPROVER,
	(S.PENDING_CENTRAL_VALIDATION, E.SUBMIT_CENTRAL_VALIDATION, A.ALL_APPROVED): S.VALIDATED,
	(S.PENDING_CENTRAL_VALIDATION, E.SUBMIT_CENTRAL_VALIDATION, A.ANY_REJECTED): S.REJECTED_BY_CENTRAL_COMMITTEE,
	(S.REJECTED_BY_CENTRAL_COMMITTEE, E.RESUBMIT_TO_CENTRAL_COMMITTEE, None): S.PENDING_CENTRAL_VALIDATION,
	(S.REJECTED_BY_CENTRAL_COMMITTEE, E.REJECT_TO_CONTRIBUTOR, None): S.REJECTED_BY_REGIONAL_APPROVER,
	(S.VALIDATED, E.FINALIZE_SCORING, None): S.SCORING_COMPLETE,
	(S.PENDING_CHAIRMAN_APPROVAL, E.FINALIZE_SCORING, None): S.SCORING_COMPLETE,
}

# statuses in which the owning contributor may still change answers
CONTRIBUTOR_EDITABLE: frozenset[SubmissionStatus] = frozenset({
	S.DRAFT,
	S.REJECTED_BY_REGIONAL_APPROVER,
	S.REJECTED_BY_CENTRAL_COMMITTEE,
})
APPROVER_EDITABLE: frozenset[SubmissionStatus] = frozenset({S.REJECTED_BY_CENTRAL_COMMITTEE})
SCORING_OPEN: frozenset[SubmissionStatus] = frozenset({S.VALIDATED, S.PENDING_CHAIRMAN_APPROVAL})


def allowed_events(current: SubmissionStatus) -> set[WorkflowEvent]:
	return {event for (src, event, _agg) in TRANSITIONS if src == current}


def next_status(
	current: SubmissionStatus | str,
	event: WorkflowEvent | str,
	aggregate: AggregateResult | str | None = None,
) -> SubmissionStatus:
	"""
	Resolve the status a submission moves to.

	Raises PreconditionViolation when ``event`` is not allowed from ``current`` or when an
	aggregate event is missing its aggregate result.
	"""
	current = SubmissionStatus(current)
	event = WorkflowEvent(event)
	aggregate = AggregateResult(aggregate) if aggregate is not None else None

	target = TRANSITIONS.get((current, event, aggregate))
	if target is not None:
		return target

	if event in allowed_events(current):
		raise PreconditionViolation(
			f"Event '{event}' from status '{current}' needs an aggregate review result, got {aggregate!r}."
		)
	raise PreconditionViolation(f"Cannot {event.replace('_', ' ')} while submission is '{current}'.")


def aggregate_review(statuses: Iterable[ReviewStatus]) -> AggregateResult:
	"""
	Fold per-response review statuses into the stage outcome.

	Any rejection wins regardless of how many responses were approved. Callers must
	reject empty or partially reviewed sets before calling.
	"""
	statuses = list(statuses)
	if not statuses:
		raise ValueError("cannot aggregate an empty review set")
	if any(s == ReviewStatus.REJECTED for s in statuses):
		return AggregateResult.ANY_REJECTED
	if all(s == ReviewStatus.APPROVED for s in statuses):
		return AggregateResult.ALL_APPROVED
	raise ValueError("review set still contains pending responses")


def ensure_status(current: SubmissionStatus, allowed: Iterable[SubmissionStatus], action: str) -> None:
	allowed = tuple(allowed)
	if current not in allowed:
		expected = ", ".join(f"'{s}'" for s in allowed)
		raise PreconditionViolation(f"Cannot {action} while submission is '{current}'; expected {expected}.")
