from __future__ import annotations

import pytest

from egirs.db.enums import AggregateResult, ReviewStatus, SubmissionStatus, WorkflowEvent
from egirs.services.errors import PreconditionViolation
from egirs.services.state_machine import aggregate_review, allowed_events, ensure_status, next_status

S = SubmissionStatus
E = WorkflowEvent


@pytest.mark.parametrize(
    "current",
    [S.DRAFT, S.REJECTED_BY_REGIONAL_APPROVER, S.REJECTED_BY_CENTRAL_COMMITTEE],
)
def test_submit_for_approval_from_editable_states(current) -> None:
    assert next_status(current, E.SUBMIT_FOR_APPROVAL) == S.PENDING_INITIAL_APPROVAL


def test_regional_outcome_decides_target() -> None:
    assert (
        next_status(S.PENDING_INITIAL_APPROVAL, E.SUBMIT_REGIONAL_APPROVAL, AggregateResult.ALL_APPROVED)
        == S.PENDING_CENTRAL_VALIDATION
    )
    assert (
        next_status(S.PENDING_INITIAL_APPROVAL, E.SUBMIT_REGIONAL_APPROVAL, AggregateResult.ANY_REJECTED)
        == S.REJECTED_BY_REGIONAL_APPROVER
    )


def test_central_outcome_decides_target() -> None:
    assert (
        next_status(S.PENDING_CENTRAL_VALIDATION, E.SUBMIT_CENTRAL_VALIDATION, "all_approved")
        == S.VALIDATED
    )
    assert (
        next_status(S.PENDING_CENTRAL_VALIDATION, E.SUBMIT_CENTRAL_VALIDATION, "any_rejected")
        == S.REJECTED_BY_CENTRAL_COMMITTEE
    )


def test_correction_loops_from_central_rejection() -> None:
    assert next_status(S.REJECTED_BY_CENTRAL_COMMITTEE, E.RESUBMIT_TO_CENTRAL_COMMITTEE) == S.PENDING_CENTRAL_VALIDATION
    assert next_status(S.REJECTED_BY_CENTRAL_COMMITTEE, E.REJECT_TO_CONTRIBUTOR) == S.REJECTED_BY_REGIONAL_APPROVER


@pytest.mark.parametrize("current", [S.VALIDATED, S.PENDING_CHAIRMAN_APPROVAL])
def test_finalize_from_scoring_states(current) -> None:
    assert next_status(current, E.FINALIZE_SCORING) == S.SCORING_COMPLETE


@pytest.mark.parametrize(
    "current,event",
    [
        (S.PENDING_INITIAL_APPROVAL, E.SUBMIT_FOR_APPROVAL),
        (S.SCORING_COMPLETE, E.SUBMIT_FOR_APPROVAL),
        (S.DRAFT, E.FINALIZE_SCORING),
        (S.PENDING_CENTRAL_VALIDATION, E.RESUBMIT_TO_CENTRAL_COMMITTEE),
        (S.REJECTED_BY_REGIONAL_APPROVER, E.REJECT_TO_CONTRIBUTOR),
    ],
)
def test_out_of_order_events_are_rejected(current, event) -> None:
    with pytest.raises(PreconditionViolation):
        next_status(current, event)


def test_aggregate_event_requires_outcome() -> None:
    with pytest.raises(PreconditionViolation) as exc:
        next_status(S.PENDING_INITIAL_APPROVAL, E.SUBMIT_REGIONAL_APPROVAL)
    assert "aggregate" in str(exc.value)


def test_scoring_complete_has_no_outgoing_events() -> None:
    assert allowed_events(S.SCORING_COMPLETE) == set()


def test_any_rejection_wins_aggregation() -> None:
    statuses = [ReviewStatus.APPROVED] * 9 + [ReviewStatus.REJECTED]
    assert aggregate_review(statuses) == AggregateResult.ANY_REJECTED
    assert aggregate_review([ReviewStatus.APPROVED] * 3) == AggregateResult.ALL_APPROVED


def test_aggregation_refuses_empty_or_pending_sets() -> None:
    with pytest.raises(ValueError):
        aggregate_review([])
    with pytest.raises(ValueError):
        aggregate_review([ReviewStatus.APPROVED, ReviewStatus.PENDING])


def test_ensure_status_names_expected_states() -> None:
    ensure_status(S.VALIDATED, [S.VALIDATED], "score")
    with pytest.raises(PreconditionViolation) as exc:
        ensure_status(S.DRAFT, [S.VALIDATED], "score")
    assert "'Validated'" in str(exc.value)
