from __future__ import annotations

import logging
import uuid
from datetime import datetime

import pytest

from egirs.db.enums import ActorRole, SubmissionStatus
from egirs.db.schemas.submission import SubmissionRead
from egirs.services.access import APPROVER_ROLES
from egirs.services import events as notifications
from egirs.services.events import SubmissionEventBus, SubmissionUpdated


def _event() -> SubmissionUpdated:
    return SubmissionUpdated(
        submission_id=uuid.uuid4(),
        previous_status=SubmissionStatus.DRAFT,
        status=SubmissionStatus.PENDING_INITIAL_APPROVAL,
    )


@pytest.mark.asyncio
async def test_sync_and_async_subscribers_receive_events() -> None:
    bus = SubmissionEventBus()
    seen_sync: list = []
    seen_async: list = []

    async def _async_listener(event) -> None:
        seen_async.append(event)

    bus.on_submission_changed(seen_sync.append)
    bus.on_submission_changed(_async_listener)
    event = _event()
    await bus.publish_submission_changed(event)

    assert seen_sync == [event]
    assert seen_async == [event]


@pytest.mark.asyncio
async def test_failing_subscriber_is_logged_and_isolated(caplog) -> None:
    bus = SubmissionEventBus()
    delivered: list = []

    def _broken(_event) -> None:
        raise RuntimeError("subscriber down")

    bus.on_submission_changed(_broken)
    bus.on_submission_changed(delivered.append)

    with caplog.at_level(logging.ERROR, logger="egirs.services.events"):
        await bus.publish_submission_changed(_event())

    assert len(delivered) == 1
    assert "subscriber down" in caplog.text


@pytest.mark.asyncio
async def test_unsubscribe() -> None:
    bus = SubmissionEventBus()
    seen: list = []
    unsubscribe = bus.on_notification(seen.append)
    unsubscribe()
    await bus.publish_notification(
        notifications.submission_received(_submission(), "Debark Woreda")
    )
    assert seen == []


def _submission(**overrides) -> SubmissionRead:
    now = datetime(2024, 5, 1)
    data = dict(
        id=uuid.uuid4(),
        unit_id=uuid.uuid4(),
        assessment_year_id=uuid.uuid4(),
        contributor_user_id=uuid.uuid4(),
        created_at=now,
        updated_at=now,
    )
    data.update(overrides)
    return SubmissionRead(**data)


def test_submission_received_targets_approvers_of_unit() -> None:
    sub = _submission()
    note = notifications.submission_received(sub, "Debark Woreda")
    assert note.recipient_user_id is None
    assert note.recipient_roles == APPROVER_ROLES
    assert ActorRole.REGIONAL_APPROVER in note.recipient_roles
    assert note.unit_id == sub.unit_id


def test_long_rejection_reason_is_truncated() -> None:
    sub = _submission(rejection_reason="x" * 150)
    note = notifications.rejected_by_approver(sub, "Debark Woreda")
    assert note.message == f"Your submission for Debark Woreda has been rejected. Reason: {'x' * 100}..."
    assert note.recipient_user_id == sub.contributor_user_id


def test_central_notifications_need_an_approver() -> None:
    sub = _submission()
    assert notifications.validated_by_central_committee(sub, "Debark Woreda") is None
    approver_id = uuid.uuid4()
    note = notifications.validated_by_central_committee(
        sub.model_copy(update={"approver_user_id": approver_id}), "Debark Woreda"
    )
    assert note.message == "Submission for Debark Woreda has been validated by the Central Committee."
    assert note.link_url == "/approval/validated-submissions"
    assert note.recipient_user_id == approver_id
