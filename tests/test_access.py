from __future__ import annotations

import uuid
from datetime import datetime

import pytest

from egirs.db.enums import ActorRole, SubmissionStatus
from egirs.db.schemas.actor import ActorRead
from egirs.db.schemas.submission import SubmissionRead
from egirs.services.access import (
    APPROVE_SUBMISSION,
    EDIT_SUBMISSION,
    FINALIZE_SCORING,
    SCORE_SUBMISSION,
    SUBMIT_DATA,
    VALIDATE_SUBMISSION,
    VIEW_ALL_SUBMISSIONS,
    can_access_unit,
    can_perform_action,
    ensure_permitted,
    filter_submissions_by_access,
    get_accessible_unit_ids,
    is_unit_in_hierarchy,
)
from egirs.services.errors import PermissionDenied


def _submission(unit_id, contributor_id, status=SubmissionStatus.DRAFT) -> SubmissionRead:
    now = datetime(2024, 1, 1)
    return SubmissionRead(
        id=uuid.uuid4(),
        unit_id=unit_id,
        assessment_year_id=uuid.uuid4(),
        contributor_user_id=contributor_id,
        status=status,
        created_at=now,
        updated_at=now,
    )


def test_hierarchy_includes_self_and_descendants(world) -> None:
    units = list(world.units.units.values())
    assert is_unit_in_hierarchy(world.region.unit_id, world.region.unit_id, units)
    assert is_unit_in_hierarchy(world.region.unit_id, world.woreda.unit_id, units)
    assert not is_unit_in_hierarchy(world.woreda.unit_id, world.region.unit_id, units)
    assert not is_unit_in_hierarchy(world.other_region.unit_id, world.woreda.unit_id, units)


def test_hierarchy_survives_parent_cycles(world) -> None:
    a = world.units.add("A", world.region.unit_type)
    b = world.units.add("B", world.region.unit_type, a)
    world.units.units[a.unit_id] = a.model_copy(update={"parent_unit_id": b.unit_id})
    units = list(world.units.units.values())
    assert not is_unit_in_hierarchy(world.region.unit_id, a.unit_id, units)


def test_filter_submissions_by_role(world) -> None:
    units = list(world.units.units.values())
    contributor = world.actors["contributor"]
    other = world.actors["other_contributor"]
    mine = _submission(world.woreda.unit_id, contributor.user_id)
    theirs = _submission(world.woreda.unit_id, other.user_id)
    elsewhere = _submission(world.other_region.unit_id, uuid.uuid4())
    everything = [mine, theirs, elsewhere]

    assert filter_submissions_by_access(everything, contributor, units) == [mine]
    assert filter_submissions_by_access(everything, world.actors["approver"], units) == [mine, theirs]
    assert filter_submissions_by_access(everything, world.actors["outside_approver"], units) == [elsewhere]
    for role in ("validator", "chairman", "secretary", "admin"):
        assert filter_submissions_by_access(everything, world.actors[role], units) == everything


def test_approver_without_unit_sees_nothing(world) -> None:
    actor = ActorRead(user_id=uuid.uuid4(), role=ActorRole.FEDERAL_APPROVER)
    sub = _submission(world.woreda.unit_id, uuid.uuid4())
    assert filter_submissions_by_access([sub], actor, list(world.units.units.values())) == []


def test_accessible_unit_ids(world) -> None:
    units = list(world.units.units.values())
    approver_units = set(get_accessible_unit_ids(world.actors["approver"], units))
    assert approver_units == {world.region.unit_id, world.zone.unit_id, world.woreda.unit_id}
    assert get_accessible_unit_ids(world.actors["contributor"], units) == [world.woreda.unit_id]
    assert len(get_accessible_unit_ids(world.actors["chairman"], units)) == len(units)
    assert can_access_unit(world.actors["approver"], world.zone.unit_id, units)
    assert not can_access_unit(world.actors["contributor"], world.zone.unit_id, units)


def test_role_action_matrix(world) -> None:
    a = world.actors
    assert can_perform_action(a["contributor"], SUBMIT_DATA)
    assert not can_perform_action(a["approver"], SUBMIT_DATA)
    assert can_perform_action(a["approver"], APPROVE_SUBMISSION)
    assert can_perform_action(a["secretary"], VALIDATE_SUBMISSION)
    assert can_perform_action(a["member_a"], SCORE_SUBMISSION)
    assert not can_perform_action(a["secretary"], SCORE_SUBMISSION)
    assert not can_perform_action(a["chairman"], SCORE_SUBMISSION)
    assert can_perform_action(a["chairman"], FINALIZE_SCORING)
    assert not can_perform_action(a["member_a"], FINALIZE_SCORING)
    assert can_perform_action(a["admin"], VIEW_ALL_SUBMISSIONS)
    assert not can_perform_action(a["contributor"], VIEW_ALL_SUBMISSIONS)
    assert not can_perform_action(a["admin"], "delete_everything")


def test_edit_lock_follows_status_and_ownership(world) -> None:
    units = list(world.units.units.values())
    contributor = world.actors["contributor"]
    approver = world.actors["approver"]

    draft = _submission(world.woreda.unit_id, contributor.user_id, SubmissionStatus.DRAFT)
    pending = _submission(world.woreda.unit_id, contributor.user_id, SubmissionStatus.PENDING_INITIAL_APPROVAL)
    central_rejected = _submission(
        world.woreda.unit_id, contributor.user_id, SubmissionStatus.REJECTED_BY_CENTRAL_COMMITTEE
    )

    assert can_perform_action(contributor, EDIT_SUBMISSION, draft, units)
    assert not can_perform_action(contributor, EDIT_SUBMISSION, pending, units)
    assert not can_perform_action(world.actors["other_contributor"], EDIT_SUBMISSION, draft, units)
    assert not can_perform_action(approver, EDIT_SUBMISSION, draft, units)
    assert can_perform_action(approver, EDIT_SUBMISSION, central_rejected, units)
    assert not can_perform_action(world.actors["outside_approver"], EDIT_SUBMISSION, central_rejected, units)


def test_ensure_permitted_raises_permission_denied(world) -> None:
    with pytest.raises(PermissionDenied) as exc:
        ensure_permitted(world.actors["secretary"], SCORE_SUBMISSION)
    assert "Secretary" in str(exc.value)
