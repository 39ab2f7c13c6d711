# services/access.py
"""Role and administrative-unit scoped visibility. Pure functions over the unit list."""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from egirs.db.enums import ActorRole
from egirs.db.schemas.actor import ActorRead
from egirs.db.schemas.framework import UnitRead
from egirs.db.schemas.submission import SubmissionRead
from egirs.services.errors import PermissionDenied
from egirs.services.state_machine import APPROVER_EDITABLE, CONTRIBUTOR_EDITABLE

ADMIN_ROLES = frozenset({ActorRole.SUPER_ADMIN, ActorRole.MINT_ADMIN})
CONTRIBUTOR_ROLES = frozenset({
	ActorRole.DATA_CONTRIBUTOR,
	ActorRole.INSTITUTE_DATA_CONTRIBUTOR,
	ActorRole.FEDERAL_DATA_CONTRIBUTOR,
})
APPROVER_ROLES = frozenset({
	ActorRole.REGIONAL_APPROVER,
	ActorRole.FEDERAL_APPROVER,
	ActorRole.INITIAL_APPROVER,
})
CENTRAL_COMMITTEE_ROLES = frozenset({
	ActorRole.CENTRAL_COMMITTEE_MEMBER,
	ActorRole.CHAIRMAN,
	ActorRole.SECRETARY,
})

SUBMIT_DATA = "submit_data"
EDIT_SUBMISSION = "edit_submission"
APPROVE_SUBMISSION = "approve_submission"
VALIDATE_SUBMISSION = "validate_submission"
SCORE_SUBMISSION = "score_submission"
FINALIZE_SCORING = "finalize_scoring"
VIEW_ALL_SUBMISSIONS = "view_all_submissions"


def _sees_everything(actor: ActorRead) -> bool:
	return actor.role in ADMIN_ROLES or actor.role in CENTRAL_COMMITTEE_ROLES


def is_unit_in_hierarchy(parent_unit_id: UUID, target_unit_id: UUID, units: Sequence[UnitRead]) -> bool:
	"""True when ``target_unit_id`` equals ``parent_unit_id`` or descends from it."""
	if parent_unit_id == target_unit_id:
		return True
	parents = {u.unit_id: u.parent_unit_id for u in units}
	seen: set[UUID] = set()
	current = parents.get(target_unit_id)
	while current is not None and current not in seen:
		if current == parent_unit_id:
			return True
		seen.add(current)
		current = parents.get(current)
	return False


def can_access_unit(actor: ActorRead, target_unit_id: Optional[UUID], units: Sequence[UnitRead]) -> bool:
	if actor is None or target_unit_id is None:
		return False
	if _sees_everything(actor):
		return True
	if actor.official_unit_id is None:
		return False
	if actor.official_unit_id == target_unit_id:
		return True
	if actor.role in APPROVER_ROLES:
		return is_unit_in_hierarchy(actor.official_unit_id, target_unit_id, units)
	return False


def get_accessible_unit_ids(actor: ActorRead, units: Sequence[UnitRead]) -> List[UUID]:
	if actor is None:
		return []
	if _sees_everything(actor):
		return [u.unit_id for u in units]
	if actor.official_unit_id is None:
		return []
	if actor.role in CONTRIBUTOR_ROLES:
		return [actor.official_unit_id]
	if actor.role in APPROVER_ROLES:
		return [
			u.unit_id for u in units
			if is_unit_in_hierarchy(actor.official_unit_id, u.unit_id, units)
		]
	return []


def filter_submissions_by_access(
	submissions: Iterable[SubmissionRead],
	actor: ActorRead,
	units: Sequence[UnitRead],
) -> List[SubmissionRead]:
	"""
	Submissions ``actor`` may see.

	Contributors see the submissions they own, approvers the ones of their unit and its
	descendants, admins and Central Committee roles see everything.
	"""
	submissions = list(submissions or [])
	if actor is None or not submissions:
		return []
	if _sees_everything(actor):
		return submissions
	if actor.role in CONTRIBUTOR_ROLES:
		return [s for s in submissions if s.contributor_user_id == actor.user_id]
	if actor.role in APPROVER_ROLES:
		if actor.official_unit_id is None:
			return []
		return [s for s in submissions if can_access_unit(actor, s.unit_id, units)]
	return []


def can_perform_action(
	actor: ActorRead,
	action: str,
	submission: Optional[SubmissionRead] = None,
	units: Optional[Sequence[UnitRead]] = None,
) -> bool:
	"""
	Role check for ``action``; with ``submission`` (and ``units`` for approvers) the
	unit scope and ownership are checked too.
	"""
	if actor is None:
		return False
	role = actor.role

	if action == SUBMIT_DATA:
		return role in CONTRIBUTOR_ROLES

	if action == EDIT_SUBMISSION:
		if submission is None:
			return role in CONTRIBUTOR_ROLES or role in APPROVER_ROLES
		if role in CONTRIBUTOR_ROLES:
			return (
				submission.contributor_user_id == actor.user_id
				and submission.status in CONTRIBUTOR_EDITABLE
			)
		if role in APPROVER_ROLES:
			return (
				submission.status in APPROVER_EDITABLE
				and can_access_unit(actor, submission.unit_id, units or [])
			)
		return False

	if action == APPROVE_SUBMISSION:
		if role not in APPROVER_ROLES:
			return False
		if submission is None:
			return True
		return can_access_unit(actor, submission.unit_id, units or [])

	if action == VALIDATE_SUBMISSION:
		return role in CENTRAL_COMMITTEE_ROLES

	if action == SCORE_SUBMISSION:
		return role == ActorRole.CENTRAL_COMMITTEE_MEMBER

	if action == FINALIZE_SCORING:
		return role == ActorRole.CHAIRMAN

	if action == VIEW_ALL_SUBMISSIONS:
		return _sees_everything(actor)

	return False


def ensure_permitted(
	actor: ActorRead,
	action: str,
	submission: Optional[SubmissionRead] = None,
	units: Optional[Sequence[UnitRead]] = None,
) -> None:
	if not can_perform_action(actor, action, submission, units):
		role = getattr(actor, "role", None)
		target = f" on submission {submission.id}" if submission is not None else ""
		raise PermissionDenied(f"Role '{role}' is not allowed to {action.replace('_', ' ')}{target}.")
