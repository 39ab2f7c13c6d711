# services/events.py
"""Publish/subscribe hooks the workflow raises after each committed change."""
from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Awaitable, Callable, List, Optional, Union
from uuid import UUID

from egirs.db.enums import ActorRole, SubmissionStatus
from egirs.db.schemas.submission import SubmissionRead
from egirs.services.access import APPROVER_ROLES

logger = logging.getLogger(__name__)

_REASON_PREVIEW = 100


@dataclass(frozen=True)
class SubmissionUpdated:
	submission_id: UUID
	previous_status: Optional[SubmissionStatus]
	status: SubmissionStatus

	@property
	def status_changed(self) -> bool:
		return self.previous_status != self.status


@dataclass(frozen=True)
class NotificationCreated:
	"""
	In-app notification request. Either ``recipient_user_id`` names the receiver, or
	``recipient_roles`` together with ``unit_id`` describes the audience (every user of
	those roles whose scope covers the unit).
	"""
	unit_id: UUID
	submission_id: UUID
	message: str
	link_url: str
	recipient_user_id: Optional[UUID] = None
	recipient_roles: frozenset[ActorRole] = field(default_factory=frozenset)


Listener = Callable[[Any], Union[None, Awaitable[None]]]


class SubmissionEventBus:
	"""
	In-process observer registry. Subscribers may be plain functions or coroutines;
	a failing subscriber is logged and never propagates into the workflow.
	"""

	def __init__(self) -> None:
		self._submission_listeners: List[Listener] = []
		self._notification_listeners: List[Listener] = []

	def on_submission_changed(self, callback: Listener) -> Callable[[], None]:
		self._submission_listeners.append(callback)
		return lambda: self._remove(self._submission_listeners, callback)

	def on_notification(self, callback: Listener) -> Callable[[], None]:
		self._notification_listeners.append(callback)
		return lambda: self._remove(self._notification_listeners, callback)

	async def publish_submission_changed(self, event: SubmissionUpdated) -> None:
		logger.debug(
			"Submission %s changed: %s -> %s",
			event.submission_id,
			event.previous_status,
			event.status,
		)
		await self._dispatch(self._submission_listeners, event)

	async def publish_notification(self, event: NotificationCreated) -> None:
		await self._dispatch(self._notification_listeners, event)

	@staticmethod
	def _remove(listeners: List[Listener], callback: Listener) -> None:
		if callback in listeners:
			listeners.remove(callback)

	@staticmethod
	async def _dispatch(listeners: List[Listener], event: Any) -> None:
		for callback in list(listeners):
			try:
				result = callback(event)
				if inspect.isawaitable(result):
					await result
			except Exception:
				# Subscriber failures should not block the workflow.
				logger.exception("Event subscriber %r failed for %s", callback, type(event).__name__)


def notify_update(id_field: str = "submission_id") -> Callable:
	"""
	Decorator for service coroutines that change a submission.

	Snapshots the status before the call and publishes :class:`SubmissionUpdated` on the
	service's event bus (``service_self._events``) once the call has returned.
	"""

	def _decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
		signature = inspect.signature(func)

		@wraps(func)
		async def _wrapper(service_self, *args, **kwargs):
			try:
				bound = signature.bind_partial(service_self, *args, **kwargs)
				target = bound.arguments.get(id_field)
			except TypeError:
				target = None
			submission_id = getattr(target, "submission_id", target)

			previous = await _safe_snapshot(service_self, submission_id)
			result = await func(service_self, *args, **kwargs)

			current = result if isinstance(result, SubmissionRead) else None
			if current is None:
				submission_id = submission_id or getattr(result, "submission_id", None)
				current = await _safe_snapshot(service_self, submission_id)
			if current is not None:
				await service_self._events.publish_submission_changed(
					SubmissionUpdated(
						submission_id=current.id,
						previous_status=previous.status if previous is not None else None,
						status=current.status,
					)
				)
			return result

		return _wrapper

	return _decorator


async def _safe_snapshot(service_self, submission_id: Optional[UUID]) -> Optional[SubmissionRead]:
	if submission_id is None:
		return None
	try:
		return await service_self._database.get_submission_by_id(submission_id)
	except Exception:
		logger.debug("Could not snapshot submission %s", submission_id, exc_info=True)
		return None


# --- notification messages ---

def _preview(reason: Optional[str]) -> str:
	reason = reason or ""
	if len(reason) > _REASON_PREVIEW:
		return reason[:_REASON_PREVIEW] + "..."
	return reason


def submission_received(submission: SubmissionRead, unit_name: str) -> NotificationCreated:
	return NotificationCreated(
		unit_id=submission.unit_id,
		submission_id=submission.id,
		recipient_roles=APPROVER_ROLES,
		message=f"New submission received for {unit_name}. Please review and approve.",
		link_url=f"/approval/evaluate/{submission.id}",
	)


def rejected_by_approver(submission: SubmissionRead, unit_name: str) -> NotificationCreated:
	return NotificationCreated(
		unit_id=submission.unit_id,
		submission_id=submission.id,
		recipient_user_id=submission.contributor_user_id,
		message=f"Your submission for {unit_name} has been rejected. Reason: {_preview(submission.rejection_reason)}",
		link_url="/data/submission",
	)


def approved_by_approver(submission: SubmissionRead, unit_name: str, approver_name: str) -> NotificationCreated:
	return NotificationCreated(
		unit_id=submission.unit_id,
		submission_id=submission.id,
		recipient_user_id=submission.contributor_user_id,
		message=f"Your submission for {unit_name} has been approved by {approver_name}.",
		link_url="/data/submission",
	)


def rejected_by_central_committee(submission: SubmissionRead, unit_name: str) -> Optional[NotificationCreated]:
	if submission.approver_user_id is None:
		return None
	return NotificationCreated(
		unit_id=submission.unit_id,
		submission_id=submission.id,
		recipient_user_id=submission.approver_user_id,
		message=(
			f"Submission for {unit_name} has been rejected by Central Committee. "
			f"Reason: {_preview(submission.rejection_reason)}"
		),
		link_url="/approval/rejected-submissions",
	)


def validated_by_central_committee(submission: SubmissionRead, unit_name: str) -> Optional[NotificationCreated]:
	if submission.approver_user_id is None:
		return None
	return NotificationCreated(
		unit_id=submission.unit_id,
		submission_id=submission.id,
		recipient_user_id=submission.approver_user_id,
		message=f"Submission for {unit_name} has been validated by the Central Committee.",
		link_url="/approval/validated-submissions",
	)


def scoring_complete(submission: SubmissionRead, unit_name: str) -> NotificationCreated:
	return NotificationCreated(
		unit_id=submission.unit_id,
		submission_id=submission.id,
		recipient_user_id=submission.contributor_user_id,
		message=f"Scoring for {unit_name} is complete. Final scores have been recorded.",
		link_url="/data/submission",
	)
