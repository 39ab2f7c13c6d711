# services/responses.py
import logging
from typing import List, Optional
from uuid import UUID

from egirs.config import Settings
from egirs.db.database import DataBase
from egirs.db.schemas.actor import ActorRead
from egirs.db.schemas.response import ResponseRead, ResponseSave
from egirs.services._base import WorkflowService
from egirs.services.access import EDIT_SUBMISSION, ensure_permitted
from egirs.services.audit_log import instrument_service_class
from egirs.services.events import SubmissionEventBus, notify_update
from egirs.services.framework import AdministrativeUnitDirectory, AssessmentFramework

logger = logging.getLogger(__name__)


class ResponseStore(WorkflowService):
	"""Answers of a submission, one per sub-question, upserted on every save."""

	def __init__(
		self,
		database: DataBase,
		framework: Optional[AssessmentFramework] = None,
		units: Optional[AdministrativeUnitDirectory] = None,
		events: Optional[SubmissionEventBus] = None,
		*,
		enforce_lock: Optional[bool] = None,
		audit_enabled: Optional[bool] = None,
	) -> None:
		super().__init__(database, framework, units, events, audit_enabled=audit_enabled)
		self._enforce_lock = Settings().enforce_response_lock if enforce_lock is None else enforce_lock

	@notify_update("data")
	async def save_response(self, data: ResponseSave, actor: ActorRead) -> ResponseRead:
		"""
		Upsert the answer of ``data.sub_question_id``. An empty value clears a previous answer.

		With the edit lock on, only the owning contributor (Draft or rejected submissions) or an
		approver in scope (submissions rejected by the Central Committee) may write.
		"""
		async with self._database.session() as s:
			submission = await self._lock_submission(s, data.submission_id)
			if self._enforce_lock:
				ensure_permitted(actor, EDIT_SUBMISSION, submission, await self._scope_units(actor))
			else:
				ensure_permitted(actor, EDIT_SUBMISSION)
			saved = await self._database.upsert_response(data, session=s)

		logger.debug("Response %s saved for submission %s", saved.id, data.submission_id)
		return saved

	async def get_response(self, response_id: UUID) -> ResponseRead:
		return await self._require_response(response_id)

	async def get_response_by_sub_question(self, submission_id: UUID, sub_question_id: UUID) -> Optional[ResponseRead]:
		return await self._database.get_response_by_sub_question(submission_id, sub_question_id)

	async def get_responses_by_submission(self, submission_id: UUID) -> List[ResponseRead]:
		return await self._database.list_responses_by_submission(submission_id)


instrument_service_class(
	ResponseStore,
	prefix="services.responses",
	exclude=("get_response", "get_response_by_sub_question", "get_responses_by_submission"),
)
