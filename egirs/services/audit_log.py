# services/audit_log.py
from __future__ import annotations

import inspect
import logging
import uuid
from collections import abc
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from fractions import Fraction
from functools import singledispatch, wraps
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel

from egirs.config import Settings
from egirs.db.database import DataBase
from egirs.db.schemas.actor import ActorRead
from egirs.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from egirs.db.schemas.submission import SubmissionRead

logger = logging.getLogger(__name__)

ERROR_SUFFIX = ".error"


@singledispatch
def to_jsonable(value: Any) -> Any:
    """Turn workflow values (DTOs, ids, exact scores, timestamps) into JSON-friendly data."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    return str(value)


@to_jsonable.register(str)
def _(value) -> str:
    # StrEnum members collapse to their value
    return str(value)


@to_jsonable.register(uuid.UUID)
@to_jsonable.register(Decimal)
@to_jsonable.register(Fraction)
def _(value) -> str:
    return str(value)


@to_jsonable.register(datetime)
@to_jsonable.register(date)
def _(value) -> str:
    return value.isoformat()


@to_jsonable.register(BaseModel)
def _(value) -> dict:
    return {k: to_jsonable(v) for k, v in value.model_dump().items()}


@to_jsonable.register(abc.Mapping)
def _(value) -> dict:
    return {str(to_jsonable(k)): to_jsonable(v) for k, v in value.items()}


@to_jsonable.register(list)
@to_jsonable.register(tuple)
def _(value) -> list:
    return [to_jsonable(v) for v in value]


@to_jsonable.register(set)
@to_jsonable.register(frozenset)
def _(value) -> list:
    return sorted(str(to_jsonable(v)) for v in value)


def describe_actor(actor: ActorRead) -> dict[str, Any]:
    return {
        "id": str(actor.user_id),
        "role": str(actor.role),
        "unit_id": str(actor.official_unit_id) if actor.official_unit_id else None,
    }


class AuditLogService:
    """
    Trail of workflow actions in the ``audit_log`` table.

    Every entry names the operation, the actor (id, role, official unit), the submission it
    touched when one can be resolved, and either the outcome or the error. Each workflow
    service owns one instance bound to its own store handle.
    """

    def __init__(self, database: DataBase, enabled: Optional[bool] = None) -> None:
        self._database = database
        self._enabled = Settings().audit_enabled if enabled is None else enabled
        self._logger = logging.getLogger("egirs.audit")

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def record(
        self,
        action: str,
        *,
        actor: ActorRead | None = None,
        submission_id: uuid.UUID | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> Optional[AuditLogRead]:
        """
        Persist one audit entry.

        :param action: dotted label, ``services.approval.submit_regional_approval`` and the like;
            failures carry the ``.error`` suffix
        :param actor: workflow actor that initiated the action, if any
        :param submission_id: submission the action touched
        :param details: operation-specific data, serialised with :func:`to_jsonable`
        """
        if not self._enabled:
            return None
        payload: dict[str, Any] = {"submission_id": str(submission_id) if submission_id else None}
        if actor is not None:
            payload["actor"] = describe_actor(actor)
        if details:
            payload.update(to_jsonable(dict(details)))

        entry = await self._database.create_audit_log(
            AuditLogCreate(
                action=action,
                actor_id=actor.user_id if actor is not None else None,
                payload=payload,
            )
        )
        self._logger.info(
            "AUDIT action=%s actor=%s submission=%s entry=%s",
            action,
            actor.user_id if actor is not None else "-",
            submission_id or "-",
            entry.id,
        )
        return entry

    async def list_entries(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        actor_id: uuid.UUID | None = None,
        action: str | None = None,
    ) -> tuple[list[AuditLogRead], int]:
        """Most recent entries first, with the total count for paging."""
        return await self._database.list_audit_logs(
            limit=limit,
            offset=offset,
            actor_id=actor_id,
            action=action,
        )


def _submission_ref(arguments: Mapping[str, Any], result: Any = None) -> uuid.UUID | None:
    """Submission an audited call touched: explicit argument, save payload, or returned DTO."""
    candidate = arguments.get("submission_id")
    if isinstance(candidate, uuid.UUID):
        return candidate
    data = arguments.get("data")
    if isinstance(getattr(data, "submission_id", None), uuid.UUID):
        return data.submission_id
    if isinstance(result, SubmissionRead):
        return result.id
    return getattr(result, "submission_id", None)


async def _record_safely(audit: AuditLogService | None, action: str, **kwargs: Any) -> None:
    if audit is None or not audit.enabled:
        return
    try:
        await audit.record(action, **kwargs)
    except Exception:
        # Audit failures should not change the outcome of the audited call.
        logger.exception("Failed to write audit entry %s", action)


def _audited(fn, action: str, actor_field: str):
    if getattr(fn, "__audit_wrapped__", False):
        return fn

    signature = inspect.signature(fn)

    @wraps(fn)
    async def wrapper(service_self, *args, **kwargs):
        audit: AuditLogService | None = getattr(service_self, "_audit", None)
        try:
            arguments = dict(signature.bind(service_self, *args, **kwargs).arguments)
        except TypeError:
            # let the call itself report the bad signature
            arguments = {}
        arguments.pop("self", None)
        actor = arguments.pop(actor_field, None)
        if not isinstance(actor, ActorRead):
            actor = None
        details: dict[str, Any] = {"arguments": arguments}

        try:
            result = await fn(service_self, *args, **kwargs)
        except Exception as exc:
            details["error"] = repr(exc)
            await _record_safely(
                audit,
                action + ERROR_SUFFIX,
                actor=actor,
                submission_id=_submission_ref(arguments),
                details=details,
            )
            raise
        details["result"] = result
        await _record_safely(
            audit,
            action,
            actor=actor,
            submission_id=_submission_ref(arguments, result),
            details=details,
        )
        return result

    wrapper.__audit_wrapped__ = True  # type: ignore[attr-defined]
    return wrapper


def instrument_service_class(
    cls,
    *,
    prefix: str | None = None,
    exclude: Iterable[str] | None = None,
    actor_field: str = "actor",
) -> None:
    """Wrap the public coroutines of a workflow service so each call leaves an audit entry."""
    action_prefix = prefix or cls.__name__
    excluded = set(exclude or ())

    for name, attr in list(cls.__dict__.items()):
        if name.startswith("_") or name in excluded:
            continue
        if inspect.iscoroutinefunction(attr):
            setattr(cls, name, _audited(attr, f"{action_prefix}.{name}", actor_field))


__all__ = [
    "AuditLogService",
    "describe_actor",
    "instrument_service_class",
    "to_jsonable",
]
