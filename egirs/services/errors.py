# services/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional


class WorkflowError(Exception):
	"""Base class of every typed error raised by the submission workflow."""

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message

	def __str__(self) -> str:
		return self.message


class PreconditionViolation(WorkflowError):
	"""Operation called while the submission or response is in the wrong state."""


class PermissionDenied(WorkflowError):
	"""Actor role or unit scope does not allow the operation."""


class NotFound(WorkflowError):
	"""Referenced submission, response, sub-question or unit does not resolve."""


@dataclass(frozen=True)
class MissingItem:
	dimension_name: str
	indicator_name: str
	sub_question_text: str
	sub_question_id: Optional[object] = None

	def describe(self) -> str:
		return f"{self.dimension_name} > {self.indicator_name} > {self.sub_question_text}"


class ValidationError(WorkflowError):
	"""
	Input rejected before any mutation: blank rejection reason, out-of-range score,
	or unanswered / unreviewed questions. ``missing`` lists the offending items.
	"""

	def __init__(self, message: str, missing: Iterable[MissingItem] | None = None) -> None:
		super().__init__(message)
		self.missing: list[MissingItem] = list(missing or [])

	@property
	def dimensions(self) -> list[str]:
		seen: list[str] = []
		for item in self.missing:
			if item.dimension_name not in seen:
				seen.append(item.dimension_name)
		return seen


__all__ = [
	"WorkflowError",
	"PreconditionViolation",
	"PermissionDenied",
	"NotFound",
	"MissingItem",
	"ValidationError",
]
