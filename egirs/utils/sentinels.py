# utils/sentinels.py
from typing import Any, ClassVar, Iterable, Iterator, Optional, Self
from pydantic import BaseModel
from pydantic_core import core_schema
from pydantic.json_schema import JsonSchemaValue

class Missing:
    """Marks a partial-update field that the caller did not provide (distinct from ``None``)."""
    _instance: ClassVar[Optional["Missing"]] = None

    def __new__(cls) -> Self:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    # ---- Pydantic v2: core schema (runtime validation) ----
    @classmethod
    def __get_pydantic_core_schema__(cls, _source, _handler) -> core_schema.CoreSchema:
        # Accept only the singleton instance; a ValueError lets union members fall through.
        def validate(v: Any) -> "Missing":
            if v is cls._instance:
                return v
            raise ValueError("value is not the Missing sentinel")
        return core_schema.no_info_plain_validator_function(validate)

    # ---- Pydantic v2: JSON Schema (documentation / OpenAPI) ----
    @classmethod
    def __get_pydantic_json_schema__(cls, _core_schema: core_schema.CoreSchema, _handler) -> JsonSchemaValue:
        return {
            "title": "Missing sentinel (internal)",
            "type": "string",
            "const": "MISSING",
            "description": "Internal placeholder meaning 'not provided'.",
            "readOnly": True,
        }


MISSING = Missing()


def provided(value: object) -> bool:
    return value is not MISSING


def provided_items(model: BaseModel, *, exclude: Iterable[str] = ("id",)) -> Iterator[tuple[str, Any]]:
    """(field, value) pairs of a partial-update DTO that the caller actually set."""
    skipped = set(exclude)
    for name in type(model).model_fields:
        if name in skipped:
            continue
        value = getattr(model, name)
        if provided(value):
            yield name, value
