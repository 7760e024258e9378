"""Declarative shape descriptors for extraction.

A shape is plain data, never code: a JSON object mapping field names to a
kind. Kinds are ``string``, ``number``, ``integer``, ``boolean``, a nested
object, or a one-element list ``[kind]`` for arrays::

    {"title": "string", "price": "number", "tags": ["string"],
     "seller": {"name": "string", "rating": "number"}}
"""

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError, create_model

from ..exceptions import ShapeError

PRIMITIVE_KINDS: dict[str, type] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
}


def _check_kind(kind: Any, path: str) -> Any:
    """Validate and normalize one kind, returning its canonical form."""
    if isinstance(kind, str):
        normalized = kind.strip().lower()
        if normalized not in PRIMITIVE_KINDS:
            raise ShapeError(f"Unknown kind {kind!r} at '{path}', expected one of {sorted(PRIMITIVE_KINDS)}")
        return normalized
    if isinstance(kind, list):
        if len(kind) != 1:
            raise ShapeError(f"Array kind at '{path}' must list exactly one element kind")
        return [_check_kind(kind[0], f"{path}[]")]
    if isinstance(kind, dict):
        if not kind:
            raise ShapeError(f"Object kind at '{path}' must declare at least one field")
        fields = {}
        for name, sub in kind.items():
            if not isinstance(name, str) or not name:
                raise ShapeError(f"Field names at '{path}' must be non-empty strings")
            fields[name] = _check_kind(sub, f"{path}.{name}" if path else name)
        return fields
    raise ShapeError(f"Unsupported kind {kind!r} at '{path}'")


def _python_type(kind: Any, model_name: str) -> Any:
    if isinstance(kind, str):
        return PRIMITIVE_KINDS[kind]
    if isinstance(kind, list):
        return list[_python_type(kind[0], f"{model_name}Item")]
    return _build_model(kind, model_name)


def _build_model(fields: dict[str, Any], model_name: str) -> type[BaseModel]:
    definitions: dict[str, Any] = {}
    for name, kind in fields.items():
        sub_name = f"{model_name}{name.title().replace('_', '')}"
        definitions[name] = (_python_type(kind, sub_name), ...)
    return create_model(model_name, **definitions)


@dataclass(frozen=True)
class ShapeDescriptor:
    """A validated, data-only description of an extracted structure."""

    fields: dict[str, Any]

    @classmethod
    def parse(cls, value: "ShapeDescriptor | dict[str, Any] | str") -> "ShapeDescriptor":
        """Build a descriptor from a dict, JSON text, or an existing descriptor.

        Raises:
            ShapeError: If the value is not a valid shape
        """
        if isinstance(value, ShapeDescriptor):
            return value
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                raise ShapeError(f"Shape is not valid JSON: {e}") from e
        if not isinstance(value, dict):
            raise ShapeError(f"Shape must be a JSON object, got {type(value).__name__}")
        return cls(fields=_check_kind(value, ""))

    def to_dict(self) -> dict[str, Any]:
        return self.fields

    def dumps(self) -> str:
        """Canonical serialized form, stored alongside cached extract actions."""
        return json.dumps(self.fields, sort_keys=True, separators=(",", ":"))

    def to_model(self, name: str = "ExtractedData") -> type[BaseModel]:
        """Build a pydantic model for structured output and validation."""
        return _build_model(self.fields, name)

    def validate(self, data: Any) -> dict[str, Any]:
        """Validate extracted data against this shape.

        Raises:
            ShapeError: If the data does not match
        """
        model = self.to_model()
        try:
            if isinstance(data, str):
                return model.model_validate_json(data).model_dump()
            return model.model_validate(data).model_dump()
        except ValidationError as e:
            raise ShapeError(f"Extracted data does not match shape: {e}") from e

    def __str__(self) -> str:
        return self.dumps()
