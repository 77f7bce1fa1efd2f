"""Schema validation helpers."""
from __future__ import annotations

from typing import Any, Dict

from jsonschema import Draft202012Validator, ValidationError

from .schema import SCHEMA

_VALIDATOR = Draft202012Validator(SCHEMA)


def validate_dict(data: Dict[str, Any], schema: Dict[str, Any] | None = None) -> None:
    validator = _VALIDATOR if schema is None else Draft202012Validator(schema)
    try:
        validator.validate(data)
    except ValidationError as exc:
        raise ValueError(f"report does not match schema: {exc.message}") from exc
