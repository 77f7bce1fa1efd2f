"""JSON report writer."""
from __future__ import annotations

import dataclasses
import json
from enum import Enum
from pathlib import Path
from typing import Any

from ..models import ProjectQualityReport
from .validate import validate_dict


def to_jsonable(value: Any) -> Any:
    """Convert models (dataclasses, enums, paths) into plain JSON values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, dict):
        return {str(to_jsonable(k)): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(item) for item in value]
    return value


def serialize_report(report: ProjectQualityReport) -> dict:
    data = to_jsonable(report)
    validate_dict(data)
    return data


def write_json_report(report: ProjectQualityReport, path: Path) -> None:
    data = serialize_report(report)
    path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")


def dumps(value: Any) -> str:
    return json.dumps(to_jsonable(value), indent=2)
