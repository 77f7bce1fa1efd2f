"""JSON schema loader."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict


with Path(__file__).with_name("schema.json").open("r", encoding="utf-8") as fh:
    SCHEMA: Dict[str, Any] = json.load(fh)
