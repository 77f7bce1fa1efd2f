"""Token-level helpers for Python sources."""
from __future__ import annotations

import io
import re
import tokenize
from typing import Dict, List, Tuple

ALLOWED_NUMBERS = {"0", "1", "2", "0.0", "1.0"}
CONSTANT_LINE_RE = re.compile(r"^\s*[A-Z][A-Z0-9_]*\s*(?::[^=]+)?=[^=]")

Position = Tuple[int, int, int]


def magic_numbers(source: str) -> Dict[str, List[Position]]:
    """Map each magic numeric literal to its ``(row, start_col, end_col)`` positions.

    Literals on constant definition lines (``NAME = 42``) and the trivial values
    in ``ALLOWED_NUMBERS`` are ignored. Sources that do not tokenize yield ``{}``.
    """
    found: Dict[str, List[Position]] = {}
    lines = source.splitlines()
    try:
        tokens = list(tokenize.generate_tokens(io.StringIO(source).readline))
    except (tokenize.TokenError, IndentationError, SyntaxError):
        return {}
    for token in tokens:
        if token.type != tokenize.NUMBER:
            continue
        if token.string in ALLOWED_NUMBERS:
            continue
        row, col = token.start
        end_row, end_col = token.end
        if row != end_row:
            continue
        line = lines[row - 1] if row - 1 < len(lines) else ""
        if CONSTANT_LINE_RE.match(line):
            continue
        found.setdefault(token.string, []).append((row, col, end_col))
    return found


def constant_name(literal: str) -> str:
    cleaned = re.sub(r"[^0-9A-Za-z]+", "_", literal.replace("_", "")).strip("_").upper()
    return f"NUM_{cleaned}"
