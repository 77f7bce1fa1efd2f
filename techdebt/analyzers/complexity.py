"""Cyclomatic complexity approximation."""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List

from radon.complexity import cc_visit

from ..models import ComplexityStats
from ..utils.fs import is_python

logger = logging.getLogger(__name__)

PY_PATTERNS = [
    re.compile(r"^\s*if\b", re.MULTILINE),
    re.compile(r"^\s*elif\b", re.MULTILINE),
    re.compile(r"\S\s+if\s+.+\s+else\s"),
    re.compile(r"^\s*for\b|^\s*async\s+for\b", re.MULTILINE),
    re.compile(r"^\s*while\b", re.MULTILINE),
    re.compile(r"^\s*case\b", re.MULTILINE),
    re.compile(r"^\s*except\b", re.MULTILINE),
    re.compile(r"\band\b|\bor\b"),
]

BRACE_PATTERNS = [
    re.compile(r"\bif\s*\("),
    re.compile(r"\belse\s+if\b"),
    re.compile(r"\?.*:"),
    re.compile(r"\bfor\s*\("),
    re.compile(r"\bwhile\s*\("),
    re.compile(r"\bcase\s+"),
    re.compile(r"\bcatch\s*\("),
    re.compile(r"&&|\|\|"),
]


def file_complexity(path: str, content: str) -> int:
    """Return ``1 + decision points`` for one file, counted with regexes."""
    patterns = PY_PATTERNS if is_python(path) else BRACE_PATTERNS
    complexity = 1
    for pattern in patterns:
        complexity += len(pattern.findall(content))
    # "else if" also matched the plain "if" pattern
    if not is_python(path):
        complexity -= len(BRACE_PATTERNS[1].findall(content))
    return complexity


def high_complexity_functions(path: str, content: str, threshold: int) -> List[str]:
    """List radon blocks above ``threshold`` as ``"path:line name (complexity)"``."""
    if not is_python(path):
        return []
    try:
        blocks = cc_visit(content)
    except (SyntaxError, ValueError) as exc:
        logger.debug("radon could not parse %s: %s", path, exc)
        return []
    found = []
    for block in _flatten(blocks):
        if block.complexity > threshold:
            name = getattr(block, "fullname", block.name)
            found.append(f"{path}:{block.lineno} {name} ({block.complexity})")
    return found


def summarize(per_file: Dict[str, int], hot_spots: Iterable[str]) -> ComplexityStats:
    values = list(per_file.values())
    if not values:
        return ComplexityStats(average=0.0, max=0, high_complexity_functions=list(hot_spots))
    return ComplexityStats(
        average=sum(values) / len(values),
        max=max(values),
        high_complexity_functions=list(hot_spots),
    )


def _flatten(blocks: Iterable[object]) -> Iterable[object]:
    # depending on the radon version, methods come back listed or nested in their class
    seen = set()
    for block in blocks:
        for item in [block, *(getattr(block, "methods", None) or [])]:
            key = (item.name, item.lineno)
            if key in seen:
                continue
            seen.add(key)
            yield item
