"""Duplicate detection by normalized fingerprints."""
from __future__ import annotations

import ast
import hashlib
import re
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..models import CodePattern, DuplicateCode, LineRange, Occurrence, RefactoringType
from ..utils.ast_tools import iter_functions, normalize_source, safe_parse
from ..utils.fs import is_python

HASH_LENGTH = 12

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"(?://|#).*$", re.MULTILINE)
_IDENTIFIER = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*\b")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class DuplicationResult:
    duplicates: List[DuplicateCode] = field(default_factory=list)
    percentage: float = 0.0
    fingerprints: Dict[str, str] = field(default_factory=dict)


def normalize(path: str, content: str) -> str:
    """Strip comments, docstrings and whitespace and replace identifiers.

    Python files go through the AST; anything unparsable falls back to regexes.
    """
    if is_python(path):
        tree, success = safe_parse(content)
        if success and tree is not None:
            return _WHITESPACE.sub("", normalize_source(tree))
    text = _BLOCK_COMMENT.sub("", content)
    text = _LINE_COMMENT.sub("", text)
    text = _IDENTIFIER.sub("ID", text)
    return _WHITESPACE.sub("", text)


def fingerprint(normalized: str) -> str:
    return hashlib.md5(normalized.encode("utf-8")).hexdigest()[:HASH_LENGTH]


class DuplicationAnalyzer:
    def __init__(self, high_lines: int = 50, pattern_min_lines: int = 5) -> None:
        self.high_lines = high_lines
        self.pattern_min_lines = pattern_min_lines

    def analyze(self, sources: Dict[str, str]) -> DuplicationResult:
        """Group files sharing a fingerprint.

        The percentage counts every file belonging to a group of two or more
        against all files, so one identical pair among four files gives 50%.
        """
        result = DuplicationResult()
        groups: Dict[str, List[str]] = {}
        for path, content in sources.items():
            normalized = normalize(path, content)
            if not normalized or normalized == "pass":
                continue
            digest = fingerprint(normalized)
            result.fingerprints[path] = digest
            groups.setdefault(digest, []).append(path)

        duplicated_files = 0
        for digest, paths in groups.items():
            if len(paths) < 2:
                continue
            duplicated_files += len(paths)
            line_count = _line_count(sources[paths[0]])
            result.duplicates.append(
                DuplicateCode(
                    id=f"duplicate-{digest}",
                    hash=digest,
                    line_count=line_count,
                    occurrences=[
                        Occurrence(
                            file_path=path,
                            line_range=LineRange(start=1, end=_line_count(sources[path])),
                            snippet=_snippet(sources[path]),
                        )
                        for path in paths
                    ],
                    severity="high" if line_count >= self.high_lines else "medium",
                    suggested_action="Extract the shared code into one module and import it",
                )
            )
        if sources:
            result.percentage = duplicated_files / len(sources) * 100
        return result

    def patterns(self, sources: Dict[str, str]) -> List[CodePattern]:
        """Cluster structurally identical functions across files."""
        clusters: Dict[str, List[Tuple[str, Occurrence]]] = {}
        for path, content in sources.items():
            if not is_python(path):
                continue
            tree, success = safe_parse(content)
            if not success or tree is None:
                continue
            for node in list(iter_functions(tree)):
                length = (node.end_lineno or node.lineno) - node.lineno + 1
                if length < self.pattern_min_lines:
                    continue
                span = LineRange(start=node.lineno, end=node.end_lineno or node.lineno)
                digest = fingerprint(_WHITESPACE.sub("", normalize_source(_detached(node))))
                clusters.setdefault(digest, []).append((node.name, Occurrence(path, span)))

        found = []
        for digest, members in clusters.items():
            if len(members) < 2:
                continue
            names = sorted({name for name, _ in members})
            found.append(
                CodePattern(
                    id=f"pattern-{digest}",
                    name=", ".join(names),
                    description=(
                        f"{len(members)} functions share the same structure: {', '.join(names)}"
                    ),
                    occurrences=len(members),
                    locations=[occurrence for _, occurrence in members],
                    should_refactor=True,
                    refactoring_type=RefactoringType.EXTRACT_METHOD,
                )
            )
        return found


def _detached(node: ast.AST) -> ast.Module:
    # normalize a copy so the caller's tree keeps its names
    return ast.parse(ast.unparse(node))


def _line_count(content: str) -> int:
    return len(content.split("\n"))


def _snippet(content: str, lines: int = 3) -> str:
    return "\n".join(content.strip().split("\n")[:lines])
