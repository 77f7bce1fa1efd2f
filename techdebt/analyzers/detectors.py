"""Heuristic issue detectors.

Each detector inspects one file's text and returns the issues it finds. They
are plain strategy objects so a scan can run any combination of them; the
default set is built by :func:`default_detectors`.

Detectors look at text, not syntax trees. Python files are recognised by their
suffix; every other configured language is treated as brace-delimited.
"""
from __future__ import annotations

import re
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Protocol

from ..config import Config
from ..models import CodeIssue, IssueSeverity, IssueType, LineRange
from ..utils.ast_tools import safe_parse, unused_imports
from ..utils.fs import is_python, is_test_file
from ..utils.tokens import magic_numbers


class Detector(Protocol):
    rule: str

    def detect(self, path: str, content: str) -> List[CodeIssue]:
        ...


class AsyncErrorHandlingDetector:
    rule = "async-error-handling"

    PY_ASYNC = re.compile(r"\basync\s+def\s+\w+")
    PY_TRY = re.compile(r"^\s*try\s*:", re.MULTILINE)
    BRACE_ASYNC = re.compile(r"async\s+\w+")
    BRACE_TRY = re.compile(r"try\s*{")

    def detect(self, path: str, content: str) -> List[CodeIssue]:
        if is_python(path):
            has_async = self.PY_ASYNC.search(content) is not None
            has_try = self.PY_TRY.search(content) is not None
        else:
            has_async = self.BRACE_ASYNC.search(content) is not None
            has_try = self.BRACE_TRY.search(content) is not None
        if not has_async or has_try:
            return []
        return [
            CodeIssue(
                id=f"{path}-error-handling",
                type=IssueType.ERROR_HANDLING,
                severity=IssueSeverity.HIGH,
                title="Missing error handling in async function",
                description="Async functions should handle the exceptions their awaits can raise",
                file_path=path,
                rule=self.rule,
                suggestion="Wrap async operations in try/except blocks",
                auto_fixable=False,
                estimated_effort="15 minutes",
                technical_debt=15,
            )
        ]


class AnyUsageDetector:
    rule = "any-usage"

    PY_ANY = re.compile(r"(?::|->)\s*(?:typing\.)?Any\b")
    BRACE_ANY = re.compile(r":\s*any[\s,;)]")

    def __init__(self, threshold: int = 3) -> None:
        self.threshold = threshold

    def detect(self, path: str, content: str) -> List[CodeIssue]:
        pattern = self.PY_ANY if is_python(path) else self.BRACE_ANY
        count = len(pattern.findall(content))
        if count <= self.threshold:
            return []
        return [
            CodeIssue(
                id=f"{path}-type-safety",
                type=IssueType.TYPE_SAFETY,
                severity=IssueSeverity.MEDIUM,
                title=f"Excessive use of 'Any' type ({count} occurrences)",
                description="Using 'Any' disables type checking for the annotated values",
                file_path=path,
                rule=self.rule,
                suggestion="Replace 'Any' with specific types, protocols or TypedDicts",
                auto_fixable=False,
                estimated_effort="30 minutes",
                technical_debt=30,
            )
        ]


class LargeFunctionDetector:
    rule = "large-function"

    PY_DEF = re.compile(r"^(\s*)(?:async\s+)?def\s+\w+")
    BRACE_START = re.compile(r"(function|=>|\s+\w+\s*\()")

    def __init__(self, max_lines: int = 50) -> None:
        self.max_lines = max_lines

    def detect(self, path: str, content: str) -> List[CodeIssue]:
        lines = content.split("\n")
        spans = self._python_spans(lines) if is_python(path) else self._brace_spans(lines)
        issues = []
        for start, end in spans:
            length = end - start
            if length <= self.max_lines:
                continue
            issues.append(
                CodeIssue(
                    id=f"{path}-complexity-{start}",
                    type=IssueType.COMPLEXITY,
                    severity=IssueSeverity.MEDIUM,
                    title="Large function detected",
                    description=(
                        f"Function has {length} lines, exceeding recommended {self.max_lines} lines"
                    ),
                    file_path=path,
                    rule=self.rule,
                    line_range=LineRange(start=start + 1, end=end + 1),
                    suggestion="Consider breaking this function into smaller functions",
                    auto_fixable=False,
                    estimated_effort="1 hour",
                    technical_debt=60,
                )
            )
        return issues

    def _python_spans(self, lines: List[str]) -> List[tuple[int, int]]:
        spans = []
        for start, line in enumerate(lines):
            match = self.PY_DEF.match(line)
            if not match:
                continue
            indent = len(match.group(1).expandtabs())
            # the signature may continue over several lines
            header_end = start
            depth = 0
            while header_end < len(lines):
                depth += _bracket_delta(lines[header_end])
                if depth <= 0:
                    break
                header_end += 1
            end = header_end
            for index in range(header_end + 1, len(lines)):
                stripped = lines[index].strip()
                if not stripped or stripped.startswith("#"):
                    continue
                if _indent_of(lines[index]) <= indent:
                    break
                end = index
            spans.append((start, end))
        return spans

    def _brace_spans(self, lines: List[str]) -> List[tuple[int, int]]:
        spans = []
        start = -1
        braces = 0
        for index, line in enumerate(lines):
            if self.BRACE_START.search(line):
                start = index
                braces = 0
            if start >= 0:
                braces += line.count("{") - line.count("}")
                if braces == 0:
                    spans.append((start, index))
                    start = -1
        return spans


class TodoDetector:
    rule = "todo-marker"

    MARKER = re.compile(r"\b(TODO|FIXME)\b", re.IGNORECASE)

    def detect(self, path: str, content: str) -> List[CodeIssue]:
        issues = []
        for index, line in enumerate(content.split("\n")):
            if not self.MARKER.search(line):
                continue
            issues.append(
                CodeIssue(
                    id=f"{path}-todo-{index}",
                    type=IssueType.MAINTAINABILITY,
                    severity=IssueSeverity.LOW,
                    title="Unresolved TODO/FIXME comment",
                    description=line.strip(),
                    file_path=path,
                    rule=self.rule,
                    line_number=index + 1,
                    suggestion="Resolve or track as a proper issue",
                    auto_fixable=False,
                    estimated_effort="30 minutes",
                    technical_debt=30,
                )
            )
        return issues


class ConsoleLoggingDetector:
    rule = "console-logging"

    PY_PRINT = re.compile(r"(?<![\w.])print\s*\(")
    BRACE_CONSOLE = re.compile(r"console\.(log|error|warn|info|debug)")

    def detect(self, path: str, content: str) -> List[CodeIssue]:
        pattern = self.PY_PRINT if is_python(path) else self.BRACE_CONSOLE
        if not pattern.search(content):
            return []
        return [
            CodeIssue(
                id=f"{path}-console-log",
                type=IssueType.MAINTAINABILITY,
                severity=IssueSeverity.LOW,
                title="Using print instead of the logger",
                description="Output should go through the logging module for consistency",
                file_path=path,
                rule=self.rule,
                suggestion="Replace print() with logger.info()",
                auto_fixable=True,
                estimated_effort="5 minutes",
                technical_debt=5,
            )
        ]


class HardcodedUrlDetector:
    rule = "hardcoded-url"

    URL = re.compile(r"https?://[^\s'\"]+")

    def __init__(self, test_patterns: Iterable[str] = ()) -> None:
        self.test_patterns = list(test_patterns)

    def detect(self, path: str, content: str) -> List[CodeIssue]:
        if is_test_file(Path(PurePosixPath(path).name), self.test_patterns):
            return []
        if not self.URL.search(content):
            return []
        return [
            CodeIssue(
                id=f"{path}-hardcoded-url",
                type=IssueType.MAINTAINABILITY,
                severity=IssueSeverity.MEDIUM,
                title="Hardcoded URLs detected",
                description="URLs should be in configuration",
                file_path=path,
                rule=self.rule,
                suggestion="Move URLs to environment variables or the config file",
                auto_fixable=False,
                estimated_effort="20 minutes",
                technical_debt=20,
            )
        ]


class UnusedImportDetector:
    rule = "unused-import"

    def detect(self, path: str, content: str) -> List[CodeIssue]:
        if not is_python(path) or PurePosixPath(path).name == "__init__.py":
            return []
        tree, success = safe_parse(content)
        if not success or tree is None:
            return []
        unused = unused_imports(tree)
        if not unused:
            return []
        names = ", ".join(name for name, _ in unused)
        return [
            CodeIssue(
                id=f"{path}-unused-imports",
                type=IssueType.MAINTAINABILITY,
                severity=IssueSeverity.LOW,
                title=f"Unused imports ({len(unused)})",
                description=f"Imported but never used: {names}",
                file_path=path,
                rule=self.rule,
                line_number=unused[0][1],
                suggestion="Remove the unused imports",
                auto_fixable=True,
                estimated_effort="5 minutes",
                technical_debt=5,
            )
        ]


class MagicNumberDetector:
    rule = "magic-number"

    def __init__(self, min_occurrences: int = 3) -> None:
        self.min_occurrences = min_occurrences

    def detect(self, path: str, content: str) -> List[CodeIssue]:
        if not is_python(path):
            return []
        repeated = {
            value: positions
            for value, positions in magic_numbers(content).items()
            if len(positions) >= self.min_occurrences
        }
        if not repeated:
            return []
        first_line = min(positions[0][0] for positions in repeated.values())
        listing = ", ".join(f"{value} (x{len(positions)})" for value, positions in repeated.items())
        return [
            CodeIssue(
                id=f"{path}-magic-numbers",
                type=IssueType.MAINTAINABILITY,
                severity=IssueSeverity.LOW,
                title="Repeated magic numbers",
                description=f"Numeric literals repeated without a name: {listing}",
                file_path=path,
                rule=self.rule,
                line_number=first_line,
                suggestion="Replace the literals with named module-level constants",
                auto_fixable=True,
                estimated_effort="10 minutes",
                technical_debt=10,
            )
        ]


def default_detectors(config: Config) -> List[Detector]:
    thresholds = config.thresholds
    return [
        AsyncErrorHandlingDetector(),
        AnyUsageDetector(thresholds.any_usage),
        LargeFunctionDetector(thresholds.max_function_lines),
        TodoDetector(),
        ConsoleLoggingDetector(),
        HardcodedUrlDetector(config.scan.test_patterns),
        UnusedImportDetector(),
        MagicNumberDetector(thresholds.magic_number_occurrences),
    ]


def _bracket_delta(line: str) -> int:
    code = line.split("#", 1)[0]
    return sum(code.count(c) for c in "([{") - sum(code.count(c) for c in ")]}")


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip())
