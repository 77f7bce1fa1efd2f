"""Source transformations behind the automated refactorings.

Transformations never touch the filesystem beyond reading: each returns the
new content as a :class:`FileChange` and the applier decides whether to write
it.
"""
from __future__ import annotations

import ast
import difflib
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Set, Tuple

from pylint.lint import Run as PylintRun
from pylint.reporters import CollectingReporter

from ..errors import TransformError
from ..utils.ast_tools import normalize_source, safe_parse
from ..utils.fs import is_python
from ..utils.tokens import constant_name, magic_numbers

logger = logging.getLogger(__name__)

_UNUSED_PLAIN = re.compile(r"^Unused import (?P<name>\S+)$")
_UNUSED_AS = re.compile(r"^Unused (?P<name>\S+) imported as (?P<asname>\S+)$")
_UNUSED_FROM = re.compile(r"^Unused (?P<name>\S+) imported from \S+(?: as (?P<asname>\S+))?$")

ImportKey = Tuple[int, str, Optional[str]]


@dataclass
class FileChange:
    path: str
    before: str
    after: str

    @property
    def changed(self) -> bool:
        return self.before != self.after

    @property
    def lines_changed(self) -> int:
        return count_changed_lines(self.before, self.after)


def count_changed_lines(before: str, after: str) -> int:
    diff = difflib.unified_diff(before.splitlines(), after.splitlines(), lineterm="", n=0)
    return sum(
        1
        for line in diff
        if line[:1] in "+-" and not line.startswith(("+++", "---"))
    )


# --- optimize imports --------------------------------------------------------


def pylint_unused_imports(path: Path) -> Set[ImportKey]:
    """Ask pylint which imports in ``path`` are unused."""
    reporter = CollectingReporter()
    try:
        PylintRun(
            [
                str(path),
                "--disable=all",
                "--enable=unused-import",
                "--score=n",
                "--persistent=n",
            ],
            reporter=reporter,
            exit=False,
        )
    except Exception as exc:  # noqa: BLE001 - pylint raises a wide range of errors
        raise TransformError(f"pylint failed on {path}: {exc}") from exc
    unused: Set[ImportKey] = set()
    for message in reporter.messages:
        if message.symbol != "unused-import":
            continue
        key = _parse_unused_message(message.line, message.msg)
        if key is None:
            logger.debug("Unrecognised pylint message: %s", message.msg)
            continue
        unused.add(key)
    return unused


def _parse_unused_message(line: int, text: str) -> Optional[ImportKey]:
    for pattern in (_UNUSED_PLAIN, _UNUSED_AS, _UNUSED_FROM):
        match = pattern.match(text.strip())
        if match:
            return line, match.group("name"), match.groupdict().get("asname")
    return None


def remove_imports(source: str, unused: Set[ImportKey]) -> str:
    """Drop the ``unused`` aliases from their import statements."""
    tree = ast.parse(source)
    parents: Dict[ast.AST, List[ast.stmt]] = {}
    for node in ast.walk(tree):
        for name in ("body", "orelse", "finalbody"):
            block = getattr(node, name, None)
            if isinstance(block, list):
                for child in block:
                    parents[child] = block
        for handler in getattr(node, "handlers", []) or []:
            for child in handler.body:
                parents[child] = handler.body

    lines = source.splitlines(keepends=True)
    imports = [
        node for node in ast.walk(tree) if isinstance(node, (ast.Import, ast.ImportFrom))
    ]
    for node in sorted(imports, key=lambda n: n.lineno, reverse=True):
        keep = [
            alias
            for alias in node.names
            if (node.lineno, alias.name, alias.asname) not in unused
        ]
        if len(keep) == len(node.names):
            continue
        start, end = node.lineno - 1, (node.end_lineno or node.lineno) - 1
        first = lines[start]
        if not first.lstrip().startswith(("from ", "import ")):
            # statement shares its line with other code
            continue
        indent = first[: len(first) - len(first.lstrip())]
        ending = "\n" if lines[end].endswith("\n") else ""
        if keep:
            node.names = keep
            replacement = [indent + ast.unparse(node) + ending]
        elif len(parents.get(node, [])) == 1:
            replacement = [indent + "pass" + ending]
        else:
            replacement = []
        lines[start : end + 1] = replacement
    return "".join(lines)


def optimize_imports(root: Path, rel_path: str) -> FileChange:
    path = root / rel_path
    if not is_python(rel_path):
        raise TransformError(f"Import optimization only supports Python files: {rel_path}")
    before = _read(path)
    unused = pylint_unused_imports(path)
    if not unused:
        raise TransformError(f"No unused imports reported in {rel_path}")
    try:
        after = remove_imports(before, unused)
    except SyntaxError as exc:
        raise TransformError(f"Cannot parse {rel_path}: {exc}") from exc
    logger.info("Removing %d unused imports from %s", len(unused), rel_path)
    return FileChange(path=rel_path, before=before, after=after)


# --- remove duplication ------------------------------------------------------


def relative_import(shim: str, canonical: str) -> str:
    """Return the relative module reference from ``shim`` to ``canonical``."""
    shim_dir = PurePosixPath(shim).parent.parts
    target = PurePosixPath(canonical)
    target_parts = target.parent.parts
    common = 0
    for left, right in zip(shim_dir, target_parts):
        if left != right:
            break
        common += 1
    dots = "." * (len(shim_dir) - common + 1)
    tail = list(target_parts[common:])
    if target.stem != "__init__":
        tail.append(target.stem)
    for part in tail:
        if not part.isidentifier():
            raise TransformError(f"{canonical} is not importable as a module")
    return dots + ".".join(tail)


def shim_source(module: str, canonical: str) -> str:
    return (
        f'"""Duplicate of {canonical}; kept as a re-export for existing imports."""\n'
        f"from {module} import *  # noqa: F401,F403\n"
    )


def remove_duplication(root: Path, files: List[str]) -> List[FileChange]:
    if len(files) < 2:
        raise TransformError("A duplicate cluster needs at least two files")
    for rel in files:
        if not is_python(rel):
            raise TransformError(f"Duplicate removal only supports Python files: {rel}")
    canonical, *duplicates = files
    expected = _exact_form(canonical, _read(root / canonical))
    changes = []
    for rel in duplicates:
        module = relative_import(rel, canonical)
        before = _read(root / rel)
        if _exact_form(rel, before) != expected:
            raise TransformError(f"{rel} only shares its structure with {canonical}; names differ")
        changes.append(FileChange(path=rel, before=before, after=shim_source(module, canonical)))
    logger.info("Replacing %d duplicates of %s with re-exports", len(changes), canonical)
    return changes


def _exact_form(rel_path: str, source: str) -> str:
    """Source without comments, docstrings or layout; names are kept."""
    tree, success = safe_parse(source)
    if not success or tree is None:
        raise TransformError(f"Cannot parse {rel_path}")
    return normalize_source(tree, rename=False)


# --- magic numbers -----------------------------------------------------------


def hoist_magic_numbers(source: str, min_occurrences: int) -> str:
    found = {
        literal: positions
        for literal, positions in magic_numbers(source).items()
        if len(positions) >= min_occurrences
    }
    names: Dict[str, str] = {}
    for literal in found:
        name = constant_name(literal)
        if re.search(rf"\b{re.escape(name)}\b", source):
            logger.debug("Skipping %s: %s already defined", literal, name)
            continue
        names[literal] = name
    if not names:
        raise TransformError("No repeated magic numbers to replace")

    lines = source.splitlines(keepends=True)
    edits: Dict[int, List[Tuple[int, int, str]]] = {}
    for literal, name in names.items():
        for row, start, end in found[literal]:
            edits.setdefault(row, []).append((start, end, name))
    for row, spans in edits.items():
        line = lines[row - 1]
        for start, end, name in sorted(spans, reverse=True):
            line = line[:start] + name + line[end:]
        lines[row - 1] = line

    insert_at = _constants_insert_line(source)
    block = [f"{name} = {literal}\n" for literal, name in names.items()]
    if insert_at and not lines[insert_at - 1].endswith("\n"):
        lines[insert_at - 1] += "\n"
    lines[insert_at:insert_at] = ["\n", *block, "\n"]
    return "".join(lines)


def _constants_insert_line(source: str) -> int:
    """Return the line index right after the module docstring and imports."""
    tree = ast.parse(source)
    insert_at = 0
    for index, node in enumerate(tree.body):
        is_docstring = (
            index == 0
            and isinstance(node, ast.Expr)
            and isinstance(node.value, ast.Constant)
            and isinstance(node.value.value, str)
        )
        if is_docstring or isinstance(node, (ast.Import, ast.ImportFrom)):
            insert_at = node.end_lineno or node.lineno
            continue
        break
    return insert_at


def replace_magic_numbers(root: Path, rel_path: str, min_occurrences: int) -> FileChange:
    if not is_python(rel_path):
        raise TransformError(f"Magic number replacement only supports Python files: {rel_path}")
    before = _read(root / rel_path)
    try:
        after = hoist_magic_numbers(before, min_occurrences)
    except SyntaxError as exc:
        raise TransformError(f"Cannot parse {rel_path}: {exc}") from exc
    return FileChange(path=rel_path, before=before, after=after)


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TransformError(f"Cannot read {path}: {exc}") from exc
