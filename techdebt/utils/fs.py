"""Filesystem helpers for techdebt."""
from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

PYTHON_SUFFIXES = {".py", ".pyi"}


def iter_files(base: Path, exclude: Iterable[str], extensions: Iterable[str]) -> Iterator[Path]:
    """Yield files under ``base`` with one of ``extensions``, in a stable order.

    Entries whose name contains any ``exclude`` substring are pruned. Directories
    that cannot be read are logged and skipped.
    """
    excludes = list(exclude)
    suffixes = set(extensions)

    def on_error(exc: OSError) -> None:
        logger.error("Failed to read directory %s: %s", exc.filename, exc)

    if not base.is_dir():
        logger.warning("Directory %s does not exist", base)
        return
    for dirpath, dirnames, filenames in os.walk(base, onerror=on_error):
        dirnames[:] = sorted(d for d in dirnames if not is_excluded(d, excludes))
        for name in sorted(filenames):
            if is_excluded(name, excludes):
                continue
            path = Path(dirpath) / name
            if path.suffix in suffixes:
                yield path


def list_subdirectories(base: Path, exclude: Iterable[str]) -> List[str]:
    excludes = list(exclude)
    try:
        entries = sorted(os.scandir(base), key=lambda e: e.name)
    except OSError as exc:
        logger.error("Failed to read modules in %s: %s", base, exc)
        return []
    return [e.name for e in entries if e.is_dir() and not is_excluded(e.name, excludes)]


def is_excluded(name: str, exclude: Iterable[str]) -> bool:
    return any(pattern in name for pattern in exclude)


def is_test_file(path: Path, patterns: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(path.name, pattern) for pattern in patterns)


def tested_stem(path: Path) -> str:
    """Return the stem of the source file a test file exercises."""
    stem = path.name.split(".")[0] if path.suffix != ".py" else path.stem
    if stem.startswith("test_"):
        return stem[len("test_"):]
    if stem.endswith("_test"):
        return stem[: -len("_test")]
    return stem


def source_stem(path: Path) -> str:
    return path.name.split(".")[0]


def is_python(path: Path | str) -> bool:
    return Path(path).suffix in PYTHON_SUFFIXES


def relative_posix(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def read_text(path: Path) -> Tuple[str, int]:
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        # Fallback if a file has a different encoding.
        text = path.read_text(encoding="latin-1", errors="ignore")
    loc = len(text.split("\n"))
    return text, loc


def try_read_text(path: Path) -> Optional[Tuple[str, int]]:
    try:
        return read_text(path)
    except OSError as exc:
        logger.error("Failed to read %s: %s", path, exc)
        return None
