"""Requirements manifest reading and re-pinning."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from ..errors import ManifestError
from ..models import DependencyType

logger = logging.getLogger(__name__)

PINNING_OPERATORS = ("==", "===", ">=", "~=")


@dataclass
class ManifestEntry:
    name: str
    requirement: Requirement
    line_index: int
    path: Path
    type: DependencyType = DependencyType.DIRECT

    @property
    def key(self) -> str:
        return canonicalize_name(self.name)

    @property
    def version(self) -> str:
        """The pinned (or lower-bound) version, ``"*"`` when unconstrained."""
        for specifier in self.requirement.specifier:
            if specifier.operator in PINNING_OPERATORS:
                return specifier.version
        return str(self.requirement.specifier) or "*"


def read_manifest(path: Path, dep_type: DependencyType = DependencyType.DIRECT) -> List[ManifestEntry]:
    """Parse a requirements file; options, includes and bad lines are skipped."""
    if not path.exists():
        logger.debug("Manifest %s not found", path)
        return []
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise ManifestError(f"Failed to read {path}: {exc}") from exc

    entries: List[ManifestEntry] = []
    for index, raw in enumerate(lines):
        line = raw.split(" #", 1)[0].strip()
        if not line or line.startswith(("#", "-")):
            continue
        try:
            requirement = Requirement(line)
        except InvalidRequirement as exc:
            logger.warning("Skipping unparsable requirement %r in %s: %s", line, path.name, exc)
            continue
        entries.append(
            ManifestEntry(
                name=requirement.name,
                requirement=requirement,
                line_index=index,
                path=path,
                type=dep_type,
            )
        )
    return entries


def pin_line(requirement: Requirement, version: str) -> str:
    extras = f"[{','.join(sorted(requirement.extras))}]" if requirement.extras else ""
    marker = f"; {requirement.marker}" if requirement.marker else ""
    return f"{requirement.name}{extras}=={version}{marker}"


def repin(entry: ManifestEntry, version: str) -> None:
    """Rewrite ``entry``'s line in its manifest as ``name==version``."""
    try:
        text = entry.path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Failed to read {entry.path}: {exc}") from exc
    lines = text.splitlines()
    if entry.line_index >= len(lines):
        raise ManifestError(f"{entry.path} changed while updating {entry.name}")
    lines[entry.line_index] = pin_line(entry.requirement, version)
    ending = "\n" if text.endswith("\n") else ""
    try:
        entry.path.write_text("\n".join(lines) + ending, encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Failed to write {entry.path}: {exc}") from exc
    logger.info("Pinned %s==%s in %s", entry.name, version, entry.path.name)


def find_entry(entries: List[ManifestEntry], name: str) -> Optional[ManifestEntry]:
    key = canonicalize_name(name)
    for entry in entries:
        if entry.key == key:
            return entry
    return None
