"""File snapshots used to roll back refactorings and dependency updates."""
from __future__ import annotations

import logging
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Optional

from ..errors import BackupError

logger = logging.getLogger(__name__)


@dataclass
class BackupSnapshot:
    location: Path
    files: Dict[str, Path] = field(default_factory=dict)


class FileBackup:
    """Copies files under ``root`` into timestamped directories of ``backup_dir``."""

    def __init__(self, root: Path, backup_dir: Path, keep: Optional[int] = None) -> None:
        self.root = root
        self.backup_dir = backup_dir if backup_dir.is_absolute() else root / backup_dir
        self.keep = keep

    def snapshot(self, files: Iterable[Path]) -> BackupSnapshot:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        location = self.backup_dir / f"backup-{stamp}-{uuid.uuid4().hex[:6]}"
        snapshot = BackupSnapshot(location=location)
        try:
            location.mkdir(parents=True)
            for path in files:
                rel = self._relative(path)
                target = location / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, target)
                snapshot.files[rel] = target
        except OSError as exc:
            logger.error("Failed to create backup: %s", exc)
            raise BackupError(f"Failed to create backup: {exc}") from exc
        logger.info("Created backup at %s (%d files)", location, len(snapshot.files))
        self.prune()
        return snapshot

    def prune(self) -> None:
        """Delete all but the newest ``keep`` snapshots."""
        if self.keep is None or not self.backup_dir.is_dir():
            return
        snapshots = sorted(p for p in self.backup_dir.glob("backup-*") if p.is_dir())
        stale = snapshots[: max(len(snapshots) - max(self.keep, 1), 0)]
        for path in stale:
            try:
                shutil.rmtree(path)
            except OSError as exc:
                logger.warning("Could not remove old backup %s: %s", path, exc)
                continue
            logger.debug("Removed old backup %s", path)

    def restore(self, snapshot: BackupSnapshot) -> None:
        logger.info("Rolling back %d files from %s", len(snapshot.files), snapshot.location)
        try:
            for rel, copy in snapshot.files.items():
                target = self.root / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(copy, target)
        except OSError as exc:
            raise BackupError(f"Failed to restore backup {snapshot.location}: {exc}") from exc

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return path.name
