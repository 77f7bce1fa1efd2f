"""Apply dependency updates with manifest backup and rollback."""
from __future__ import annotations

import logging
from importlib import metadata
from pathlib import Path
from typing import Callable, List, Optional

from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from ..config import Config
from ..errors import ManifestError, TechDebtError, ToolError
from ..guard import guarded_mutation
from ..models import DependencyType, DependencyUpdate, UpdateOptions, UpdateRecommendation
from ..utils.backup import BackupSnapshot, FileBackup
from ..utils.process import SuiteRunner, build_command, run_tool
from .auditor import DependencyAuditor, filter_by_strategy
from .manifest import ManifestEntry, find_entry, repin

logger = logging.getLogger(__name__)

LATEST = "latest"


class DependencyUpdater:
    def __init__(
        self,
        config: Config,
        auditor: DependencyAuditor,
        run_tests: Optional[Callable[[], bool]] = None,
        installed_version: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.config = config
        self.auditor = auditor
        self.run_tests = run_tests or SuiteRunner(config).run
        self.installed_version = installed_version or metadata.version
        self.backup = FileBackup(
            config.project.root_path,
            Path(config.refactoring.backup_dir),
            keep=config.refactoring.keep_backups,
        )

    @property
    def root(self) -> Path:
        return self.config.project.root_path

    def update_dependencies(self, options: Optional[UpdateOptions] = None) -> List[DependencyUpdate]:
        options = options or UpdateOptions()
        logger.info("Starting dependency updates (strategy %s)", options.strategy.value)
        updates: List[DependencyUpdate] = []

        def mutate() -> List[DependencyUpdate]:
            report = self.auditor.analyze_dependencies()
            selected = filter_by_strategy(report.update_recommendations, options.strategy)
            entries = self.auditor.manifest_entries()
            if not options.include_dev_dependencies:
                selected = [rec for rec in selected if not _is_dev_only(rec, entries)]
            if options.packages:
                wanted = {canonicalize_name(name) for name in options.packages}
                selected = [rec for rec in selected if canonicalize_name(rec.package) in wanted]

            for recommendation in selected:
                update = self._update_package(recommendation, entries)
                updates.append(update)
                if not update.success:
                    logger.error("Failed to update %s", recommendation.package)
                    if not options.auto_merge:
                        break
            return updates

        def verify(result: List[DependencyUpdate]) -> bool:
            if not options.run_tests or not any(update.success for update in result):
                return True
            return self.run_tests()

        outcome = guarded_mutation(
            mutate,
            snapshot=self._snapshot if options.create_backup else None,
            restore=self.backup.restore,
            verify=verify,
            verify_error="Tests failed after update",
        )
        if outcome.ok:
            return updates

        installed = [update for update in updates if update.success] if outcome.rolled_back else []
        message = str(outcome.error)
        if outcome.unsafe:
            message = f"{message}; rollback failed, unsafe state: {outcome.rollback_error}"
        logger.error("Dependency update failed: %s", message)
        for update in updates:
            update.success = False
            update.error = message
        if outcome.unsafe and not updates:
            updates.append(
                DependencyUpdate(
                    package="*",
                    from_version="",
                    to_version="",
                    success=False,
                    error=message,
                )
            )
        for update in installed:
            self._reinstall(update)
        return updates

    def _update_package(
        self, recommendation: UpdateRecommendation, entries: List[ManifestEntry]
    ) -> DependencyUpdate:
        update = DependencyUpdate(
            package=recommendation.package,
            from_version=recommendation.from_version,
            to_version=recommendation.to_version,
            success=False,
        )
        if recommendation.to_version == LATEST:
            cmd = build_command(self.config.tools.upgrade_cmd, package=recommendation.package)
        else:
            cmd = self._install_command(recommendation.package, recommendation.to_version)
        try:
            run_tool(
                "install",
                cmd,
                cwd=self.root,
                timeout=self.config.tools.timeouts.get("install"),
            )
            self._pin(recommendation, entries)
        except TechDebtError as exc:
            update.error = str(exc)
            return update
        update.success = True
        logger.info("Updated %s to %s", recommendation.package, recommendation.to_version)
        return update

    def _install_command(self, package: str, version: str) -> List[str]:
        return build_command(
            self.config.tools.install_cmd,
            requirement=f"{package}=={version}",
            package=package,
            version=version,
        )

    def _reinstall(self, update: DependencyUpdate) -> None:
        """Put the environment back on the pin the restored manifest lists."""
        try:
            Version(update.from_version)
        except InvalidVersion:
            logger.warning("Cannot reinstall %s: previous version %r unknown", update.package, update.from_version)
            return
        cmd = self._install_command(update.package, update.from_version)
        try:
            run_tool("install", cmd, cwd=self.root, timeout=self.config.tools.timeouts.get("install"))
        except ToolError as exc:
            logger.error("Failed to reinstall %s==%s: %s", update.package, update.from_version, exc)
            update.error = f"{update.error}; reinstall of {update.from_version} failed: {exc}"
            return
        logger.info("Reinstalled %s==%s", update.package, update.from_version)

    def _pin(self, recommendation: UpdateRecommendation, entries: List[ManifestEntry]) -> None:
        entry = find_entry(entries, recommendation.package)
        if entry is None:
            return
        version = recommendation.to_version
        if version == LATEST:
            try:
                version = self.installed_version(recommendation.package)
            except metadata.PackageNotFoundError:
                logger.warning("Cannot resolve installed version of %s", recommendation.package)
                return
        repin(entry, version)

    def _snapshot(self) -> BackupSnapshot:
        files = [entry_path for entry_path in self._manifest_paths() if entry_path.exists()]
        if not files:
            raise ManifestError("No dependency manifest to back up")
        return self.backup.snapshot(files)

    def _manifest_paths(self) -> List[Path]:
        paths = [self.auditor.manifest_path]
        if self.config.dependencies.dev_manifest:
            paths.append(self.root / self.config.dependencies.dev_manifest)
        return paths


def _is_dev_only(recommendation: UpdateRecommendation, entries: List[ManifestEntry]) -> bool:
    key = canonicalize_name(recommendation.package)
    types = {entry.type for entry in entries if entry.key == key}
    return types == {DependencyType.DEV}

