"""Apply refactoring opportunities to the working tree."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

from ..config import Config
from ..errors import (
    OpportunityNotFound,
    RefactoringRejected,
    TransformError,
    UnsupportedRefactoring,
)
from ..guard import guarded_mutation
from ..models import (
    ApplyRefactoringRequest,
    RefactoringOpportunity,
    RefactoringResult,
    RefactoringStats,
    RefactoringStatus,
    RefactoringType,
    utc_now,
)
from ..utils import fs
from ..utils.backup import BackupSnapshot, FileBackup
from ..utils.process import SuiteRunner
from .history import HistoryStore, InMemoryHistory
from .planner import RefactoringPlanner
from .transforms import FileChange, optimize_imports, remove_duplication, replace_magic_numbers

logger = logging.getLogger(__name__)


class RefactoringApplier:
    def __init__(
        self,
        config: Config,
        planner: RefactoringPlanner,
        history: Optional[HistoryStore] = None,
        run_tests: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.config = config
        self.planner = planner
        self.history = history if history is not None else InMemoryHistory()
        self.run_tests = run_tests or SuiteRunner(config).run
        self.backup = FileBackup(
            config.project.root_path,
            Path(config.refactoring.backup_dir),
            keep=config.refactoring.keep_backups,
        )

    @property
    def root(self) -> Path:
        return self.config.project.root_path

    def apply_refactoring(self, request: ApplyRefactoringRequest) -> RefactoringResult:
        logger.info("Applying refactoring: %s", request.opportunity_id)
        result = RefactoringResult(
            opportunity_id=request.opportunity_id,
            status=RefactoringStatus.IN_PROGRESS,
            applied_at=utc_now(),
        )

        def mutate() -> List[FileChange]:
            opportunity = self.planner.find(request.opportunity_id)
            if opportunity is None:
                raise OpportunityNotFound(request.opportunity_id)
            if not opportunity.auto_applicable and not request.auto_confirm:
                raise RefactoringRejected(
                    "This refactoring requires manual confirmation or cannot be auto-applied"
                )
            changes = [change for change in self._transform(opportunity) if change.changed]
            self._write(changes)
            result.files_modified = [change.path for change in changes]
            result.lines_changed = sum(change.lines_changed for change in changes)
            return changes

        verify = None
        if request.run_tests:
            verify = lambda _changes: self.run_tests()  # noqa: E731

        outcome = guarded_mutation(
            mutate,
            snapshot=self._snapshot if request.create_backup else None,
            restore=self.backup.restore,
            verify=verify,
            verify_error="Tests failed after refactoring",
        )
        result.rollback_available = outcome.backup_taken
        if outcome.ok:
            result.status = RefactoringStatus.COMPLETED
            logger.info("Refactoring completed successfully")
        else:
            if isinstance(outcome.error, RefactoringRejected):
                result.status = RefactoringStatus.REJECTED
            else:
                result.status = RefactoringStatus.FAILED
            result.error = str(outcome.error)
            result.unsafe = outcome.unsafe
            if outcome.rolled_back:
                result.files_modified = []
                result.lines_changed = 0
            logger.error("Refactoring %s failed: %s", request.opportunity_id, result.error)
        self.history.append(result)
        return result

    def get_refactoring_history(self) -> List[RefactoringResult]:
        return self.history.list()

    def get_refactoring_stats(self) -> RefactoringStats:
        history = self.history.list()
        return RefactoringStats(
            total=len(history),
            completed=sum(1 for r in history if r.status == RefactoringStatus.COMPLETED),
            failed=sum(1 for r in history if r.status == RefactoringStatus.FAILED),
            rejected=sum(1 for r in history if r.status == RefactoringStatus.REJECTED),
            total_files_modified=sum(len(r.files_modified) for r in history),
            total_lines_changed=sum(r.lines_changed for r in history),
        )

    def _transform(self, opportunity: RefactoringOpportunity) -> List[FileChange]:
        kind = opportunity.type
        if kind == RefactoringType.OPTIMIZE_IMPORTS:
            return [optimize_imports(self.root, opportunity.file_path)]
        if kind == RefactoringType.REMOVE_DUPLICATION:
            files = opportunity.affected_files or [opportunity.file_path]
            return remove_duplication(self.root, files)
        if kind == RefactoringType.REPLACE_MAGIC_NUMBERS:
            return [
                replace_magic_numbers(
                    self.root,
                    opportunity.file_path,
                    self.config.thresholds.magic_number_occurrences,
                )
            ]
        if kind in (
            RefactoringType.EXTRACT_METHOD,
            RefactoringType.EXTRACT_CLASS,
            RefactoringType.SIMPLIFY_CONDITIONAL,
            RefactoringType.IMPROVE_ERROR_HANDLING,
            RefactoringType.ADD_TYPE_ANNOTATIONS,
            RefactoringType.CONSOLIDATE_CONDITIONAL,
        ):
            raise UnsupportedRefactoring(f"Refactoring type {kind.value} not yet implemented")
        raise UnsupportedRefactoring(f"Unknown refactoring type {kind!r}")

    def _write(self, changes: List[FileChange]) -> None:
        for change in changes:
            try:
                (self.root / change.path).write_text(change.after, encoding="utf-8")
            except OSError as exc:
                raise TransformError(f"Cannot write {change.path}: {exc}") from exc
            logger.info("Rewrote %s (%d lines changed)", change.path, change.lines_changed)

    def _snapshot(self) -> BackupSnapshot:
        files = fs.iter_files(
            self.config.project.root_path,
            self.config.scan.exclude + [Path(self.config.refactoring.backup_dir).name],
            self.config.scan.extensions,
        )
        return self.backup.snapshot(files)
