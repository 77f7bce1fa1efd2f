"""Exceptions raised inside the engine.

Only invalid input escapes the public operations. Everything else is caught at
the component boundary and reported through result objects or degraded
(empty) report sections.
"""
from __future__ import annotations


class TechDebtError(Exception):
    """Base class for engine errors."""


class RefactoringError(TechDebtError):
    pass


class OpportunityNotFound(RefactoringError):
    def __init__(self, opportunity_id: str) -> None:
        super().__init__("Refactoring opportunity not found")
        self.opportunity_id = opportunity_id


class RefactoringRejected(RefactoringError):
    pass


class UnsupportedRefactoring(RefactoringError):
    pass


class TransformError(RefactoringError):
    pass


class ToolError(TechDebtError):
    pass


class ManifestError(TechDebtError):
    pass


class BackupError(TechDebtError):
    pass


class VerificationFailed(TechDebtError):
    pass
