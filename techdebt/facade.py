"""One entry point that wires the quality, refactoring and dependency pipelines."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .config import Config
from .dependencies.auditor import DependencyAuditor
from .dependencies.updater import DependencyUpdater
from .models import (
    AnalysisOptions,
    DependencyReport,
    RefactoringOpportunity,
    RefactoringPlan,
    RefactoringPriority,
    Vulnerability,
)
from .refactoring.applier import RefactoringApplier
from .refactoring.history import HistoryStore
from .refactoring.planner import RefactoringPlanner
from .runner import QualityAnalyzer

logger = logging.getLogger(__name__)


def vulnerability_score(vulnerabilities: List[Vulnerability]) -> int:
    count = len(vulnerabilities)
    if count == 0:
        return 100
    if count <= 2:
        return 70
    return 40


class TechnicalDebtService:
    def __init__(
        self,
        config: Config,
        history: Optional[HistoryStore] = None,
        analyzer: Optional[QualityAnalyzer] = None,
        auditor: Optional[DependencyAuditor] = None,
    ) -> None:
        self.config = config
        self.quality = analyzer or QualityAnalyzer(config)
        self.planner = RefactoringPlanner(config, self.quality)
        self.applier = RefactoringApplier(config, self.planner, history=history)
        self.auditor = auditor or DependencyAuditor(config)
        self.updater = DependencyUpdater(config, self.auditor)

    def plan_for(self, opportunity_ids: Iterable[str]) -> RefactoringPlan:
        return self.planner.plan_for(opportunity_ids)

    def dashboard(self) -> Dict[str, object]:
        logger.info("Building technical debt dashboard")
        quality = self.quality.analyze_project(AnalysisOptions(depth="shallow"))
        opportunities = self.planner.from_modules(quality.modules)
        dependencies = self.auditor.analyze_dependencies()

        weights = self.config.dashboard.weights
        vuln_score = vulnerability_score(dependencies.vulnerabilities)
        health = (
            quality.overall_score.overall * weights.get("quality", 0.8)
            + vuln_score * weights.get("dependencies", 0.2)
        )
        return {
            "quality": {
                "overall_score": quality.overall_score.overall,
                "level": quality.overall_score.level.value,
                "critical_issues": quality.summary.critical_issues,
                "high_issues": quality.summary.high_issues,
                "technical_debt_hours": round(quality.summary.technical_debt_minutes / 60, 1),
            },
            "refactoring": self._refactoring_summary(opportunities),
            "dependencies": self._dependency_summary(dependencies, vuln_score),
            "health_score": int(round(health)),
            "top_opportunities": opportunities[: self.config.dashboard.top_opportunities],
        }

    def _refactoring_summary(self, opportunities: List[RefactoringOpportunity]) -> Dict[str, int]:
        def count(priority: RefactoringPriority) -> int:
            return sum(1 for opp in opportunities if opp.priority == priority)

        return {
            "total_opportunities": len(opportunities),
            "critical": count(RefactoringPriority.CRITICAL),
            "high": count(RefactoringPriority.HIGH),
            "medium": count(RefactoringPriority.MEDIUM),
            "low": count(RefactoringPriority.LOW),
            "auto_applicable": sum(1 for opp in opportunities if opp.auto_applicable),
        }

    def _dependency_summary(self, report: DependencyReport, vuln_score: int) -> Dict[str, int]:
        return {
            "total": report.total_dependencies,
            "vulnerabilities": len(report.vulnerabilities),
            "critical_vulnerabilities": report.summary.critical,
            "high_vulnerabilities": report.summary.high,
            "outdated": len(report.outdated),
            "unused": len(report.unused),
            "vulnerability_score": vuln_score,
        }
