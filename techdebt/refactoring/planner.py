"""Turn quality reports into prioritized refactoring opportunities and plans."""
from __future__ import annotations

import logging
import math
import time
from typing import Iterable, List, Optional

from ..config import Config
from ..models import (
    AnalysisOptions,
    CodeIssue,
    CodePattern,
    DuplicateCode,
    ExpectedImpact,
    IssueSeverity,
    IssueType,
    ModuleQualityReport,
    RefactoringOpportunity,
    RefactoringPlan,
    RefactoringPriority,
    RefactoringType,
    RiskLevel,
    Suggestion,
)
from ..runner import QualityAnalyzer

logger = logging.getLogger(__name__)

ISSUE_BENEFITS = ["Improves code quality", "Reduces technical debt", "Enhances maintainability"]

RULE_TO_REFACTORING = {
    "unused-import": RefactoringType.OPTIMIZE_IMPORTS,
    "magic-number": RefactoringType.REPLACE_MAGIC_NUMBERS,
}

ISSUE_TYPE_TO_REFACTORING = {
    IssueType.COMPLEXITY: RefactoringType.EXTRACT_METHOD,
    IssueType.ERROR_HANDLING: RefactoringType.IMPROVE_ERROR_HANDLING,
    IssueType.TYPE_SAFETY: RefactoringType.ADD_TYPE_ANNOTATIONS,
    IssueType.DUPLICATION: RefactoringType.REMOVE_DUPLICATION,
}

SEVERITY_TO_PRIORITY = {
    IssueSeverity.CRITICAL: RefactoringPriority.CRITICAL,
    IssueSeverity.HIGH: RefactoringPriority.HIGH,
    IssueSeverity.MEDIUM: RefactoringPriority.MEDIUM,
    IssueSeverity.LOW: RefactoringPriority.LOW,
}

LARGE_PLAN_FILES = 20


def refactoring_type_for(issue: CodeIssue) -> RefactoringType:
    if issue.rule in RULE_TO_REFACTORING:
        return RULE_TO_REFACTORING[issue.rule]
    return ISSUE_TYPE_TO_REFACTORING.get(issue.type, RefactoringType.SIMPLIFY_CONDITIONAL)


def priority_for(severity: IssueSeverity) -> RefactoringPriority:
    return SEVERITY_TO_PRIORITY.get(severity, RefactoringPriority.LOW)


class RefactoringPlanner:
    def __init__(self, config: Config, analyzer: QualityAnalyzer) -> None:
        self.config = config
        self.analyzer = analyzer

    def identify_refactoring_opportunities(
        self, module_name: Optional[str] = None, options: Optional[AnalysisOptions] = None
    ) -> List[RefactoringOpportunity]:
        logger.info("Identifying refactoring opportunities")
        if module_name:
            modules = [self.analyzer.analyze_module(module_name, options)]
        else:
            modules = self.analyzer.analyze_project(options).modules
        return self.from_modules(modules)

    def from_modules(self, modules: List[ModuleQualityReport]) -> List[RefactoringOpportunity]:
        opportunities: List[RefactoringOpportunity] = []
        for module in modules:
            opportunities.extend(self._module_opportunities(module))
        for module in modules:
            opportunities.extend(self._pattern_opportunities(module.patterns))
        for module in modules:
            opportunities.extend(self._duplicate_opportunities(module.duplicates))
        # sorted() is stable, so equal priorities keep discovery order
        return sorted(opportunities, key=lambda opp: opp.priority.rank)

    def find(self, opportunity_id: str) -> Optional[RefactoringOpportunity]:
        for opportunity in self.identify_refactoring_opportunities():
            if opportunity.id == opportunity_id:
                return opportunity
        return None

    def plan_for(self, opportunity_ids: Iterable[str]) -> RefactoringPlan:
        wanted = set(opportunity_ids)
        selected = [
            opportunity
            for opportunity in self.identify_refactoring_opportunities()
            if opportunity.id in wanted
        ]
        return self.create_refactoring_plan(selected)

    def create_refactoring_plan(
        self, opportunities: List[RefactoringOpportunity]
    ) -> RefactoringPlan:
        logger.info("Creating refactoring plan")
        selected = [
            opportunity
            for opportunity in opportunities
            if opportunity.priority in (RefactoringPriority.CRITICAL, RefactoringPriority.HIGH)
        ]
        return RefactoringPlan(
            id=f"refactoring-plan-{int(time.time() * 1000)}",
            opportunities=selected,
            priority=selected[0].priority if selected else RefactoringPriority.LOW,
            estimated_total_effort=total_effort(selected),
            expected_impact=expected_impact(selected),
            risks=identify_risks(selected),
        )

    def _module_opportunities(self, module: ModuleQualityReport) -> List[RefactoringOpportunity]:
        opportunities = []
        for issue in module.issues:
            if not issue.auto_fixable:
                continue
            opportunities.append(
                RefactoringOpportunity(
                    id=issue.id,
                    type=refactoring_type_for(issue),
                    priority=priority_for(issue.severity),
                    title=issue.title,
                    description=issue.description,
                    file_path=issue.file_path,
                    line_range=issue.line_range,
                    reason=issue.description,
                    benefits=list(ISSUE_BENEFITS),
                    estimated_effort=issue.estimated_effort,
                    auto_applicable=issue.auto_fixable,
                    risk_level=RiskLevel.LOW,
                    suggestion=Suggestion(before="", after=issue.suggestion)
                    if issue.suggestion
                    else None,
                )
            )

        threshold = self.config.thresholds.high_complexity_module
        if module.complexity.average > threshold:
            opportunities.append(
                RefactoringOpportunity(
                    id=f"{module.module_name}-complexity",
                    type=RefactoringType.EXTRACT_METHOD,
                    priority=RefactoringPriority.HIGH,
                    title=f"High complexity in {module.module_name}",
                    description=(
                        f"Module has average complexity of {module.complexity.average:.1f}"
                    ),
                    file_path=module.module_path,
                    reason="High complexity makes code harder to understand and maintain",
                    benefits=[
                        "Reduces cognitive complexity",
                        "Improves testability",
                        "Easier to maintain",
                    ],
                    estimated_effort="2-4 hours",
                    auto_applicable=False,
                    risk_level=RiskLevel.MEDIUM,
                )
            )
        return opportunities

    def _pattern_opportunities(self, patterns: List[CodePattern]) -> List[RefactoringOpportunity]:
        return [
            RefactoringOpportunity(
                id=pattern.id,
                type=pattern.refactoring_type or RefactoringType.EXTRACT_METHOD,
                priority=RefactoringPriority.MEDIUM,
                title=f"Refactor repeated pattern: {pattern.name}",
                description=pattern.description,
                file_path=pattern.locations[0].file_path,
                line_range=pattern.locations[0].line_range,
                reason=f"Pattern occurs {pattern.occurrences} times",
                benefits=[
                    "Reduces code duplication",
                    "Improves maintainability",
                    "Single source of truth",
                ],
                estimated_effort="1-2 hours",
                auto_applicable=False,
                affected_files=list(dict.fromkeys(loc.file_path for loc in pattern.locations)),
                risk_level=RiskLevel.MEDIUM,
            )
            for pattern in patterns
            if pattern.should_refactor and pattern.locations
        ]

    def _duplicate_opportunities(
        self, duplicates: List[DuplicateCode]
    ) -> List[RefactoringOpportunity]:
        return [
            RefactoringOpportunity(
                id=duplicate.id,
                type=RefactoringType.REMOVE_DUPLICATION,
                priority=RefactoringPriority.HIGH
                if duplicate.severity == "high"
                else RefactoringPriority.MEDIUM,
                title=f"Remove duplicate code ({duplicate.line_count} lines)",
                description=f"Code duplicated {len(duplicate.occurrences)} times",
                file_path=duplicate.occurrences[0].file_path,
                reason="Duplicate code increases maintenance burden",
                benefits=[
                    "Reduces codebase size",
                    "Easier to maintain",
                    "Reduces bug propagation",
                ],
                estimated_effort="30 minutes - 1 hour",
                auto_applicable=True,
                affected_files=[occurrence.file_path for occurrence in duplicate.occurrences],
                risk_level=RiskLevel.LOW,
            )
            for duplicate in duplicates
            if duplicate.occurrences
        ]


def total_effort(opportunities: List[RefactoringOpportunity]) -> str:
    hours = len(opportunities) * 2
    if hours > 8:
        return f"{math.ceil(hours / 8)} days"
    return f"{hours} hours"


def expected_impact(opportunities: List[RefactoringOpportunity]) -> ExpectedImpact:
    count = len(opportunities)
    return ExpectedImpact(
        quality_score_improvement=min(count * 2, 20),
        complexity_reduction=min(count * 1.5, 15),
        maintainability_improvement=min(count * 3, 25),
    )


def identify_risks(opportunities: List[RefactoringOpportunity]) -> List[str]:
    risks: List[str] = []
    high_risk = sum(1 for opp in opportunities if opp.risk_level == RiskLevel.HIGH)
    files = {path for opp in opportunities for path in (opp.affected_files or [opp.file_path])}
    if high_risk:
        risks.append(f"{high_risk} high-risk refactorings")
    if len(files) > LARGE_PLAN_FILES:
        risks.append("Large number of files affected")
    if any(not opp.auto_applicable for opp in opportunities):
        risks.append("Manual intervention required for some refactorings")
    if not risks:
        risks.append("Low risk - mostly automated refactorings")
    return risks
