"""Quality scoring.

Every function here is pure: metric scores are derived from counts gathered by
the analyzers, clamped to ``[0, 100]`` and combined with the configured
weights.
"""
from __future__ import annotations

from statistics import mean
from typing import Dict, Iterable, List, Mapping

from .models import (
    CodeIssue,
    CodeQualityScore,
    IssueSeverity,
    IssueType,
    QualityLevel,
    QualityMetric,
)

LEVEL_THRESHOLDS = [
    (90, QualityLevel.EXCELLENT),
    (75, QualityLevel.GOOD),
    (60, QualityLevel.FAIR),
    (40, QualityLevel.POOR),
]


def clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def complexity_score(average_complexity: float) -> float:
    return clamp(100 - average_complexity * 2)


def maintainability_score(issues: Iterable[CodeIssue]) -> float:
    counts = _severity_counts(issues)
    return clamp(
        100
        - counts[IssueSeverity.CRITICAL] * 20
        - counts[IssueSeverity.HIGH] * 10
        - counts[IssueSeverity.MEDIUM] * 5
    )


def duplication_score(percentage: float) -> float:
    return clamp(100 - percentage * 2)


def error_handling_score(issues: Iterable[CodeIssue]) -> float:
    count = sum(1 for issue in issues if issue.type == IssueType.ERROR_HANDLING)
    return clamp(100 - count * 10)


def type_safety_score(issues: Iterable[CodeIssue]) -> float:
    count = sum(1 for issue in issues if issue.type == IssueType.TYPE_SAFETY)
    return clamp(100 - count * 15)


def documentation_score(documented: int, total: int) -> float:
    if total == 0:
        return 100.0
    return clamp(documented / total * 100)


def coverage_proxy_score(tested: int, total: int) -> float:
    if total == 0:
        return 0.0
    return clamp(tested / total * 100)


def level_for(score: float) -> QualityLevel:
    for threshold, level in LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return QualityLevel.CRITICAL


def build_score(metrics: Mapping[QualityMetric, float], weights: Mapping[str, float]) -> CodeQualityScore:
    rounded = {metric: int(round(clamp(metrics.get(metric, 0.0)))) for metric in QualityMetric}
    overall = sum(metrics.get(metric, 0.0) * weights.get(metric.value, 0.0) for metric in QualityMetric)
    overall_int = int(round(clamp(overall)))
    return CodeQualityScore(overall=overall_int, metrics=rounded, level=level_for(overall_int))


def zero_score() -> CodeQualityScore:
    return CodeQualityScore(
        overall=0,
        metrics={metric: 0 for metric in QualityMetric},
        level=QualityLevel.CRITICAL,
    )


def average_scores(scores: List[CodeQualityScore]) -> CodeQualityScore:
    """Average module scores into a project score, metric by metric."""
    if not scores:
        return zero_score()
    overall = int(round(mean(score.overall for score in scores)))
    metrics: Dict[QualityMetric, int] = {
        metric: int(round(mean(score.metrics.get(metric, 0) for score in scores)))
        for metric in QualityMetric
    }
    return CodeQualityScore(overall=overall, metrics=metrics, level=level_for(overall))


def _severity_counts(issues: Iterable[CodeIssue]) -> Dict[IssueSeverity, int]:
    counts = {severity: 0 for severity in IssueSeverity}
    for issue in issues:
        counts[issue.severity] += 1
    return counts
