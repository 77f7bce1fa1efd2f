"""Data models used within techdebt."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class QualityMetric(str, Enum):
    COMPLEXITY = "complexity"
    MAINTAINABILITY = "maintainability"
    DUPLICATION = "duplication"
    TEST_COVERAGE = "test_coverage"
    DOCUMENTATION = "documentation"
    ERROR_HANDLING = "error_handling"
    TYPE_SAFETY = "type_safety"


class QualityLevel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"


class IssueType(str, Enum):
    COMPLEXITY = "complexity"
    DUPLICATION = "duplication"
    ERROR_HANDLING = "error_handling"
    PERFORMANCE = "performance"
    SECURITY = "security"
    MAINTAINABILITY = "maintainability"
    TYPE_SAFETY = "type_safety"


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class RefactoringType(str, Enum):
    EXTRACT_METHOD = "extract_method"
    EXTRACT_CLASS = "extract_class"
    REMOVE_DUPLICATION = "remove_duplication"
    SIMPLIFY_CONDITIONAL = "simplify_conditional"
    IMPROVE_ERROR_HANDLING = "improve_error_handling"
    ADD_TYPE_ANNOTATIONS = "add_type_annotations"
    OPTIMIZE_IMPORTS = "optimize_imports"
    CONSOLIDATE_CONDITIONAL = "consolidate_conditional"
    REPLACE_MAGIC_NUMBERS = "replace_magic_numbers"


class RefactoringPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    RefactoringPriority.CRITICAL: 0,
    RefactoringPriority.HIGH: 1,
    RefactoringPriority.MEDIUM: 2,
    RefactoringPriority.LOW: 3,
}


class RefactoringStatus(str, Enum):
    SUGGESTED = "suggested"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DependencyType(str, Enum):
    DIRECT = "direct"
    DEV = "dev"
    PEER = "peer"


class DependencyStatus(str, Enum):
    UP_TO_DATE = "up_to_date"
    MINOR_UPDATE = "minor_update"
    MAJOR_UPDATE = "major_update"


class VulnerabilitySeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    INFO = "info"


class UpdateType(str, Enum):
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"


class UpdateStrategy(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"
    MANUAL = "manual"


# --- code quality -----------------------------------------------------------


@dataclass(frozen=True)
class LineRange:
    start: int
    end: int


@dataclass(frozen=True)
class CodeIssue:
    id: str
    type: IssueType
    severity: IssueSeverity
    title: str
    description: str
    file_path: str
    rule: str
    auto_fixable: bool
    estimated_effort: str
    technical_debt: int
    line_number: Optional[int] = None
    line_range: Optional[LineRange] = None
    suggestion: Optional[str] = None


@dataclass
class CodeQualityScore:
    overall: int
    metrics: Dict[QualityMetric, int]
    level: QualityLevel
    timestamp: str = field(default_factory=utc_now)


@dataclass
class ComplexityStats:
    average: float
    max: int
    high_complexity_functions: List[str] = field(default_factory=list)


@dataclass
class Occurrence:
    file_path: str
    line_range: LineRange
    snippet: str = ""


@dataclass
class DuplicateCode:
    id: str
    hash: str
    line_count: int
    occurrences: List[Occurrence]
    severity: str
    suggested_action: str


@dataclass
class CodePattern:
    id: str
    name: str
    description: str
    occurrences: int
    locations: List[Occurrence]
    should_refactor: bool
    refactoring_type: Optional[RefactoringType] = None


@dataclass
class AnalysisOptions:
    include_tests: bool = False
    include_docs: bool = False
    exclude_patterns: Optional[List[str]] = None
    depth: Optional[str] = None
    modules: Optional[List[str]] = None


@dataclass
class ModuleQualityReport:
    module_name: str
    module_path: str
    score: CodeQualityScore
    issues: List[CodeIssue]
    file_count: int
    line_count: int
    complexity: ComplexityStats
    duplication_percentage: float
    duplicates: List[DuplicateCode] = field(default_factory=list)
    patterns: List[CodePattern] = field(default_factory=list)
    function_count: int = 0
    undocumented: List[str] = field(default_factory=list)
    unannotated_parameters: int = 0


@dataclass
class ProjectSummary:
    total_files: int
    total_lines: int
    total_issues: int
    critical_issues: int
    high_issues: int
    technical_debt_minutes: int
    duplication_percentage: float


@dataclass
class ProjectQualityReport:
    project_name: str
    timestamp: str
    overall_score: CodeQualityScore
    modules: List[ModuleQualityReport]
    summary: ProjectSummary


@dataclass
class QualityMetrics:
    timestamp: str
    complexity: Dict[str, float]
    maintainability: Dict[str, float]
    documentation: Dict[str, object]
    error_handling: Dict[str, object]
    type_safety: Dict[str, float]


# --- refactoring ------------------------------------------------------------


@dataclass
class Suggestion:
    before: str
    after: str


@dataclass
class RefactoringOpportunity:
    id: str
    type: RefactoringType
    priority: RefactoringPriority
    title: str
    description: str
    file_path: str
    reason: str
    benefits: List[str]
    estimated_effort: str
    auto_applicable: bool
    risk_level: RiskLevel
    line_range: Optional[LineRange] = None
    affected_files: Optional[List[str]] = None
    suggestion: Optional[Suggestion] = None


@dataclass
class ExpectedImpact:
    quality_score_improvement: float
    complexity_reduction: float
    maintainability_improvement: float


@dataclass
class RefactoringPlan:
    id: str
    opportunities: List[RefactoringOpportunity]
    priority: RefactoringPriority
    estimated_total_effort: str
    expected_impact: ExpectedImpact
    risks: List[str]
    created_at: str = field(default_factory=utc_now)


@dataclass
class ApplyRefactoringRequest:
    opportunity_id: str
    auto_confirm: bool = False
    create_backup: bool = False
    run_tests: bool = False


@dataclass
class RefactoringResult:
    opportunity_id: str
    status: RefactoringStatus = RefactoringStatus.SUGGESTED
    applied_at: Optional[str] = None
    files_modified: List[str] = field(default_factory=list)
    lines_changed: int = 0
    rollback_available: bool = False
    error: Optional[str] = None
    unsafe: bool = False


@dataclass
class RefactoringStats:
    total: int
    completed: int
    failed: int
    rejected: int
    total_files_modified: int
    total_lines_changed: int


# --- dependencies -----------------------------------------------------------


@dataclass
class Dependency:
    name: str
    current_version: str
    latest_version: str
    type: DependencyType
    status: DependencyStatus


@dataclass
class Vulnerability:
    id: str
    severity: VulnerabilitySeverity
    title: str
    description: str
    affected_package: str
    affected_versions: str
    patched_version: Optional[str] = None
    references: List[str] = field(default_factory=list)
    cve: Optional[str] = None


@dataclass
class UpdateRecommendation:
    package: str
    from_version: str
    to_version: str
    type: UpdateType
    priority: str
    reason: str
    breaking_changes: bool
    auto_patchable: bool


@dataclass
class DependencySummary:
    up_to_date: int
    minor_updates: int
    major_updates: int
    critical: int
    high: int
    moderate: int
    low: int


@dataclass
class DependencyReport:
    timestamp: str
    total_dependencies: int
    dependencies: List[Dependency]
    vulnerabilities: List[Vulnerability]
    outdated: List[Dependency]
    unused: List[str]
    summary: DependencySummary
    update_recommendations: List[UpdateRecommendation]


@dataclass
class DependencyUpdate:
    package: str
    from_version: str
    to_version: str
    success: bool
    error: Optional[str] = None
    timestamp: str = field(default_factory=utc_now)


@dataclass
class UpdateOptions:
    strategy: UpdateStrategy = UpdateStrategy.MODERATE
    include_dev_dependencies: bool = True
    auto_merge: bool = False
    run_tests: bool = True
    create_backup: bool = True
    packages: Optional[List[str]] = None


@dataclass
class LicenseInfo:
    name: str
    type: str
    compatible: bool
    risk: RiskLevel
    packages: List[str]


@dataclass
class DependencyAnalysis:
    size_analysis: Dict[str, object]
    unused_dependencies: List[str]
    duplicate_dependencies: List[Dict[str, object]]
    license_issues: List[LicenseInfo]
    peer_dependency_issues: List[Dict[str, str]]
