"""Quality analysis orchestration: scan modules, score them, roll up the project."""
from __future__ import annotations

import logging
from pathlib import Path
from statistics import mean
from typing import Dict, List, Optional, Sequence

from .analyzers.complexity import file_complexity, high_complexity_functions, summarize
from .analyzers.detectors import Detector, TodoDetector, default_detectors
from .analyzers.duplication import DuplicationAnalyzer, DuplicationResult
from .config import Config
from .models import (
    AnalysisOptions,
    CodeIssue,
    ComplexityStats,
    IssueSeverity,
    IssueType,
    ModuleQualityReport,
    ProjectQualityReport,
    ProjectSummary,
    QualityMetric,
    QualityMetrics,
    utc_now,
)
from .scoring import (
    average_scores,
    build_score,
    complexity_score,
    coverage_proxy_score,
    documentation_score,
    duplication_score,
    error_handling_score,
    maintainability_score,
    type_safety_score,
    zero_score,
)
from .utils import fs
from .utils.ast_tools import count_unannotated_parameters, iter_functions, safe_parse, undocumented_definitions

logger = logging.getLogger(__name__)

DEPTHS = ("shallow", "normal", "deep")


class QualityAnalyzer:
    def __init__(self, config: Config, detectors: Optional[Sequence[Detector]] = None) -> None:
        self.config = config
        self.detectors = list(detectors) if detectors is not None else default_detectors(config)
        self.duplication = DuplicationAnalyzer(
            high_lines=config.thresholds.duplicate_high_lines,
            pattern_min_lines=config.thresholds.pattern_min_lines,
        )

    @property
    def root(self) -> Path:
        return self.config.project.root_path

    def list_modules(self, options: Optional[AnalysisOptions] = None) -> List[str]:
        options = options or AnalysisOptions()
        if options.modules:
            return list(options.modules)
        return fs.list_subdirectories(self.config.project.modules_path, self._excludes(options))

    def analyze_module(
        self, module_name: str, options: Optional[AnalysisOptions] = None
    ) -> ModuleQualityReport:
        options = options or AnalysisOptions()
        depth = self._depth(options)
        module_path = self.config.project.modules_path / module_name
        logger.info("Analyzing module %s", module_name)
        if not module_path.is_dir():
            logger.warning("Module %s not found at %s", module_name, module_path)
            return self._empty_report(module_name, module_path)

        excludes = self._excludes(options)
        patterns = self.config.scan.test_patterns
        sources: Dict[str, str] = {}
        test_files: List[Path] = []
        line_count = 0
        for path in fs.iter_files(module_path, excludes, self.config.scan.extensions):
            if fs.is_test_file(path, patterns):
                test_files.append(path)
                if not options.include_tests:
                    continue
            loaded = fs.try_read_text(path)
            if loaded is None:
                continue
            text, loc = loaded
            sources[fs.relative_posix(path, self.root)] = text
            line_count += loc

        issues: List[CodeIssue] = []
        per_file_complexity: Dict[str, int] = {}
        hot_spots: List[str] = []
        function_count = 0
        documented = 0
        definitions = 0
        undocumented: List[str] = []
        unannotated = 0
        for rel, text in sources.items():
            for detector in self.detectors:
                issues.extend(detector.detect(rel, text))
            per_file_complexity[rel] = file_complexity(rel, text)
            hot_spots.extend(
                high_complexity_functions(rel, text, self.config.thresholds.high_complexity_function)
            )
            if not fs.is_python(rel):
                continue
            tree, success = safe_parse(text)
            if not success or tree is None:
                logger.debug("Skipping AST metrics for %s: parse failed", rel)
                continue
            function_count += sum(1 for _ in iter_functions(tree))
            missing, total = undocumented_definitions(tree)
            definitions += total
            documented += total - len(missing)
            undocumented.extend(f"{rel}:{line} {name}" for name, line in missing)
            unannotated += count_unannotated_parameters(tree)

        file_count = len(sources)
        if options.include_docs:
            doc_files, doc_lines, doc_issues = self._scan_docs(module_path, excludes)
            file_count += doc_files
            line_count += doc_lines
            issues.extend(doc_issues)

        duplication = DuplicationResult()
        patterns_found = []
        if depth != "shallow":
            duplication = self.duplication.analyze(sources)
        if depth == "deep":
            patterns_found = self.duplication.patterns(sources)

        complexity = summarize(per_file_complexity, hot_spots)
        source_files = [
            Path(rel) for rel in sources if not fs.is_test_file(Path(rel), patterns)
        ]
        tested = self._tested_count(source_files, test_files)
        metrics = {
            QualityMetric.COMPLEXITY: complexity_score(complexity.average),
            QualityMetric.MAINTAINABILITY: maintainability_score(issues),
            QualityMetric.DUPLICATION: duplication_score(duplication.percentage),
            QualityMetric.TEST_COVERAGE: coverage_proxy_score(tested, len(source_files)),
            QualityMetric.DOCUMENTATION: documentation_score(documented, definitions),
            QualityMetric.ERROR_HANDLING: error_handling_score(issues),
            QualityMetric.TYPE_SAFETY: type_safety_score(issues),
        }
        score = build_score(metrics, self.config.weights)
        logger.info(
            "Module %s: %d files, %d issues, score %d (%s)",
            module_name,
            file_count,
            len(issues),
            score.overall,
            score.level.value,
        )
        return ModuleQualityReport(
            module_name=module_name,
            module_path=fs.relative_posix(module_path, self.root),
            score=score,
            issues=issues,
            file_count=file_count,
            line_count=line_count,
            complexity=complexity,
            duplication_percentage=duplication.percentage,
            duplicates=duplication.duplicates,
            patterns=patterns_found,
            function_count=function_count,
            undocumented=undocumented,
            unannotated_parameters=unannotated,
        )

    def analyze_project(self, options: Optional[AnalysisOptions] = None) -> ProjectQualityReport:
        options = options or AnalysisOptions()
        self._depth(options)
        modules = [self.analyze_module(name, options) for name in self.list_modules(options)]
        all_issues = [issue for module in modules for issue in module.issues]
        summary = ProjectSummary(
            total_files=sum(module.file_count for module in modules),
            total_lines=sum(module.line_count for module in modules),
            total_issues=len(all_issues),
            critical_issues=sum(1 for i in all_issues if i.severity == IssueSeverity.CRITICAL),
            high_issues=sum(1 for i in all_issues if i.severity == IssueSeverity.HIGH),
            technical_debt_minutes=sum(issue.technical_debt for issue in all_issues),
            duplication_percentage=(
                mean(module.duplication_percentage for module in modules) if modules else 0.0
            ),
        )
        return ProjectQualityReport(
            project_name=self.config.project.name,
            timestamp=utc_now(),
            overall_score=average_scores([module.score for module in modules]),
            modules=modules,
            summary=summary,
        )

    def get_metrics(self) -> QualityMetrics:
        report = self.analyze_project()
        modules = report.modules
        averages = [module.complexity.average for module in modules]
        cyclomatic = mean(averages) if averages else 0.0
        total_complexity = sum(m.complexity.average * m.file_count for m in modules)
        functions = sum(module.function_count for module in modules)
        files = max(report.summary.total_files, 1)
        all_issues = [issue for module in modules for issue in module.issues]
        metrics = report.overall_score.metrics
        return QualityMetrics(
            timestamp=report.timestamp,
            complexity={
                "cyclomatic": cyclomatic,
                "cognitive": cyclomatic * 1.2,
                "average_per_function": total_complexity / functions if functions else 0.0,
            },
            maintainability={
                "index": float(report.overall_score.overall),
                "lines_per_file": report.summary.total_lines / files,
                "functions_per_file": functions / files,
            },
            documentation={
                "percentage": metrics[QualityMetric.DOCUMENTATION],
                "missing_docs": [entry for module in modules for entry in module.undocumented],
            },
            error_handling={
                "score": metrics[QualityMetric.ERROR_HANDLING],
                "uncaught_exceptions": sum(1 for i in all_issues if i.type == IssueType.ERROR_HANDLING),
                "missing_try_catch": sorted(
                    {i.file_path for i in all_issues if i.type == IssueType.ERROR_HANDLING}
                ),
            },
            type_safety={
                "score": float(metrics[QualityMetric.TYPE_SAFETY]),
                "any_usage": float(sum(1 for i in all_issues if i.type == IssueType.TYPE_SAFETY)),
                "implicit_any": float(sum(module.unannotated_parameters for module in modules)),
            },
        )

    def _depth(self, options: AnalysisOptions) -> str:
        depth = options.depth or self.config.scan.depth
        if depth not in DEPTHS:
            raise ValueError(f"unknown scan depth {depth!r}; expected one of {', '.join(DEPTHS)}")
        return depth

    def _excludes(self, options: AnalysisOptions) -> List[str]:
        if options.exclude_patterns is not None:
            return list(options.exclude_patterns)
        return list(self.config.scan.exclude)

    def _scan_docs(self, module_path: Path, excludes: List[str]) -> tuple[int, int, List[CodeIssue]]:
        todo = TodoDetector()
        files = 0
        lines = 0
        issues: List[CodeIssue] = []
        for path in fs.iter_files(module_path, excludes, self.config.scan.doc_extensions):
            loaded = fs.try_read_text(path)
            if loaded is None:
                continue
            text, loc = loaded
            files += 1
            lines += loc
            issues.extend(todo.detect(fs.relative_posix(path, self.root), text))
        return files, lines, issues

    def _tested_count(self, source_files: List[Path], module_tests: List[Path]) -> int:
        stems = {fs.tested_stem(path) for path in module_tests}
        tests_dir = self.root / self.config.project.tests_dir
        if tests_dir.is_dir():
            for path in fs.iter_files(tests_dir, self.config.scan.exclude, self.config.scan.extensions):
                if fs.is_test_file(path, self.config.scan.test_patterns):
                    stems.add(fs.tested_stem(path))
        return sum(1 for path in source_files if fs.source_stem(path) in stems)

    def _empty_report(self, module_name: str, module_path: Path) -> ModuleQualityReport:
        return ModuleQualityReport(
            module_name=module_name,
            module_path=fs.relative_posix(module_path, self.root),
            score=zero_score(),
            issues=[],
            file_count=0,
            line_count=0,
            complexity=ComplexityStats(average=0.0, max=0),
            duplication_percentage=0.0,
        )
