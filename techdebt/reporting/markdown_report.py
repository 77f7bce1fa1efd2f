"""Markdown report rendering."""
from __future__ import annotations

from pathlib import Path
from typing import List

from ..models import ProjectQualityReport, QualityMetric


def write_markdown_report(report: ProjectQualityReport, path: Path) -> None:
    md = render_markdown(report)
    path.write_text(md, encoding="utf-8")


def render_markdown(report: ProjectQualityReport) -> str:
    score = report.overall_score
    summary = report.summary
    lines: List[str] = []
    lines.append(f"# Technical Debt Report: {report.project_name}")
    lines.append("")
    lines.append(f"Generated {report.timestamp}")
    lines.append("")
    lines.append("## Project Summary")
    lines.append("")
    lines.append(f"- Overall score: **{score.overall}** ({score.level.value})")
    lines.append(f"- Files: {summary.total_files}, lines: {summary.total_lines}")
    lines.append(
        f"- Issues: {summary.total_issues} "
        f"(critical {summary.critical_issues}, high {summary.high_issues})"
    )
    lines.append(f"- Technical debt: {summary.technical_debt_minutes} minutes")
    lines.append(f"- Duplication: {summary.duplication_percentage:.1f}%")
    lines.append("")
    lines.append("| Metric | Score |")
    lines.append("| --- | --- |")
    for metric in QualityMetric:
        lines.append(f"| {metric.value.replace('_', ' ').title()} | {score.metrics.get(metric, 0)} |")
    lines.append("")
    lines.append("## Modules")
    lines.append("")
    if report.modules:
        lines.append("| Module | Score | Level | Files | Issues | Avg complexity | Duplication |")
        lines.append("| --- | --- | --- | --- | --- | --- | --- |")
        for module in sorted(report.modules, key=lambda m: m.score.overall):
            lines.append(
                f"| `{module.module_name}` | {module.score.overall} | {module.score.level.value} "
                f"| {module.file_count} | {len(module.issues)} | {module.complexity.average:.1f} "
                f"| {module.duplication_percentage:.1f}% |"
            )
    else:
        lines.append("- No modules found")
    lines.append("")
    issues = [issue for module in report.modules for issue in module.issues]
    issues.sort(key=lambda issue: issue.technical_debt, reverse=True)
    lines.append("## Top 10 Issues by Debt")
    lines.append("")
    if issues:
        for issue in issues[:10]:
            location = issue.file_path
            if issue.line_number is not None:
                location = f"{location}:{issue.line_number}"
            elif issue.line_range is not None:
                location = f"{location}:{issue.line_range.start}"
            lines.append(
                f"- `{location}` {issue.title} ({issue.severity.value}, {issue.technical_debt} min)"
            )
    else:
        lines.append("- None detected")
    lines.append("")
    hot_spots = [spot for module in report.modules for spot in module.complexity.high_complexity_functions]
    if hot_spots:
        lines.append("## High Complexity Functions")
        lines.append("")
        for spot in hot_spots:
            lines.append(f"- `{spot}`")
        lines.append("")
    return "\n".join(lines)
