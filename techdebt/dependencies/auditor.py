"""Dependency auditing through the Python packaging tools.

Every check shells out to one tool and interprets its output. A check that
fails (tool missing, timeout, unexpected exit code, malformed output) is
logged and contributes an empty result, so one broken tool never hides the
others.
"""
from __future__ import annotations

import json
import logging
import re
import tempfile
from importlib import metadata
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

from packaging.utils import canonicalize_name

from ..config import Config
from ..errors import ManifestError, ToolError
from ..models import (
    Dependency,
    DependencyAnalysis,
    DependencyReport,
    DependencyStatus,
    DependencySummary,
    DependencyType,
    LicenseInfo,
    RiskLevel,
    UpdateRecommendation,
    UpdateStrategy,
    UpdateType,
    Vulnerability,
    VulnerabilitySeverity,
    utc_now,
)
from ..utils.process import build_command, run_json_tool, run_tool
from .manifest import ManifestEntry, read_manifest

logger = logging.getLogger(__name__)

VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")
OSV_URL = "https://osv.dev/vulnerability/{id}"

INCOMPATIBLE_LICENSES = {
    "GPL-2.0",
    "GPL-3.0",
    "GPLV2",
    "GPLV3",
    "AGPL-3.0",
    "SSPL-1.0",
    "GNU GENERAL PUBLIC LICENSE",
}
WARNING_LICENSES = {"LGPL-2.1", "LGPL-3.0", "LESSER GENERAL PUBLIC", "MPL-2.0"}
UNKNOWN_LICENSES = {"", "UNKNOWN", "LICENSE", "OTHER/PROPRIETARY LICENSE"}

PEER_CONFLICT_RE = re.compile(
    r"^(?P<package>\S+) \S+ has requirement (?P<required>.+?), but you have (?P<installed>.+?)\.?$"
)
PEER_MISSING_RE = re.compile(r"^(?P<package>\S+) \S+ requires (?P<required>\S+), which is not installed\.?$")

LARGEST_DEPENDENCIES = 10
MEGABYTE = 1024 * 1024

DistributionLookup = Callable[[str], metadata.Distribution]


def parse_version(version: str) -> Optional[List[int]]:
    match = VERSION_RE.search(version or "")
    if not match:
        return None
    return [int(part) for part in match.groups()]


def determine_update_type(current: str, latest: str) -> DependencyStatus:
    current_parts = parse_version(current)
    latest_parts = parse_version(latest)
    if current_parts is None or latest_parts is None or current_parts == latest_parts:
        return DependencyStatus.UP_TO_DATE
    if current_parts[0] != latest_parts[0]:
        return DependencyStatus.MAJOR_UPDATE
    if current_parts[1] != latest_parts[1]:
        return DependencyStatus.MINOR_UPDATE
    return DependencyStatus.MINOR_UPDATE


def map_severity(value: Optional[str], default: str) -> VulnerabilitySeverity:
    candidate = (value or default or "").lower()
    if candidate == "medium":
        candidate = "moderate"
    try:
        return VulnerabilitySeverity(candidate)
    except ValueError:
        return VulnerabilitySeverity.LOW


def generate_update_recommendations(
    outdated: Iterable[Dependency], vulnerabilities: Iterable[Vulnerability]
) -> List[UpdateRecommendation]:
    recommendations: List[UpdateRecommendation] = []
    for vuln in vulnerabilities:
        if vuln.severity not in (VulnerabilitySeverity.CRITICAL, VulnerabilitySeverity.HIGH):
            continue
        recommendations.append(
            UpdateRecommendation(
                package=vuln.affected_package,
                from_version=vuln.affected_versions,
                to_version=vuln.patched_version or "latest",
                type=UpdateType.PATCH,
                priority="critical",
                reason=f"Security vulnerability: {vuln.title}",
                breaking_changes=False,
                auto_patchable=True,
            )
        )
    for dep in outdated:
        major = dep.status == DependencyStatus.MAJOR_UPDATE
        recommendations.append(
            UpdateRecommendation(
                package=dep.name,
                from_version=dep.current_version,
                to_version=dep.latest_version,
                type=UpdateType.MAJOR if major else UpdateType.MINOR,
                priority="medium" if major else "low",
                reason="Package update available",
                breaking_changes=major,
                auto_patchable=not major,
            )
        )
    return recommendations


def filter_by_strategy(
    recommendations: Iterable[UpdateRecommendation], strategy: UpdateStrategy
) -> List[UpdateRecommendation]:
    recommendations = list(recommendations)
    if strategy == UpdateStrategy.CONSERVATIVE:
        return [r for r in recommendations if r.type == UpdateType.PATCH or r.priority == "critical"]
    if strategy == UpdateStrategy.MODERATE:
        return [r for r in recommendations if r.type != UpdateType.MAJOR]
    if strategy == UpdateStrategy.AGGRESSIVE:
        return recommendations
    return []


class DependencyAuditor:
    def __init__(self, config: Config, distribution: Optional[DistributionLookup] = None) -> None:
        self.config = config
        self.distribution = distribution or metadata.distribution

    @property
    def root(self) -> Path:
        return self.config.project.root_path

    @property
    def manifest_path(self) -> Path:
        return self.root / self.config.dependencies.manifest

    def manifest_entries(self, include_dev: bool = True) -> List[ManifestEntry]:
        entries = read_manifest(self.manifest_path, DependencyType.DIRECT)
        dev_manifest = self.config.dependencies.dev_manifest
        if include_dev and dev_manifest:
            entries.extend(read_manifest(self.root / dev_manifest, DependencyType.DEV))
        return entries

    def analyze_dependencies(self) -> DependencyReport:
        logger.info("Starting dependency analysis")
        try:
            entries = self.manifest_entries()
        except ManifestError as exc:
            logger.error("Failed to read manifest: %s", exc)
            entries = []
        vulnerabilities = self.check_vulnerabilities()
        outdated = self.check_outdated_packages(entries)
        unused = self.find_unused_dependencies()

        latest = {canonicalize_name(dep.name): dep for dep in outdated}
        dependencies = []
        for entry in entries:
            newer = latest.get(entry.key)
            dependencies.append(
                Dependency(
                    name=entry.name,
                    current_version=entry.version,
                    latest_version=newer.latest_version if newer else entry.version,
                    type=entry.type,
                    status=newer.status if newer else DependencyStatus.UP_TO_DATE,
                )
            )
        return DependencyReport(
            timestamp=utc_now(),
            total_dependencies=len(dependencies),
            dependencies=dependencies,
            vulnerabilities=vulnerabilities,
            outdated=outdated,
            unused=unused,
            summary=self._summary(dependencies, vulnerabilities, outdated),
            update_recommendations=generate_update_recommendations(outdated, vulnerabilities),
        )

    def check_vulnerabilities(self) -> List[Vulnerability]:
        logger.info("Checking for security vulnerabilities")
        cmd = build_command(self.config.tools.audit_cmd, manifest=self.manifest_path, root=self.root)
        try:
            payload = run_json_tool(
                "pip-audit",
                cmd,
                cwd=self.root,
                timeout=self.config.tools.timeouts.get("audit"),
                ok_codes=(0, 1),
                default=[],
            )
        except ToolError as exc:
            logger.warning("pip-audit failed, returning empty vulnerabilities: %s", exc)
            return []

        items = _as_list(payload.get("dependencies") if isinstance(payload, dict) else payload)
        default = self.config.dependencies.default_vulnerability_severity
        vulnerabilities = []
        for item in items:
            if not isinstance(item, dict):
                continue
            package = str(item.get("name", "unknown"))
            for vuln in _as_list(item.get("vulns")):
                if not isinstance(vuln, dict):
                    continue
                vuln_id = str(vuln.get("id", "UNKNOWN"))
                aliases = [str(alias) for alias in _as_list(vuln.get("aliases"))]
                fixes = _as_list(vuln.get("fix_versions"))
                vulnerabilities.append(
                    Vulnerability(
                        id=vuln_id,
                        cve=next((alias for alias in aliases if alias.startswith("CVE-")), None),
                        severity=map_severity(vuln.get("severity"), default),
                        title=f"{vuln_id} in {package}",
                        description=vuln.get("description") or "Security vulnerability detected",
                        affected_package=package,
                        affected_versions=str(item.get("version", "unknown")),
                        patched_version=str(fixes[0]) if fixes else None,
                        references=[OSV_URL.format(id=vuln_id)],
                    )
                )
        logger.info("Found %d vulnerabilities", len(vulnerabilities))
        return vulnerabilities

    def check_outdated_packages(self, entries: Optional[List[ManifestEntry]] = None) -> List[Dependency]:
        logger.info("Checking for outdated packages")
        if entries is None:
            try:
                entries = self.manifest_entries()
            except ManifestError as exc:
                logger.error("Failed to read manifest: %s", exc)
                entries = []
        cmd = build_command(self.config.tools.outdated_cmd, root=self.root)
        try:
            payload = run_json_tool(
                "pip list --outdated",
                cmd,
                cwd=self.root,
                timeout=self.config.tools.timeouts.get("outdated"),
                default=[],
            )
        except ToolError as exc:
            logger.warning("Outdated check failed: %s", exc)
            return []

        types = {entry.key: entry.type for entry in entries}
        outdated = []
        for item in _as_list(payload):
            if not isinstance(item, dict):
                continue
            name = str(item.get("name", ""))
            key = canonicalize_name(name) if name else ""
            if types and key not in types:
                continue
            current = str(item.get("version", ""))
            latest = str(item.get("latest_version", ""))
            outdated.append(
                Dependency(
                    name=name,
                    current_version=current,
                    latest_version=latest,
                    type=types.get(key, DependencyType.DIRECT),
                    status=determine_update_type(current, latest),
                )
            )
        return outdated

    def find_unused_dependencies(self) -> List[str]:
        logger.info("Searching for unused dependencies")
        with tempfile.TemporaryDirectory() as tmp:
            output = Path(tmp) / "deptry.json"
            cmd = build_command(self.config.tools.unused_cmd, root=self.root, output=output)
            try:
                run_tool(
                    "deptry",
                    cmd,
                    cwd=self.root,
                    timeout=self.config.tools.timeouts.get("unused"),
                    ok_codes=(0, 1),
                )
                payload = _load_json(output)
            except ToolError as exc:
                logger.warning("Could not check for unused dependencies: %s", exc)
                return []
        unused = []
        for violation in _as_list(payload):
            if not isinstance(violation, dict):
                continue
            error = violation.get("error")
            code = error.get("code") if isinstance(error, dict) else None
            module = violation.get("module")
            if code == "DEP002" and module and module not in unused:
                unused.append(str(module))
        return unused

    def find_duplicate_dependencies(self) -> List[Dict[str, object]]:
        cmd = build_command(self.config.tools.tree_cmd, root=self.root)
        try:
            tree = run_json_tool(
                "pipdeptree",
                cmd,
                cwd=self.root,
                timeout=self.config.tools.timeouts.get("tree"),
                default=[],
            )
        except ToolError as exc:
            logger.warning("Could not check for duplicate dependencies: %s", exc)
            return []
        specs: Dict[str, Set[str]] = {}
        _collect_requirements(_as_list(tree), specs)
        return [
            {"name": name, "versions": sorted(versions)}
            for name, versions in sorted(specs.items())
            if len(versions) > 1
        ]

    def analyze_dependency_sizes(self, entries: Optional[List[ManifestEntry]] = None) -> Dict[str, object]:
        entries = self.manifest_entries() if entries is None else entries
        sizes: Dict[str, int] = {}
        for entry in entries:
            dist = self._distribution(entry.name)
            if dist is None:
                continue
            total = 0
            for file in dist.files or []:
                try:
                    total += Path(file.locate()).stat().st_size
                except OSError:
                    continue
            sizes[entry.name] = total
        largest = sorted(sizes.items(), key=lambda item: item[1], reverse=True)
        return {
            "total_size_mb": round(sum(sizes.values()) / MEGABYTE, 2),
            "largest_dependencies": [
                {"name": name, "size_mb": round(size / MEGABYTE, 2)}
                for name, size in largest[:LARGEST_DEPENDENCIES]
            ],
        }

    def analyze_licenses(self, entries: Optional[List[ManifestEntry]] = None) -> List[LicenseInfo]:
        entries = self.manifest_entries() if entries is None else entries
        grouped: Dict[str, LicenseInfo] = {}
        for entry in entries:
            dist = self._distribution(entry.name)
            if dist is None:
                continue
            license_name = _license_of(dist)
            info = _classify_license(license_name)
            if info is None:
                continue
            existing = grouped.setdefault(info.name, info)
            existing.packages.append(entry.name)
        return list(grouped.values())

    def check_peer_dependencies(self) -> List[Dict[str, str]]:
        cmd = build_command(self.config.tools.check_cmd, root=self.root)
        try:
            result = run_tool(
                "pip check",
                cmd,
                cwd=self.root,
                timeout=self.config.tools.timeouts.get("check"),
                ok_codes=(0, 1),
            )
        except ToolError as exc:
            logger.warning("Could not check peer dependencies: %s", exc)
            return []
        issues = []
        for line in result.stdout.splitlines():
            line = line.strip()
            conflict = PEER_CONFLICT_RE.match(line)
            if conflict:
                issues.append(conflict.groupdict())
                continue
            missing = PEER_MISSING_RE.match(line)
            if missing:
                issues.append({**missing.groupdict(), "installed": "not installed"})
        return issues

    def perform_full_analysis(self) -> DependencyAnalysis:
        logger.info("Performing comprehensive dependency analysis")
        try:
            entries = self.manifest_entries()
        except ManifestError as exc:
            logger.error("Failed to read manifest: %s", exc)
            entries = []
        return DependencyAnalysis(
            size_analysis=self.analyze_dependency_sizes(entries),
            unused_dependencies=self.find_unused_dependencies(),
            duplicate_dependencies=self.find_duplicate_dependencies(),
            license_issues=self.analyze_licenses(entries),
            peer_dependency_issues=self.check_peer_dependencies(),
        )

    def _distribution(self, name: str) -> Optional[metadata.Distribution]:
        try:
            return self.distribution(name)
        except metadata.PackageNotFoundError:
            logger.debug("%s is not installed", name)
            return None

    def _summary(
        self,
        dependencies: List[Dependency],
        vulnerabilities: List[Vulnerability],
        outdated: List[Dependency],
    ) -> DependencySummary:
        def severity(level: VulnerabilitySeverity) -> int:
            return sum(1 for v in vulnerabilities if v.severity == level)

        return DependencySummary(
            up_to_date=max(len(dependencies) - len(outdated), 0),
            minor_updates=sum(1 for d in outdated if d.status == DependencyStatus.MINOR_UPDATE),
            major_updates=sum(1 for d in outdated if d.status == DependencyStatus.MAJOR_UPDATE),
            critical=severity(VulnerabilitySeverity.CRITICAL),
            high=severity(VulnerabilitySeverity.HIGH),
            moderate=severity(VulnerabilitySeverity.MODERATE),
            low=severity(VulnerabilitySeverity.LOW),
        )


def _as_list(value: object) -> list:
    return value if isinstance(value, list) else []


def _load_json(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return []
    except (OSError, ValueError) as exc:
        raise ToolError(f"deptry produced unreadable output: {exc}") from exc


def _collect_requirements(nodes: List[dict], specs: Dict[str, Set[str]]) -> None:
    for node in nodes:
        if not isinstance(node, dict):
            continue
        name = node.get("package_name") or node.get("key")
        required = node.get("required_version")
        if name and required:
            specs.setdefault(canonicalize_name(str(name)), set()).add(str(required))
        _collect_requirements(_as_list(node.get("dependencies")), specs)


def _license_of(dist: metadata.Distribution) -> str:
    meta = dist.metadata
    expression = meta.get("License-Expression")
    if expression:
        return str(expression)
    classifiers = [
        c.split("::")[-1].strip()
        for c in meta.get_all("Classifier") or []
        if c.startswith("License ::")
    ]
    if classifiers:
        return classifiers[0]
    license_text = (meta.get("License") or "").strip()
    # some packages paste the whole license text into the field
    return license_text.splitlines()[0] if license_text else "UNKNOWN"


def _classify_license(name: str) -> Optional[LicenseInfo]:
    upper = name.upper()
    if upper in UNKNOWN_LICENSES:
        return LicenseInfo(name=name or "UNKNOWN", type="unknown", compatible=True, risk=RiskLevel.MEDIUM, packages=[])
    if any(marker in upper for marker in WARNING_LICENSES):
        return LicenseInfo(name=name, type="weak-copyleft", compatible=True, risk=RiskLevel.MEDIUM, packages=[])
    if "AGPL" in upper or any(marker in upper for marker in INCOMPATIBLE_LICENSES):
        return LicenseInfo(name=name, type="copyleft", compatible=False, risk=RiskLevel.HIGH, packages=[])
    return None
