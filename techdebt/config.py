"""Configuration loading for the technical debt engine."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml


DEFAULT_CONFIG = {
    "project": {
        "name": "project",
        "root": ".",
        "modules_dir": "src",
        "tests_dir": "tests",
    },
    "scan": {
        "extensions": [".py"],
        "doc_extensions": [".md", ".rst"],
        "test_patterns": ["test_*.py", "*_test.py", "*.spec.*", "*.test.*"],
        "exclude": [
            "node_modules",
            "dist",
            "build",
            "coverage",
            "__pycache__",
            ".venv",
            "venv",
            ".git",
            ".refactoring-backups",
        ],
        "depth": "normal",
    },
    "thresholds": {
        "max_function_lines": 50,
        "any_usage": 3,
        "high_complexity_module": 20,
        "high_complexity_function": 10,
        "duplicate_high_lines": 50,
        "pattern_min_lines": 5,
        "magic_number_occurrences": 3,
    },
    "weights": {
        "complexity": 0.20,
        "maintainability": 0.25,
        "duplication": 0.15,
        "test_coverage": 0.15,
        "documentation": 0.10,
        "error_handling": 0.10,
        "type_safety": 0.05,
    },
    "refactoring": {"backup_dir": ".refactoring-backups", "keep_backups": 10},
    "dependencies": {
        "manifest": "requirements.txt",
        "dev_manifest": "requirements-dev.txt",
        "default_vulnerability_severity": "high",
    },
    "tools": {
        "audit_cmd": "pip-audit -r {manifest} --format json",
        "outdated_cmd": "pip list --outdated --format json",
        "unused_cmd": "deptry {root} --json-output {output}",
        "tree_cmd": "pipdeptree --json-tree",
        "check_cmd": "pip check",
        "install_cmd": "pip install {requirement}",
        "upgrade_cmd": "pip install --upgrade {package}",
        "test_cmd": "pytest -q",
        "timeouts": {
            "audit": 300,
            "outdated": 300,
            "unused": 300,
            "tree": 120,
            "check": 120,
            "install": 600,
            "tests": 1800,
        },
    },
    "dashboard": {
        "weights": {"quality": 0.8, "dependencies": 0.2},
        "top_opportunities": 5,
    },
    "logging": {"level": "INFO", "file": None},
}


@dataclass
class ProjectConfig:
    name: str
    root: str
    modules_dir: str
    tests_dir: str

    @property
    def root_path(self) -> Path:
        return Path(self.root).resolve()

    @property
    def modules_path(self) -> Path:
        return self.root_path / self.modules_dir


@dataclass
class ScanConfig:
    extensions: List[str]
    doc_extensions: List[str]
    test_patterns: List[str]
    exclude: List[str]
    depth: str


@dataclass
class Thresholds:
    max_function_lines: int
    any_usage: int
    high_complexity_module: float
    high_complexity_function: int
    duplicate_high_lines: int
    pattern_min_lines: int
    magic_number_occurrences: int


@dataclass
class RefactoringConfig:
    backup_dir: str
    keep_backups: int = 10


@dataclass
class DependenciesConfig:
    manifest: str
    dev_manifest: Optional[str]
    default_vulnerability_severity: str


@dataclass
class ToolsConfig:
    audit_cmd: str
    outdated_cmd: str
    unused_cmd: str
    tree_cmd: str
    check_cmd: str
    install_cmd: str
    upgrade_cmd: str
    test_cmd: str
    timeouts: Dict[str, int]


@dataclass
class DashboardConfig:
    weights: Dict[str, float]
    top_opportunities: int


@dataclass
class LoggingConfig:
    level: str
    file: Optional[str]


@dataclass
class Config:
    project: ProjectConfig
    scan: ScanConfig
    thresholds: Thresholds
    weights: Dict[str, float]
    refactoring: RefactoringConfig
    dependencies: DependenciesConfig
    tools: ToolsConfig
    dashboard: DashboardConfig
    logging: LoggingConfig

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Config":
        merged = _deep_merge(DEFAULT_CONFIG, data)
        project = merged["project"]
        scan = merged["scan"]
        thresholds = merged["thresholds"]
        refactoring = merged["refactoring"]
        dependencies = merged["dependencies"]
        tools = merged["tools"]
        dashboard = merged["dashboard"]
        logging_cfg = merged["logging"]
        return cls(
            project=ProjectConfig(
                name=str(project["name"]),
                root=str(project["root"]),
                modules_dir=str(project["modules_dir"]),
                tests_dir=str(project["tests_dir"]),
            ),
            scan=ScanConfig(
                extensions=list(scan["extensions"]),
                doc_extensions=list(scan["doc_extensions"]),
                test_patterns=list(scan["test_patterns"]),
                exclude=list(scan["exclude"]),
                depth=str(scan["depth"]),
            ),
            thresholds=Thresholds(
                max_function_lines=int(thresholds["max_function_lines"]),
                any_usage=int(thresholds["any_usage"]),
                high_complexity_module=float(thresholds["high_complexity_module"]),
                high_complexity_function=int(thresholds["high_complexity_function"]),
                duplicate_high_lines=int(thresholds["duplicate_high_lines"]),
                pattern_min_lines=int(thresholds["pattern_min_lines"]),
                magic_number_occurrences=int(thresholds["magic_number_occurrences"]),
            ),
            weights={k: float(v) for k, v in merged["weights"].items()},
            refactoring=RefactoringConfig(
                backup_dir=str(refactoring["backup_dir"]),
                keep_backups=int(refactoring["keep_backups"]),
            ),
            dependencies=DependenciesConfig(
                manifest=str(dependencies["manifest"]),
                dev_manifest=dependencies.get("dev_manifest"),
                default_vulnerability_severity=str(dependencies["default_vulnerability_severity"]),
            ),
            tools=ToolsConfig(
                audit_cmd=str(tools["audit_cmd"]),
                outdated_cmd=str(tools["outdated_cmd"]),
                unused_cmd=str(tools["unused_cmd"]),
                tree_cmd=str(tools["tree_cmd"]),
                check_cmd=str(tools["check_cmd"]),
                install_cmd=str(tools["install_cmd"]),
                upgrade_cmd=str(tools["upgrade_cmd"]),
                test_cmd=str(tools["test_cmd"]),
                timeouts={k: int(v) for k, v in tools["timeouts"].items()},
            ),
            dashboard=DashboardConfig(
                weights={k: float(v) for k, v in dashboard["weights"].items()},
                top_opportunities=int(dashboard["top_opportunities"]),
            ),
            logging=LoggingConfig(
                level=str(logging_cfg["level"]),
                file=logging_cfg.get("file"),
            ),
        )

    @classmethod
    def load(cls, path: Optional[Path]) -> "Config":
        if path is None:
            return cls.from_dict({})
        text = Path(path).read_text(encoding="utf-8")
        data = _safe_yaml_load(text)
        return cls.from_dict(data)

    @classmethod
    def for_root(cls, root: Path, **overrides: object) -> "Config":
        """Build a default configuration rooted at ``root``."""
        data: Dict[str, object] = {"project": {"root": str(root)}}
        return cls.from_dict(_deep_merge(data, overrides))


def _deep_merge(base: Mapping[str, object], override: Mapping[str, object]) -> Dict[str, object]:
    result: Dict[str, object] = {}
    for key, value in base.items():
        result[key] = value
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def dump_default_yaml() -> str:
    """Return the default configuration as YAML."""
    return yaml.safe_dump(DEFAULT_CONFIG, sort_keys=False)


def _safe_yaml_load(text: str) -> Dict[str, object]:
    if not text.strip():
        return {}
    loaded = yaml.safe_load(text)
    if loaded is None:
        return {}
    if not isinstance(loaded, Mapping):
        raise ValueError(f"configuration must be a mapping, got: {json.dumps(loaded)[:80]}")
    return dict(loaded)
