import json
from email.message import Message
from importlib import metadata
from pathlib import Path
from unittest import mock

import pytest

from techdebt.dependencies.auditor import (
    DependencyAuditor,
    determine_update_type,
    filter_by_strategy,
    generate_update_recommendations,
    map_severity,
)
from techdebt.models import (
    Dependency,
    DependencyStatus,
    DependencyType,
    RiskLevel,
    UpdateStrategy,
    UpdateType,
    Vulnerability,
    VulnerabilitySeverity,
)


class DummyCompletedProcess:
    def __init__(self, stdout: str = "", stderr: str = "", returncode: int = 0):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode


class FakeFile:
    def __init__(self, path: Path):
        self.path = path

    def locate(self):
        return self.path


class FakeDist:
    def __init__(self, headers=None, files=None):
        self.metadata = Message()
        for key, value in headers or []:
            self.metadata[key] = value
        self.files = files


AUDIT = {
    "dependencies": [
        {
            "name": "requests",
            "version": "2.0.0",
            "vulns": [
                {
                    "id": "PYSEC-2023-74",
                    "aliases": ["GHSA-xxxx", "CVE-2023-32681"],
                    "fix_versions": ["2.31.0"],
                    "description": "Proxy-Authorization header leak",
                }
            ],
        },
        {"name": "flask", "version": "1.0.0", "vulns": []},
    ]
}

OUTDATED = [
    {"name": "requests", "version": "2.0.0", "latest_version": "2.31.0"},
    {"name": "Flask", "version": "1.0.0", "latest_version": "3.0.0"},
    {"name": "six", "version": "1.15.0", "latest_version": "1.16.0"},
]

UNUSED = [
    {"error": {"code": "DEP002", "message": "'flask' defined as a dependency but not used"}, "module": "flask"},
    {"error": {"code": "DEP001", "message": "'yaml' imported but missing"}, "module": "yaml"},
]


def fake_tools(cmd, **kwargs):
    if cmd[0] == "pip-audit":
        return DummyCompletedProcess(stdout=json.dumps(AUDIT), returncode=1)
    if cmd[0] == "deptry":
        output = Path(cmd[cmd.index("--json-output") + 1])
        output.write_text(json.dumps(UNUSED), encoding="utf-8")
        return DummyCompletedProcess(returncode=1)
    if cmd[:2] == ["pip", "list"]:
        return DummyCompletedProcess(stdout=json.dumps(OUTDATED))
    raise AssertionError(f"unexpected command {cmd}")


@pytest.fixture
def auditor(config, write):
    write(
        {
            "requirements.txt": "# runtime\nrequests==2.0.0\nflask>=1.0.0\n-r other.txt\nnot a requirement!!\n",
            "requirements-dev.txt": "pytest==7.0.0\n",
        }
    )
    return DependencyAuditor(config)


def test_manifest_entries(auditor):
    entries = auditor.manifest_entries()
    assert [(e.name, e.version, e.type) for e in entries] == [
        ("requests", "2.0.0", DependencyType.DIRECT),
        ("flask", "1.0.0", DependencyType.DIRECT),
        ("pytest", "7.0.0", DependencyType.DEV),
    ]
    assert len(auditor.manifest_entries(include_dev=False)) == 2


def test_vulnerabilities_parsed(auditor):
    with mock.patch("subprocess.run", side_effect=fake_tools):
        vulns = auditor.check_vulnerabilities()
    assert len(vulns) == 1
    vuln = vulns[0]
    assert vuln.id == "PYSEC-2023-74"
    assert vuln.cve == "CVE-2023-32681"
    assert vuln.severity == VulnerabilitySeverity.HIGH
    assert vuln.affected_package == "requests"
    assert vuln.patched_version == "2.31.0"
    assert vuln.references == ["https://osv.dev/vulnerability/PYSEC-2023-74"]


def test_missing_tool_degrades_to_empty(auditor):
    with mock.patch("subprocess.run", side_effect=FileNotFoundError("pip-audit")):
        assert auditor.check_vulnerabilities() == []
        assert auditor.check_outdated_packages() == []
        assert auditor.find_unused_dependencies() == []
        assert auditor.find_duplicate_dependencies() == []
        assert auditor.check_peer_dependencies() == []


def test_unexpected_exit_code_degrades_to_empty(auditor):
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess(stderr="crash", returncode=2)):
        assert auditor.check_vulnerabilities() == []


def test_outdated_limited_to_manifest(auditor):
    with mock.patch("subprocess.run", side_effect=fake_tools):
        outdated = auditor.check_outdated_packages()
    assert [(d.name, d.status) for d in outdated] == [
        ("requests", DependencyStatus.MINOR_UPDATE),
        ("Flask", DependencyStatus.MAJOR_UPDATE),
    ]


def test_unused_from_deptry(auditor):
    with mock.patch("subprocess.run", side_effect=fake_tools):
        assert auditor.find_unused_dependencies() == ["flask"]


def test_full_report(auditor):
    with mock.patch("subprocess.run", side_effect=fake_tools):
        report = auditor.analyze_dependencies()
    assert report.total_dependencies == 3
    assert report.summary.high == 1
    assert report.summary.minor_updates == 1
    assert report.summary.major_updates == 1
    assert report.summary.up_to_date == 1
    assert report.unused == ["flask"]
    flask = next(d for d in report.dependencies if d.name == "flask")
    assert flask.latest_version == "3.0.0"
    assert [(r.package, r.type) for r in report.update_recommendations] == [
        ("requests", UpdateType.PATCH),
        ("requests", UpdateType.MINOR),
        ("Flask", UpdateType.MAJOR),
    ]
    assert report.update_recommendations[0].to_version == "2.31.0"


def test_duplicate_requirements(auditor):
    tree = [
        {"package_name": "a", "required_version": "1.0", "dependencies": [{"package_name": "six", "required_version": ">=1.10"}]},
        {"package_name": "b", "required_version": "2.0", "dependencies": [{"package_name": "six", "required_version": ">=1.12"}]},
    ]
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess(stdout=json.dumps(tree))):
        assert auditor.find_duplicate_dependencies() == [{"name": "six", "versions": [">=1.10", ">=1.12"]}]


def test_peer_dependency_problems(auditor):
    stdout = (
        "flask 2.0.0 has requirement werkzeug>=2.0, but you have werkzeug 1.0.1.\n"
        "foo 1.0 requires bar, which is not installed.\n"
    )
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess(stdout=stdout, returncode=1)):
        issues = auditor.check_peer_dependencies()
    assert issues == [
        {"package": "flask", "required": "werkzeug>=2.0", "installed": "werkzeug 1.0.1"},
        {"package": "foo", "required": "bar", "installed": "not installed"},
    ]


def test_licenses_and_sizes(config, write, tmp_path):
    write({"requirements.txt": "gplpkg\nlgplpkg\nmitpkg\nnolicense\nmissing\n"})
    blob = tmp_path / "blob.bin"
    blob.write_bytes(b"\0" * 1024 * 1024)
    dists = {
        "gplpkg": FakeDist([("Classifier", "License :: OSI Approved :: GNU General Public License v3 (GPLv3)")]),
        "lgplpkg": FakeDist([("License-Expression", "LGPL-3.0-or-later")]),
        "mitpkg": FakeDist([("License", "MIT")], files=[FakeFile(blob)]),
        "nolicense": FakeDist(),
    }

    def lookup(name):
        if name not in dists:
            raise metadata.PackageNotFoundError(name)
        return dists[name]

    auditor = DependencyAuditor(config, distribution=lookup)
    licenses = {info.type: info for info in auditor.analyze_licenses()}
    assert set(licenses) == {"copyleft", "weak-copyleft", "unknown"}
    assert licenses["copyleft"].packages == ["gplpkg"]
    assert not licenses["copyleft"].compatible
    assert licenses["copyleft"].risk == RiskLevel.HIGH
    assert licenses["weak-copyleft"].compatible
    assert licenses["unknown"].packages == ["nolicense"]

    sizes = auditor.analyze_dependency_sizes()
    assert sizes["total_size_mb"] == 1.0
    assert sizes["largest_dependencies"][0] == {"name": "mitpkg", "size_mb": 1.0}


def test_update_type():
    assert determine_update_type("1.2.3", "2.0.0") == DependencyStatus.MAJOR_UPDATE
    assert determine_update_type("1.2.3", "1.3.0") == DependencyStatus.MINOR_UPDATE
    assert determine_update_type("1.2.3", "1.2.4") == DependencyStatus.MINOR_UPDATE
    assert determine_update_type("1.2.3", "1.2.3") == DependencyStatus.UP_TO_DATE
    assert determine_update_type("main", "1.2.3") == DependencyStatus.UP_TO_DATE


def test_severity_mapping():
    assert map_severity("MEDIUM", "high") == VulnerabilitySeverity.MODERATE
    assert map_severity(None, "high") == VulnerabilitySeverity.HIGH
    assert map_severity("weird", "high") == VulnerabilitySeverity.LOW


def test_strategies():
    outdated = [
        Dependency("a", "1.0.0", "1.1.0", DependencyType.DIRECT, DependencyStatus.MINOR_UPDATE),
        Dependency("b", "1.0.0", "2.0.0", DependencyType.DIRECT, DependencyStatus.MAJOR_UPDATE),
    ]
    vulns = [
        Vulnerability("V-1", VulnerabilitySeverity.CRITICAL, "t", "d", "c", "1.0.0", "1.0.1"),
        Vulnerability("V-2", VulnerabilitySeverity.LOW, "t", "d", "d", "1.0.0", "1.0.1"),
    ]
    recs = generate_update_recommendations(outdated, vulns)
    assert [r.package for r in recs] == ["c", "a", "b"]
    assert [r.package for r in filter_by_strategy(recs, UpdateStrategy.CONSERVATIVE)] == ["c"]
    assert [r.package for r in filter_by_strategy(recs, UpdateStrategy.MODERATE)] == ["c", "a"]
    assert [r.package for r in filter_by_strategy(recs, UpdateStrategy.AGGRESSIVE)] == ["c", "a", "b"]
    assert filter_by_strategy(recs, UpdateStrategy.MANUAL) == []
    assert recs[2].breaking_changes
    assert not recs[1].breaking_changes


def wrong_shaped_tools(cmd, **kwargs):
    if cmd[0] == "pip-audit":
        payload = {"dependencies": [{"name": "requests", "vulns": ["PYSEC-1"]}, "flask"]}
        return DummyCompletedProcess(stdout=json.dumps(payload), returncode=1)
    if cmd[0] == "deptry":
        output = Path(cmd[cmd.index("--json-output") + 1])
        output.write_text(json.dumps(["flask", {"error": "DEP002", "module": "six"}]), encoding="utf-8")
        return DummyCompletedProcess(returncode=1)
    if cmd[:2] == ["pip", "list"]:
        return DummyCompletedProcess(stdout=json.dumps(["requests"]))
    raise AssertionError(f"unexpected command {cmd}")


def test_wrong_shaped_tool_output_is_skipped(auditor):
    with mock.patch("subprocess.run", side_effect=wrong_shaped_tools):
        assert auditor.check_vulnerabilities() == []
        assert auditor.check_outdated_packages() == []
        assert auditor.find_unused_dependencies() == []
        report = auditor.analyze_dependencies()
    assert report.total_dependencies == 3
    assert report.vulnerabilities == []
    assert report.update_recommendations == []


def test_wrong_shaped_dependency_tree(auditor):
    tree = [{"package_name": "a", "dependencies": "six"}, 42]
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess(stdout=json.dumps(tree))):
        assert auditor.find_duplicate_dependencies() == []
