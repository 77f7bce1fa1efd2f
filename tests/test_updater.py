from pathlib import Path
from unittest import mock

import pytest

from techdebt.dependencies.auditor import DependencyAuditor
from techdebt.dependencies.updater import DependencyUpdater
from techdebt.errors import BackupError
from techdebt.models import (
    DependencyReport,
    DependencySummary,
    UpdateOptions,
    UpdateRecommendation,
    UpdateStrategy,
    UpdateType,
)

MANIFEST = "c==1.0.0\na>=1.0.0  # web\nb==1.0.0\n"


class DummyCompletedProcess:
    def __init__(self, stdout: str = "", stderr: str = "", returncode: int = 0):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode


def rec(package, from_version, to_version, type, priority="low"):
    return UpdateRecommendation(
        package=package,
        from_version=from_version,
        to_version=to_version,
        type=type,
        priority=priority,
        reason="",
        breaking_changes=type == UpdateType.MAJOR,
        auto_patchable=type != UpdateType.MAJOR,
    )


RECOMMENDATIONS = [
    rec("c", "1.0.0", "1.0.1", UpdateType.PATCH, "critical"),
    rec("a", "1.0.0", "1.1.0", UpdateType.MINOR),
    rec("b", "1.0.0", "2.0.0", UpdateType.MAJOR, "medium"),
]


class StubAuditor(DependencyAuditor):
    def __init__(self, config, recommendations):
        super().__init__(config)
        self.recommendations = recommendations

    def analyze_dependencies(self):
        return DependencyReport(
            timestamp="",
            total_dependencies=0,
            dependencies=[],
            vulnerabilities=[],
            outdated=[],
            unused=[],
            summary=DependencySummary(0, 0, 0, 0, 0, 0, 0),
            update_recommendations=list(self.recommendations),
        )


@pytest.fixture
def manifest(write, project) -> Path:
    write({"requirements.txt": MANIFEST})
    return project / "requirements.txt"


def make_updater(config, recommendations=RECOMMENDATIONS, run_tests=lambda: True, installed="9.9.9"):
    return DependencyUpdater(
        config,
        StubAuditor(config, recommendations),
        run_tests=run_tests,
        installed_version=lambda name: installed,
    )


def installs(run):
    return [call.args[0] for call in run.call_args_list]


def test_moderate_strategy_updates_and_pins(config, manifest):
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess()) as run:
        updates = make_updater(config).update_dependencies(UpdateOptions())
    assert [(u.package, u.success) for u in updates] == [("c", True), ("a", True)]
    assert installs(run) == [["pip", "install", "c==1.0.1"], ["pip", "install", "a==1.1.0"]]
    assert manifest.read_text(encoding="utf-8") == "c==1.0.1\na==1.1.0\nb==1.0.0\n"


def test_conservative_and_aggressive(config, manifest):
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess()):
        conservative = make_updater(config).update_dependencies(
            UpdateOptions(strategy=UpdateStrategy.CONSERVATIVE)
        )
    assert [u.package for u in conservative] == ["c"]
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess()):
        aggressive = make_updater(config).update_dependencies(
            UpdateOptions(strategy=UpdateStrategy.AGGRESSIVE)
        )
    assert [u.package for u in aggressive] == ["c", "a", "b"]


def test_manual_strategy_does_nothing(config, manifest):
    with mock.patch("subprocess.run") as run:
        updates = make_updater(config).update_dependencies(UpdateOptions(strategy=UpdateStrategy.MANUAL))
    assert updates == []
    run.assert_not_called()
    assert manifest.read_text(encoding="utf-8") == MANIFEST


def test_failed_install_stops_batch(config, manifest):
    failure = DummyCompletedProcess(stderr="No matching distribution found", returncode=1)
    with mock.patch("subprocess.run", return_value=failure) as run:
        updates = make_updater(config).update_dependencies(UpdateOptions())
    assert len(updates) == 1
    assert not updates[0].success
    assert updates[0].error == "No matching distribution found"
    assert run.call_count == 1
    assert manifest.read_text(encoding="utf-8") == MANIFEST


def test_auto_merge_continues_past_failures(config, manifest):
    results = [DummyCompletedProcess(stderr="boom", returncode=1), DummyCompletedProcess()]
    with mock.patch("subprocess.run", side_effect=results):
        updates = make_updater(config).update_dependencies(UpdateOptions(auto_merge=True))
    assert [(u.package, u.success) for u in updates] == [("c", False), ("a", True)]


def test_failing_tests_roll_back_manifest(config, manifest):
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess()) as run:
        updates = make_updater(config, run_tests=lambda: False).update_dependencies(UpdateOptions())
    assert len(updates) == 2
    assert all(not u.success for u in updates)
    assert all(u.error == "Tests failed after update" for u in updates)
    assert manifest.read_text(encoding="utf-8") == MANIFEST
    assert installs(run) == [
        ["pip", "install", "c==1.0.1"],
        ["pip", "install", "a==1.1.0"],
        ["pip", "install", "c==1.0.0"],
        ["pip", "install", "a==1.0.0"],
    ]


def test_tests_skipped_when_disabled(config, manifest):
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess()):
        updates = make_updater(config, run_tests=lambda: False).update_dependencies(
            UpdateOptions(run_tests=False)
        )
    assert all(u.success for u in updates)


def test_rollback_failure_reports_unsafe_state(config, manifest):
    updater = make_updater(config, run_tests=lambda: False)
    updater.backup.restore = mock.Mock(side_effect=BackupError("disk gone"))
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess()):
        updates = updater.update_dependencies(UpdateOptions())
    assert updates
    assert all("rollback failed, unsafe state: disk gone" in u.error for u in updates)


def test_latest_target_uses_upgrade_and_installed_version(config, manifest):
    recommendations = [rec("c", "1.0.0", "latest", UpdateType.PATCH, "critical")]
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess()) as run:
        updates = make_updater(config, recommendations, installed="1.0.9").update_dependencies()
    assert updates[0].success
    assert installs(run) == [["pip", "install", "--upgrade", "c"]]
    assert manifest.read_text(encoding="utf-8").splitlines()[0] == "c==1.0.9"


def test_package_filter_and_dev_exclusion(config, manifest, write):
    write({"requirements-dev.txt": "pytest==7.0.0\n"})
    recommendations = RECOMMENDATIONS + [rec("pytest", "7.0.0", "7.4.0", UpdateType.MINOR)]
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess()):
        only_a = make_updater(config, recommendations).update_dependencies(UpdateOptions(packages=["A"]))
        no_dev = make_updater(config, recommendations).update_dependencies(
            UpdateOptions(include_dev_dependencies=False)
        )
    assert [u.package for u in only_a] == ["a"]
    assert [u.package for u in no_dev] == ["c", "a"]


def test_missing_manifest_aborts_before_installing(config):
    with mock.patch("subprocess.run") as run:
        updates = make_updater(config).update_dependencies(UpdateOptions())
    assert updates == []
    run.assert_not_called()


def test_failed_reinstall_is_reported(config, manifest):
    results = [
        DummyCompletedProcess(),
        DummyCompletedProcess(),
        DummyCompletedProcess(stderr="index unreachable", returncode=1),
        DummyCompletedProcess(),
    ]
    with mock.patch("subprocess.run", side_effect=results) as run:
        updates = make_updater(config, run_tests=lambda: False).update_dependencies(UpdateOptions())
    assert run.call_count == 4
    assert updates[0].error == "Tests failed after update; reinstall of 1.0.0 failed: index unreachable"
    assert updates[1].error == "Tests failed after update"


def test_no_reinstall_without_backup(config, manifest):
    with mock.patch("subprocess.run", return_value=DummyCompletedProcess()) as run:
        updates = make_updater(config, run_tests=lambda: False).update_dependencies(
            UpdateOptions(create_backup=False)
        )
    assert all(not u.success for u in updates)
    assert run.call_count == 2
