from pathlib import Path

import pytest
import yaml

from techdebt.config import Config, dump_default_yaml


def test_defaults_are_complete():
    cfg = Config.from_dict({})
    assert cfg.project.modules_dir == "src"
    assert cfg.scan.depth == "normal"
    assert cfg.refactoring.keep_backups == 10
    assert cfg.thresholds.max_function_lines == 50
    assert sum(cfg.weights.values()) == pytest.approx(1.0)


def test_load_merges_overrides(tmp_path: Path):
    path = tmp_path / "techdebt.yml"
    path.write_text("thresholds:\n  any_usage: 7\nproject:\n  name: demo\n", encoding="utf-8")
    cfg = Config.load(path)
    assert cfg.thresholds.any_usage == 7
    assert cfg.thresholds.max_function_lines == 50
    assert cfg.project.name == "demo"
    assert cfg.project.modules_dir == "src"


def test_load_rejects_non_mapping(tmp_path: Path):
    path = tmp_path / "techdebt.yml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        Config.load(path)


def test_for_root_resolves_paths(tmp_path: Path):
    cfg = Config.for_root(tmp_path, project={"modules_dir": "lib"})
    assert cfg.project.root_path == tmp_path.resolve()
    assert cfg.project.modules_path == tmp_path.resolve() / "lib"


def test_default_yaml_round_trips():
    data = yaml.safe_load(dump_default_yaml())
    assert Config.from_dict(data).tools.test_cmd == "pytest -q"
