from pathlib import Path
from typing import Callable, Dict

import pytest

from techdebt.config import Config


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "proj"
    (root / "src").mkdir(parents=True)
    return root


@pytest.fixture
def config(project: Path) -> Config:
    return Config.for_root(project)


@pytest.fixture
def write(project: Path) -> Callable[[Dict[str, str]], None]:
    def _write(files: Dict[str, str]) -> None:
        for rel, content in files.items():
            path = project / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

    return _write
