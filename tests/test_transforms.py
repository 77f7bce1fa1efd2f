import ast
from pathlib import Path

import pytest

from techdebt.errors import TransformError
from techdebt.refactoring import transforms
from techdebt.refactoring.transforms import (
    FileChange,
    _parse_unused_message,
    hoist_magic_numbers,
    optimize_imports,
    relative_import,
    remove_duplication,
    remove_imports,
)

CIRCLE = '''"""Circle helpers."""
import math


def area(r):
    return 3.14159 * r * r


def circumference(r):
    return 3.14159 * 2 * r


def half_turn(r):
    return 3.14159 / 2 * r
'''


def test_remove_whole_statement():
    source = "import os\nimport sys\n\nprint(sys.argv)\n"
    assert remove_imports(source, {(1, "os", None)}) == "import sys\n\nprint(sys.argv)\n"


def test_remove_one_alias():
    source = "from typing import Any, List\n\nx: List[int] = []\n"
    assert remove_imports(source, {(1, "Any", None)}) == "from typing import List\n\nx: List[int] = []\n"


def test_remove_keeps_aliased_import_with_other_asname():
    source = "import numpy as np\nimport numpy\n\nnumpy.zeros(1)\n"
    assert remove_imports(source, {(1, "numpy", "np")}) == "import numpy\n\nnumpy.zeros(1)\n"


def test_sole_import_in_block_becomes_pass():
    source = "try:\n    import ujson\nexcept ImportError:\n    ujson = None\n"
    result = remove_imports(source, {(2, "ujson", None)})
    assert result == "try:\n    pass\nexcept ImportError:\n    ujson = None\n"
    ast.parse(result)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Unused import os", (3, "os", None)),
        ("Unused numpy imported as np", (3, "numpy", "np")),
        ("Unused List imported from typing", (3, "List", None)),
        ("Unused Path imported from pathlib as P", (3, "Path", "P")),
        ("Something else", None),
    ],
)
def test_parse_pylint_messages(text, expected):
    assert _parse_unused_message(3, text) == expected


def test_optimize_imports_uses_pylint_findings(tmp_path: Path, monkeypatch):
    (tmp_path / "mod.py").write_text("import os\nimport sys\n\nprint(sys.path)\n", encoding="utf-8")
    monkeypatch.setattr(transforms, "pylint_unused_imports", lambda path: {(1, "os", None)})
    change = optimize_imports(tmp_path, "mod.py")
    assert change.changed
    assert change.after == "import sys\n\nprint(sys.path)\n"
    assert change.lines_changed == 1


def test_optimize_imports_without_findings(tmp_path: Path, monkeypatch):
    (tmp_path / "mod.py").write_text("import sys\n\nprint(sys.path)\n", encoding="utf-8")
    monkeypatch.setattr(transforms, "pylint_unused_imports", lambda path: set())
    with pytest.raises(TransformError):
        optimize_imports(tmp_path, "mod.py")


def test_optimize_imports_rejects_other_languages(tmp_path: Path):
    with pytest.raises(TransformError):
        optimize_imports(tmp_path, "mod.js")


def test_pylint_reports_unused_imports(tmp_path: Path):
    path = tmp_path / "mod.py"
    path.write_text('"""Module."""\nimport os\nimport sys\n\nprint(sys.path)\n', encoding="utf-8")
    assert transforms.pylint_unused_imports(path) == {(2, "os", None)}


def test_relative_import():
    assert relative_import("src/core/b.py", "src/core/a.py") == ".a"
    assert relative_import("src/api/b.py", "src/core/util/a.py") == "..core.util.a"
    assert relative_import("src/core/x.py", "src/core/__init__.py") == "."
    with pytest.raises(TransformError):
        relative_import("src/b.py", "src/my-module.py")


def test_remove_duplication_writes_shims(tmp_path: Path):
    core = tmp_path / "src" / "core"
    core.mkdir(parents=True)
    code = "def helper():\n    return 1\n"
    (core / "a.py").write_text(code, encoding="utf-8")
    (core / "b.py").write_text(code, encoding="utf-8")
    changes = remove_duplication(tmp_path, ["src/core/a.py", "src/core/b.py"])
    assert [change.path for change in changes] == ["src/core/b.py"]
    assert "from .a import *  # noqa: F401,F403\n" in changes[0].after
    ast.parse(changes[0].after)


def test_remove_duplication_needs_python_pair(tmp_path: Path):
    with pytest.raises(TransformError):
        remove_duplication(tmp_path, ["a.py"])
    with pytest.raises(TransformError):
        remove_duplication(tmp_path, ["a.ts", "b.ts"])


def test_remove_duplication_refuses_renamed_copies(tmp_path: Path):
    core = tmp_path / "src" / "core"
    core.mkdir(parents=True)
    (core / "orders.py").write_text("def get_order(store):\n    return store.orders\n", encoding="utf-8")
    (core / "users.py").write_text("def get_user(db):\n    return db.users\n", encoding="utf-8")
    with pytest.raises(TransformError, match="names differ"):
        remove_duplication(tmp_path, ["src/core/orders.py", "src/core/users.py"])


def test_remove_duplication_ignores_comments_and_docstrings(tmp_path: Path):
    core = tmp_path / "src" / "core"
    core.mkdir(parents=True)
    (core / "a.py").write_text("def helper():\n    return 1\n", encoding="utf-8")
    (core / "b.py").write_text('"""Copy."""\n\n\ndef helper():  # same\n    return 1\n', encoding="utf-8")
    changes = remove_duplication(tmp_path, ["src/core/a.py", "src/core/b.py"])
    assert [change.path for change in changes] == ["src/core/b.py"]


def test_hoist_magic_numbers():
    result = hoist_magic_numbers(CIRCLE, 3)
    assert "NUM_3_14159 = 3.14159\n" in result
    assert "return NUM_3_14159 * r * r" in result
    assert result.count("3.14159") == 1
    lines = result.splitlines()
    assert lines.index("NUM_3_14159 = 3.14159") > lines.index("import math")
    ast.parse(result)


def test_hoist_magic_numbers_requires_repeats():
    with pytest.raises(TransformError):
        hoist_magic_numbers(CIRCLE, 4)


def test_file_change_counts_lines():
    change = FileChange("a.py", "a\nb\nc\n", "a\nB\nc\nd\n")
    assert change.changed
    assert change.lines_changed == 3
    assert not FileChange("a.py", "x", "x").changed
