from techdebt.analyzers.detectors import (
    AnyUsageDetector,
    AsyncErrorHandlingDetector,
    ConsoleLoggingDetector,
    HardcodedUrlDetector,
    LargeFunctionDetector,
    MagicNumberDetector,
    TodoDetector,
    UnusedImportDetector,
    default_detectors,
)
from techdebt.config import Config
from techdebt.models import IssueSeverity, IssueType


def test_async_without_try_is_flagged():
    source = "async def fetch(client):\n    return await client.get()\n"
    issues = AsyncErrorHandlingDetector().detect("src/api/client.py", source)
    assert len(issues) == 1
    assert issues[0].id == "src/api/client.py-error-handling"
    assert issues[0].type == IssueType.ERROR_HANDLING
    assert issues[0].severity == IssueSeverity.HIGH
    assert issues[0].technical_debt == 15


def test_async_with_try_is_clean():
    source = (
        "async def fetch(client):\n"
        "    try:\n"
        "        return await client.get()\n"
        "    except OSError:\n"
        "        return None\n"
    )
    assert AsyncErrorHandlingDetector().detect("client.py", source) == []


def test_brace_language_async_detection():
    source = "export async function load() {\n  await fetch(url);\n}\n"
    assert len(AsyncErrorHandlingDetector().detect("load.ts", source)) == 1


def test_any_usage_above_threshold():
    source = "\n".join(f"def f{i}(x: Any) -> Any:\n    return x" for i in range(2))
    issues = AnyUsageDetector(threshold=3).detect("types.py", source)
    assert len(issues) == 1
    assert issues[0].title == "Excessive use of 'Any' type (4 occurrences)"
    assert AnyUsageDetector(threshold=4).detect("types.py", source) == []


def test_large_python_function():
    body = "\n".join(f"    x{i} = {i}" for i in range(60))
    source = f"def big(\n    a,\n    b,\n):\n{body}\n\n\ndef small():\n    return 1\n"
    issues = LargeFunctionDetector(max_lines=50).detect("big.py", source)
    assert len(issues) == 1
    issue = issues[0]
    assert issue.id == "big.py-complexity-0"
    assert issue.line_range.start == 1
    assert issue.line_range.end == 64
    assert issue.technical_debt == 60


def test_small_function_not_flagged():
    assert LargeFunctionDetector(max_lines=50).detect("f.py", "def f():\n    return 1\n") == []


def test_large_brace_function():
    body = "\n".join("  total = total + 1;" for _ in range(55))
    source = f"function run() {{\n{body}\n}}\n"
    issues = LargeFunctionDetector(max_lines=50).detect("run.js", source)
    assert len(issues) == 1
    assert issues[0].line_range.start == 1


def test_todo_markers_one_issue_per_line():
    source = "x = 1  # TODO: rename\ny = 2\n# fixme later\n"
    issues = TodoDetector().detect("a.py", source)
    assert [issue.line_number for issue in issues] == [1, 3]
    assert issues[0].id == "a.py-todo-0"
    assert all(issue.severity == IssueSeverity.LOW for issue in issues)


def test_print_is_console_logging():
    issues = ConsoleLoggingDetector().detect("a.py", "print('hi')\n")
    assert len(issues) == 1
    assert issues[0].auto_fixable
    assert ConsoleLoggingDetector().detect("a.py", "logger.print_stats()\n") == []


def test_hardcoded_url_skips_tests():
    detector = HardcodedUrlDetector(["test_*.py"])
    source = 'URL = "https://example.com/api"\n'
    assert len(detector.detect("src/api/client.py", source)) == 1
    assert detector.detect("src/api/test_client.py", source) == []


def test_unused_imports():
    source = "import os\nimport sys\nfrom typing import List\n\nprint(sys.argv)\n"
    issues = UnusedImportDetector().detect("a.py", source)
    assert len(issues) == 1
    assert issues[0].line_number == 1
    assert "os" in issues[0].description
    assert "List" in issues[0].description
    assert UnusedImportDetector().detect("pkg/__init__.py", source) == []


def test_magic_numbers_repeated():
    source = (
        "def price(x):\n"
        "    return x * 42\n"
        "\n"
        "def tax(x):\n"
        "    return x * 42 + 42\n"
    )
    issues = MagicNumberDetector(min_occurrences=3).detect("a.py", source)
    assert len(issues) == 1
    assert issues[0].line_number == 2
    assert "42 (x3)" in issues[0].description
    assert MagicNumberDetector(min_occurrences=4).detect("a.py", source) == []


def test_default_detectors_follow_thresholds():
    cfg = Config.from_dict({"thresholds": {"any_usage": 9}})
    detectors = default_detectors(cfg)
    rules = {detector.rule for detector in detectors}
    assert "any-usage" in rules
    assert "magic-number" in rules
    any_detector = next(d for d in detectors if d.rule == "any-usage")
    assert any_detector.threshold == 9
