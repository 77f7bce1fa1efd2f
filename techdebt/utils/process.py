"""External tool invocation."""
from __future__ import annotations

import json
import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from ..config import Config
from ..errors import ToolError

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    returncode: int
    stdout: str
    stderr: str


def build_command(template: str, **values: object) -> List[str]:
    """Split a configured command and fill its ``{placeholders}``."""
    return [part.format(**values) for part in shlex.split(template)]


def run_tool(
    name: str,
    cmd: List[str],
    cwd: Path,
    timeout: Optional[int],
    ok_codes: Iterable[int] = (0,),
) -> ToolResult:
    logger.debug("Running %s: %s", name, " ".join(cmd))
    try:
        completed = subprocess.run(
            cmd,
            capture_output=True,
            check=False,
            text=True,
            cwd=str(cwd),
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise ToolError(f"{name} unavailable: {exc}") from exc
    if completed.returncode not in tuple(ok_codes):
        message = (completed.stderr or "").strip() or f"{name} exited with {completed.returncode}"
        raise ToolError(message)
    return ToolResult(completed.returncode, completed.stdout or "", completed.stderr or "")


def run_json_tool(
    name: str,
    cmd: List[str],
    cwd: Path,
    timeout: Optional[int],
    ok_codes: Iterable[int] = (0,),
    default: object = None,
) -> object:
    result = run_tool(name, cmd, cwd, timeout, ok_codes)
    if not result.stdout.strip():
        return default
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise ToolError(f"{name} produced invalid JSON") from exc


class SuiteRunner:
    """Runs the project's test command and reports whether it passed."""

    def __init__(self, config: Config) -> None:
        self.config = config

    def run(self) -> bool:
        logger.info("Running tests...")
        cmd = build_command(self.config.tools.test_cmd, root=self.config.project.root_path)
        try:
            run_tool(
                "tests",
                cmd,
                cwd=self.config.project.root_path,
                timeout=self.config.tools.timeouts.get("tests"),
            )
        except ToolError as exc:
            logger.warning("Test run failed: %s", exc)
            return False
        return True
