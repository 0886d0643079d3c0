"""Application build collaborator.

Runs the configured build command as an opaque subprocess. A non-zero exit
is the only pass/fail signal; test reports found afterwards are referenced
for archival and never parsed.

Key Concepts:
    CommandBuilder.build(): Run ``BuildConfig.command`` in ``BuildConfig.cwd``,
        then resolve ``artifact_glob`` (newest match wins) and
        ``test_report_glob`` (the directory holding the reports).
    run_command(): Generic subprocess wrapper returning exit code, output
        and duration. Never raises.

Related Modules:
    - :mod:`shipwright.deploy.config` — BuildConfig
    - :mod:`shipwright.deploy.orchestrator` — Calls ``build()`` in the Build stage

Tags:
    build, subprocess, artifact, shipwright
"""

from __future__ import annotations

import os
import subprocess
import time
from pathlib import Path
from typing import Any

from shipwright.core.errors import BuildError
from shipwright.core.logging import get_logger
from shipwright.core.result import Err, Ok, Result
from shipwright.deploy.config import BuildConfig
from shipwright.deploy.models import ArtifactRef

logger = get_logger(__name__)

# Trailing characters of output kept in error messages
_OUTPUT_TAIL = 2000


def run_command(
    command: list[str],
    env: dict[str, str] | None = None,
    cwd: str | None = None,
    timeout: int = 300,
) -> dict[str, Any]:
    """Run an arbitrary command, capturing output.

    Parameters
    ----------
    command
        Command and arguments.
    env
        Environment variables (merged with os.environ).
    cwd
        Working directory.
    timeout
        Command timeout in seconds.

    Returns
    -------
    dict
        Keys: exit_code, stdout, stderr, duration_seconds, error
    """
    full_env = {**os.environ, **(env or {})}
    start = time.time()

    try:
        proc = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=full_env,
        )
        return {
            "exit_code": proc.returncode,
            "stdout": proc.stdout,
            "stderr": proc.stderr,
            "duration_seconds": time.time() - start,
            "error": None,
        }
    except subprocess.TimeoutExpired:
        return {
            "exit_code": -1,
            "stdout": "",
            "stderr": "",
            "duration_seconds": timeout,
            "error": f"Command timed out after {timeout}s",
        }
    except OSError as e:
        return {
            "exit_code": -1,
            "stdout": "",
            "stderr": "",
            "duration_seconds": time.time() - start,
            "error": str(e),
        }


class CommandBuilder:
    """Build collaborator backed by a shell-free subprocess call.

    Example::

        builder = CommandBuilder(BuildConfig(command=["mvn", "-B", "package"]))
        match builder.build():
            case Ok(artifact):
                print(artifact.path)
            case Err(error):
                print(error)
    """

    def __init__(self, config: BuildConfig | None = None) -> None:
        self.config = config or BuildConfig()

    def build(self) -> Result[ArtifactRef]:
        cfg = self.config
        command_str = " ".join(cfg.command)
        logger.info("build.started", command=command_str, cwd=cfg.cwd)

        outcome = run_command(cfg.command, env=cfg.env, cwd=cfg.cwd, timeout=cfg.timeout_seconds)
        if outcome["error"] is not None or outcome["exit_code"] != 0:
            detail = outcome["error"] or (outcome["stderr"] or outcome["stdout"])[-_OUTPUT_TAIL:]
            logger.error("build.failed", exit_code=outcome["exit_code"], command=command_str)
            return Err(
                BuildError(
                    f"Build command failed (exit {outcome['exit_code']}): {detail.strip()}"
                ).with_context(command=command_str, exit_code=outcome["exit_code"])
            )

        artifact = self._find_artifact()
        if artifact is None:
            return Err(
                BuildError(
                    f"Build succeeded but no artifact matched {cfg.artifact_glob!r} in {cfg.cwd}"
                ).with_context(command=command_str)
            )

        reports = self._find_test_reports()
        logger.info(
            "build.completed",
            artifact=str(artifact),
            test_reports=reports,
            duration_seconds=round(outcome["duration_seconds"], 1),
        )
        return Ok(ArtifactRef(path=str(artifact), test_report=reports))

    def _find_artifact(self) -> Path | None:
        matches = [p for p in Path(self.config.cwd).glob(self.config.artifact_glob) if p.is_file()]
        if not matches:
            return None
        # newest artifact wins when a glob matches several (e.g. plain + boot jar)
        return max(matches, key=lambda p: (p.stat().st_mtime, p.name))

    def _find_test_reports(self) -> str | None:
        if not self.config.test_report_glob:
            return None
        matches = sorted(Path(self.config.cwd).glob(self.config.test_report_glob))
        if not matches:
            return None
        return str(matches[0].parent)
