"""
Runs the Go toolchain as a child process and buffers its output.
"""
from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

from lambda_offline.exceptions import ToolchainError

MOCK_LAMBDA_MODULE = "github.com/icarus-sullivan/mock-lambda"
MOCK_LAMBDA_VERSION = "e065469"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessOutput:
    stdout: str
    stderr: str
    returncode: int


def relative_to_cwd(path, cwd: Optional[str] = None) -> str:
    """
    Strips the working-directory prefix so `go run` resolves the module from
    cwd. Paths outside cwd are returned unchanged.
    """
    cwd = cwd or os.getcwd()
    text = str(path)
    prefix = f"{cwd}{os.sep}"
    if text.startswith(prefix):
        return text[len(prefix):]
    return text


def launch(
    command: str,
    args: Sequence[str],
    env: Mapping[str, str],
    cwd: Optional[Path] = None,
) -> ProcessOutput:
    cmd = [command, *args]
    logger.debug(f"Launching {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            env=dict(env),
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
        )
    except FileNotFoundError as e:
        raise ToolchainError(f"Go toolchain not found: {command}") from e
    return ProcessOutput(
        stdout=result.stdout or "",
        stderr=result.stderr or "",
        returncode=result.returncode,
    )


def ensure_mock_runtime(go_bin: str = "go", version: str = MOCK_LAMBDA_VERSION) -> None:
    """Makes sure the mock-lambda module is available to `go run`."""
    target = f"{MOCK_LAMBDA_MODULE}@{version}"
    logger.info(f"Fetching {target}")
    try:
        subprocess.run([go_bin, "get", target], capture_output=True, text=True, check=True)
    except FileNotFoundError as e:
        raise ToolchainError(f"Go toolchain not found: {go_bin}") from e
    except subprocess.CalledProcessError as e:
        raise ToolchainError(f"'{go_bin} get {target}' failed: {e.stderr or e}") from e
