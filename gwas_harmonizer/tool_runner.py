"""External tool execution.

Thin wrapper around ``subprocess.run`` shared by the liftOver and samtools
runners. A failed invocation is reported as a ``ToolResult`` rather than an
exception so each runner decides how to surface it.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    """Result from an external tool execution.

    Attributes:
        success: Whether the command exited with status 0
        command: Full command that was run
        stdout: Standard output
        stderr: Standard error (or the reason the command could not run)
        returncode: Exit status, None if the process never finished
    """

    success: bool
    command: str
    stdout: str
    stderr: str
    returncode: int | None = None


def find_executable(configured: Path | None, *names: str) -> Path | None:
    """Find an executable by configured path or by name in PATH.

    Args:
        configured: Explicit path (or bare name) from configuration
        *names: Fallback names searched in PATH, in order

    Returns:
        Path to executable, or None if not found

    Example:
        >>> find_executable(None, "liftOver", "liftover")
        PosixPath('/usr/local/bin/liftOver')
    """
    candidates = [str(configured)] if configured is not None else list(names)
    for name in candidates:
        path = shutil.which(name)
        if path:
            return Path(path)
    return None


def run_tool(cmd: list[str], timeout: int = 3600) -> ToolResult:
    """Execute an external command.

    Args:
        cmd: Command and arguments
        timeout: Seconds before the command is abandoned

    Returns:
        ToolResult with execution details
    """
    cmd_str = " ".join(cmd)
    logger.debug("Running: %s", cmd_str)

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return ToolResult(
            success=False,
            command=cmd_str,
            stdout="",
            stderr=f"Command timed out after {timeout} seconds",
        )
    except OSError as e:
        return ToolResult(
            success=False,
            command=cmd_str,
            stdout="",
            stderr=f"Command could not be started: {e}",
        )

    success = result.returncode == 0
    if not success:
        logger.debug("Command failed (%d): %s", result.returncode, result.stderr.strip())

    return ToolResult(
        success=success,
        command=cmd_str,
        stdout=result.stdout,
        stderr=result.stderr,
        returncode=result.returncode,
    )
