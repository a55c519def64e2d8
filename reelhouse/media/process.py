from __future__ import annotations

import subprocess
from typing import Sequence

from reelhouse.core.errors import ProcessingError
from reelhouse.core.logging import get_logger

logger = get_logger(component="media_process")


def _as_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def run_tool(command: Sequence[str], *, timeout_s: float) -> subprocess.CompletedProcess[str]:
    """Run an external media tool to completion and return its captured output.

    A non-zero exit is *not* raised here; callers decide how to report it.

    Args:
        command: The argv to execute. ``command[0]`` is the binary.
        timeout_s: Deadline for the whole invocation. The process is killed when it elapses.

    Returns:
        The completed process with text stdout/stderr.

    Raises:
        ProcessingError: If the binary is missing or the deadline elapses.
    """
    tool = command[0]
    logger.debug("media_tool_run", command=list(command), timeout_s=timeout_s)
    try:
        return subprocess.run(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout_s,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ProcessingError(f"{tool} is not installed or not on PATH", stderr=str(exc)) from exc
    except subprocess.TimeoutExpired as exc:
        logger.error("media_tool_timeout", tool=tool, timeout_s=timeout_s)
        raise ProcessingError(f"{tool} did not finish within {timeout_s:g}s", stderr=_as_text(exc.stderr)) from exc


def tool_available(binary: str) -> bool:
    try:
        subprocess.run([binary, "-version"], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True, timeout=10)
    except (OSError, subprocess.SubprocessError):
        return False
    return True


__all__ = ["run_tool", "tool_available"]
