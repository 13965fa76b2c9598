"""
Process Runner - runs one external command and captures its output.

Security:
- No shell=True anywhere
- Commands are argument lists, never strings
- stderr is merged into stdout so the pipe is drained in one read

subprocess.run reads the combined stream until EOF and then waits for the
exit, so a chatty process can never deadlock on a full pipe buffer and a
hung process blocks here, in the caller's thread, rather than elsewhere.
"""
import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


class ProcessRunnerError(Exception):
    """Command could not be described to the runner."""
    pass


@dataclass
class ProcessResult:
    """Result of a subprocess command."""
    command: list[str]
    exit_code: int
    output: str
    duration_ms: int
    timed_out: bool = False


class ProcessRunner(Protocol):
    """Anything that can run a command in a directory."""

    def __call__(self, cwd: Path, command: Sequence[str]) -> ProcessResult: ...


def _decode(raw) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def _normalize_output(output: str) -> str:
    """CRLF line endings become '\\n' and one trailing newline is dropped; nothing else changes."""
    text = output.replace("\r\n", "\n")
    if text.endswith("\n"):
        text = text[:-1]
    return text


def run_process(
    cwd: Path,
    command: Sequence[str],
    timeout: Optional[int] = None,
) -> ProcessResult:
    """
    Execute a command and capture its combined stdout/stderr.

    Args:
        cwd: Working directory
        command: Command as list of strings (NO shell=True!)
        timeout: Seconds to wait before killing the process; None waits forever

    Returns:
        ProcessResult with exit code and captured text. A non-zero exit is
        reported, not interpreted.

    Raises:
        ProcessRunnerError: command is empty or a plain string
        OSError: the executable could not be started
    """
    if isinstance(command, str):
        raise ProcessRunnerError("Command must be a list, not a string")

    cmd = [str(part) for part in command]
    if not cmd:
        raise ProcessRunnerError("Command cannot be empty")

    start_time = datetime.now(timezone.utc)
    timed_out = False

    try:
        completed = subprocess.run(
            cmd,
            cwd=str(cwd),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            timeout=timeout,
            text=True,
            errors="replace",
        )
        output = completed.stdout or ""
        exit_code = completed.returncode

    except subprocess.TimeoutExpired as e:
        output = _decode(e.stdout)
        exit_code = -1
        timed_out = True
        logger.warning(f"command_timeout cmd={cmd[0]} timeout={timeout}")

    duration_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
    logger.info(f"command_done cmd={cmd[0]} exit_code={exit_code} duration_ms={duration_ms}")

    return ProcessResult(
        command=cmd,
        exit_code=exit_code,
        output=_normalize_output(output),
        duration_ms=duration_ms,
        timed_out=timed_out,
    )
