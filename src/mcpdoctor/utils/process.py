# ABOUTME: Bounded subprocess execution for probes and version queries
# ABOUTME: Failures come back as a CommandResult status, never as exceptions
import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

CommandStatus = Literal["ok", "not_found", "timeout", "failed"]


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command.

    ABOUTME: status is "ok" only when the process exited with code 0
    """
    status: CommandStatus
    stdout: str = ""
    stderr: str = ""
    returncode: int | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def first_line(self) -> str:
        """First non-empty line of stdout (falling back to stderr)."""
        for text in (self.stdout, self.stderr):
            for line in text.splitlines():
                if line.strip():
                    return line.strip()
        return ""


def run_command(cmd: Sequence[str], timeout: float) -> CommandResult:
    """Run a command with a hard timeout and capture its output.

    Args:
        cmd: Program and arguments
        timeout: Seconds before the process is killed

    Returns:
        CommandResult describing what happened
    """
    try:
        completed = subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            timeout=timeout,
            stdin=subprocess.DEVNULL,
        )
    except FileNotFoundError:
        return CommandResult(status="not_found")
    except subprocess.TimeoutExpired:
        logger.debug(f"Command timed out after {timeout}s: {cmd[0]}")
        return CommandResult(status="timeout")
    except OSError as e:
        logger.debug(f"Command failed to start: {cmd[0]}: {e}")
        return CommandResult(status="failed", stderr=str(e))

    status: CommandStatus = "ok" if completed.returncode == 0 else "failed"
    return CommandResult(
        status=status,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        returncode=completed.returncode,
    )


def command_version(cmd: str, timeout: float, flag: str = "--version") -> str | None:
    """Return the first line of `cmd --version`, or None if unavailable."""
    result = run_command([cmd, flag], timeout)
    if not result.ok:
        return None
    return result.first_line() or None
