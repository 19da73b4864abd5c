"""
Access to the operating system's command-line tools.

Every external query and privileged action in the inventory goes through
CommandRunner, which runs a command to completion with a timeout and
returns its exit status and output instead of raising.
"""

import logging
import os
import subprocess
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

# Exit status reported when the executable itself could not be started
COMMAND_NOT_FOUND = 127


class CommandResult:
    """Exit status and captured output of one external command."""

    def __init__(self, args: Sequence[str], returncode: Optional[int],
                 stdout: str = "", stderr: str = "", timed_out: bool = False):
        self.args = list(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def __repr__(self) -> str:
        return (f"CommandResult(args={self.args!r}, returncode={self.returncode}, "
                f"timed_out={self.timed_out})")


class CommandRunner:
    """Runs external commands synchronously on the local host."""

    def __init__(self, timeout: Optional[float] = 30.0):
        """
        Args:
            timeout: Seconds to wait for each command; None waits forever
        """
        self.timeout = timeout

    def run(self, args: Sequence[str]) -> CommandResult:
        """
        Execute a command and wait for it to finish.

        The child is killed and reaped if it outlives the timeout, and a
        missing or non-executable binary is reported as a failed result.

        Args:
            args: Command and its arguments

        Returns:
            CommandResult: Exit status and decoded output
        """
        logger.debug("Running: %s", " ".join(args))
        try:
            completed = subprocess.run(list(args), capture_output=True, text=True,
                                       errors='replace', timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            logger.warning("Command timed out after %ss: %s", self.timeout, " ".join(args))
            return CommandResult(args, None, _as_text(e.stdout), _as_text(e.stderr),
                                 timed_out=True)
        except (FileNotFoundError, PermissionError) as e:
            logger.debug("Cannot execute %s: %s", args[0], e)
            return CommandResult(args, COMMAND_NOT_FOUND, "", str(e))

        if completed.returncode != 0:
            logger.debug("%s exited with status %d: %s", args[0], completed.returncode,
                         completed.stderr.strip())
        return CommandResult(args, completed.returncode, completed.stdout, completed.stderr)


def kernel_release() -> str:
    """Release string of the running kernel (as printed by uname -r)."""
    return os.uname().release


def privileged(prefix: Sequence[str], args: Sequence[str]) -> List[str]:
    """Prepend the privilege escalation prefix to a command."""
    return list(prefix) + list(args)


def _as_text(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode('utf-8', errors='replace')
    return data
