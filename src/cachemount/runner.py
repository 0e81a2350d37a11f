"""
Command execution behind a narrow interface.

Ecosystem introspection and privileged filesystem operations both go
through a CommandRunner, so tests can swap in scripted results instead
of invoking real tools, sudo or mount.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol, Sequence

logger = logging.getLogger("cachemount.runner")

# Shell convention for "command not found".
EXIT_NOT_FOUND = 127


@dataclass
class CommandResult:
    """Captured outcome of one command.

    Attributes:
        stdout: Standard output, untrimmed.
        exit_code: Process exit status.
        stderr: Standard error.
    """

    stdout: str
    exit_code: int
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner(Protocol):
    """Anything that can run an argv list and capture its output."""

    def run(self, command: Sequence[str]) -> CommandResult:
        ...


class SubprocessRunner:
    """Run commands with :mod:`subprocess`.

    Calls block until the command exits. There is no timeout; the
    surrounding job's own timeout bounds a hung tool.
    """

    def run(self, command: Sequence[str]) -> CommandResult:
        """Run a command and capture output.

        Args:
            command: Command and arguments.

        Returns:
            CommandResult; a missing executable yields exit code 127.
        """
        argv = list(command)
        logger.debug("Running: %s", " ".join(argv))
        try:
            proc = subprocess.run(argv, capture_output=True, text=True, check=False)
        except FileNotFoundError as exc:
            return CommandResult(stdout="", exit_code=EXIT_NOT_FOUND, stderr=str(exc))
        return CommandResult(stdout=proc.stdout, exit_code=proc.returncode, stderr=proc.stderr)
