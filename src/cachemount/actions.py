"""
CI job plumbing: step outputs, annotations and the phase handoff.

Outputs are appended to the file named by ``$GITHUB_OUTPUT`` when the
runner provides one. The handoff file carries the mount set from the
restore step to the post step of the same job; the post step never
re-derives it from the environment.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import click
from pydantic import ValidationError

from . import STATE_FILE_ENV
from .errors import ConfigurationError, FilesystemError
from .models import Handoff

logger = logging.getLogger("cachemount.actions")

OUTPUT_CACHE_HIT = "cache-hit"
OUTPUT_MATCHED_KEY = "cache-matched-key"
STATE_FILE_NAME = "cachemount-state.json"


def default_state_file() -> Path:
    """Handoff location: $CACHEMOUNT_STATE_FILE, else the job's temp dir."""
    explicit = os.environ.get(STATE_FILE_ENV)
    if explicit:
        return Path(explicit)
    temp = os.environ.get("RUNNER_TEMP") or tempfile.gettempdir()
    return Path(temp) / STATE_FILE_NAME


@dataclass
class JobContext:
    """Where a step's outputs and state go.

    Attributes:
        output_file: File receiving ``name=value`` output lines, if any.
        state_file: Handoff file shared by the restore and post steps.
        echo: Line sink for annotations; ``click.echo`` by default.
        outputs: Every output set during this run.
    """

    output_file: Optional[Path] = None
    state_file: Path = field(default_factory=default_state_file)
    echo: Callable[[str], None] = click.echo
    outputs: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, state_file: Optional[Path] = None) -> "JobContext":
        output = os.environ.get("GITHUB_OUTPUT")
        return cls(
            output_file=Path(output) if output else None,
            state_file=state_file or default_state_file(),
        )

    def set_output(self, name: str, value: object) -> None:
        """Publish a step output."""
        text = str(value).lower() if isinstance(value, bool) else str(value)
        self.outputs[name] = text
        logger.debug("Output %s=%s", name, text)
        if self.output_file is not None:
            with self.output_file.open("a", encoding="utf-8") as fh:
                fh.write(f"{name}={text}\n")

    def warning(self, message: str) -> None:
        """Log a warning and raise a job annotation for it."""
        logger.warning(message)
        self.echo(f"::warning::{message}")

    def save_handoff(self, handoff: Handoff) -> Path:
        """Persist the mount set for the post step.

        Raises:
            FilesystemError: If the handoff file cannot be written.
        """
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            self.state_file.write_text(handoff.model_dump_json(by_alias=True), encoding="utf-8")
        except OSError as exc:
            raise FilesystemError("write restore state", self.state_file, exc) from exc
        logger.debug("Saved %d path(s) to %s", len(handoff.paths), self.state_file)
        return self.state_file

    def clear_handoff(self) -> None:
        """Forget the mount set of an earlier restore in the same state file."""
        try:
            self.state_file.unlink(missing_ok=True)
        except OSError as exc:
            raise FilesystemError("remove stale restore state", self.state_file, exc) from exc

    def load_handoff(self) -> Optional[Handoff]:
        """Read the mount set saved by the restore step.

        Returns:
            Handoff, or None when no restore step ran in this job.

        Raises:
            ConfigurationError: If the handoff file is unreadable or corrupt.
        """
        if not self.state_file.exists():
            return None
        try:
            return Handoff.model_validate_json(self.state_file.read_bytes())
        except (OSError, ValidationError) as exc:
            raise ConfigurationError(
                f"Corrupt restore state in {self.state_file}: {exc}"
            ) from exc
