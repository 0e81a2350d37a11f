"""Post-job command: record cache usage."""

from __future__ import annotations

from pathlib import Path

import click

from ._common import console, fail
from ..actions import JobContext
from ..errors import CacheMountError
from ..runner import SubprocessRunner


def register_post_commands(main: click.Group) -> None:
    """Register the post command."""

    @main.command("post")
    @click.option(
        "--state-file", default=None, type=click.Path(dir_okay=False, path_type=Path),
        help="State left by the restore step.",
    )
    def post_cmd(state_file):
        """Record how much space the restored caches use.

        Run once at the end of the job, after the restore step.

        \b
        Example:

            cachemount post
        """
        from ..post import record_post_execution

        job = JobContext.from_env(state_file)
        try:
            metadata = record_post_execution(job, SubprocessRunner())
        except CacheMountError as exc:
            fail(exc)

        if metadata is not None:
            console.print(
                f"[green]Recorded usage for {len(metadata.post_execution.usage)} path(s).[/]"
            )
