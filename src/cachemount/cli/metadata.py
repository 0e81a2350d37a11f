"""Metadata command: show the cache volume's bookkeeping document."""

from __future__ import annotations

from pathlib import Path

import click
from rich import filesize
from rich.panel import Panel
from rich.table import Table

from ._common import console, fail
from .. import CACHE_ROOT_ENV
from ..errors import CacheMountError, ConfigurationError


def register_metadata_commands(main: click.Group) -> None:
    """Register the metadata command."""

    @main.command("metadata")
    @click.option(
        "--cache-root", envvar=CACHE_ROOT_ENV, default=None, type=click.Path(path_type=Path),
        help=f"Cache volume root. Defaults to ${CACHE_ROOT_ENV}.",
    )
    @click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
    def metadata_cmd(cache_root, as_json: bool):
        """Show what the cache volume holds and who requested it.

        \b
        Example:

            cachemount metadata --json
        """
        from ..metadata import ensure_cache_metadata

        try:
            if cache_root is None:
                raise ConfigurationError(
                    f"No cache volume given. Pass --cache-root or set ${CACHE_ROOT_ENV}."
                )
            metadata = ensure_cache_metadata(cache_root)
        except CacheMountError as exc:
            fail(exc)

        if as_json:
            click.echo(metadata.model_dump_json(by_alias=True, exclude_none=True, indent=2))
            return

        usage = metadata.post_execution.usage
        table = Table(show_header=True, box=None, padding=(0, 2))
        table.add_column("Path in cache")
        table.add_column("Framework", style="cyan")
        table.add_column("Mount target", style="dim")
        table.add_column("Size", justify="right")
        for path, mount in sorted(metadata.user_request.items()):
            size = usage.get(path)
            table.add_row(
                path,
                mount.cache_framework,
                ", ".join(mount.mount_target),
                filesize.decimal(size) if size is not None else "[dim]—[/]",
            )

        title = f"[bold]Cache volume {cache_root}[/]"
        if metadata.updated_at:
            title += f" [dim](updated {metadata.updated_at})[/]"
        console.print()
        console.print(Panel(table, title=title, border_style="cyan"))
        console.print()
