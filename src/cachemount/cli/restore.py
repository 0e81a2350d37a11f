"""Restore commands: restore, save, resolve."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from ._common import build_settings, cache_root_option, console, fail, request_options
from ..actions import JobContext
from ..errors import CacheMountError
from ..runner import SubprocessRunner


def _remote_options(func):
    options = [
        click.option("--key", "-k", default=None, help="Primary cache key (remote mode)."),
        click.option(
            "--remote-dir", default=None, type=click.Path(path_type=Path),
            help="Directory holding the remote cache store.",
        ),
        click.option(
            "--cross-os-archive", is_flag=True,
            help="Allow archives created on another OS.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def register_restore_commands(main: click.Group) -> None:
    """Register the restore, save and resolve commands."""

    @main.command("restore")
    @request_options
    @cache_root_option
    @_remote_options
    @click.option(
        "--restore-key", "restore_keys", multiple=True,
        help="Fallback key prefix, most specific first (remote mode).",
    )
    @click.option(
        "--fail-on-cache-miss", is_flag=True,
        help="Fail the step if any cache path is missing.",
    )
    @click.option(
        "--remote", is_flag=True,
        help="Restore from a remote store instead of the cache volume.",
    )
    @click.option(
        "--lookup-only", is_flag=True,
        help="Only check that a remote entry exists (remote mode).",
    )
    @click.option(
        "--download-concurrency", type=int, default=None,
        help="Parallel downloads hint for the remote store.",
    )
    @click.option(
        "--state-file", default=None, type=click.Path(dir_okay=False, path_type=Path),
        help="Where to leave state for the post step.",
    )
    def restore_cmd(
        paths, cache, config_file, cache_root, key, restore_keys, remote_dir,
        cross_os_archive, fail_on_cache_miss, remote, lookup_only,
        download_concurrency, state_file,
    ):
        """Restore caches for this job.

        \b
        Examples:

            cachemount restore --cache go --cache rust

            cachemount restore -p ~/.cache/tool --fail-on-cache-miss

            cachemount restore --remote --key deps-v1-abc --restore-key deps-v1-
        """
        from ..restore import restore

        job = JobContext.from_env(state_file)
        try:
            settings = build_settings(
                config_file,
                paths=paths,
                cache=cache,
                cache_root=cache_root,
                key=key,
                restore_keys=restore_keys,
                remote_dir=remote_dir,
                cross_os_archive=cross_os_archive or None,
                fail_on_cache_miss=fail_on_cache_miss or None,
                local_cache=False if remote else None,
                lookup_only=lookup_only or None,
                download_concurrency=download_concurrency,
            )
            result = restore(settings, SubprocessRunner(), job)
        except CacheMountError as exc:
            fail(exc)

        status = "[bold green]HIT[/]" if result.cache_hit else "[bold yellow]MISS[/]"
        console.print(f"Cache {status}  [dim]({len(result.paths)} path(s))[/]")

    @main.command("save")
    @request_options
    @_remote_options
    def save_cmd(paths, cache, config_file, key, remote_dir, cross_os_archive):
        """Save paths to the remote cache store under a key.

        \b
        Example:

            cachemount save --key deps-v1-abc -p ~/.m2/repository --remote-dir /mnt/cache
        """
        from ..restore import save

        try:
            settings = build_settings(
                config_file,
                paths=paths,
                cache=cache,
                key=key,
                remote_dir=remote_dir,
                cross_os_archive=cross_os_archive or None,
                local_cache=False,
            )
            saved = save(settings, SubprocessRunner())
        except CacheMountError as exc:
            fail(exc)

        if saved:
            console.print(f"[green]Cache saved with key:[/] {settings.key}")
        else:
            console.print(f"[yellow]Cache entry {settings.key} already exists, not saved.[/]")

    @main.command("resolve")
    @request_options
    @cache_root_option
    @click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
    def resolve_cmd(paths, cache, config_file, cache_root, as_json: bool):
        """Show which directories a restore would mount, without mounting.

        \b
        Example:

            cachemount resolve --cache go --cache pnpm --cache-root /cache
        """
        from ..modes import resolve_cache_paths

        try:
            settings = build_settings(config_file, paths=paths, cache=cache, cache_root=cache_root)
            root: Optional[str] = str(settings.cache_root) if settings.cache_root else None
            resolved = resolve_cache_paths(root, settings.paths, settings.cache, SubprocessRunner())
        except CacheMountError as exc:
            fail(exc)

        if as_json:
            click.echo(json.dumps([p.model_dump(by_alias=True) for p in resolved], indent=2))
            return

        table = Table(title="Cache paths")
        table.add_column("Mount target")
        table.add_column("Framework", style="cyan")
        table.add_column("In cache", style="dim")
        table.add_column("Wipe")
        for p in resolved:
            table.add_row(p.mount_target, p.framework, p.path_in_cache or "—", "yes" if p.wipe else "")
        console.print(table)
