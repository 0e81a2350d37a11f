"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the options every restore-like
command takes, and the top-level error report.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, NoReturn, Optional

import click
from rich.console import Console
from rich.markup import escape

from .. import CACHE_ROOT_ENV
from ..config import RestoreSettings, load_settings
from ..errors import CacheMountError

console = Console()


def request_options(func: Callable) -> Callable:
    """Options describing which paths to cache."""
    options = [
        click.option(
            "--path", "-p", "paths", multiple=True,
            help="Path to cache. Repeat or separate with newlines.",
        ),
        click.option(
            "--cache", "-c", "cache", multiple=True,
            help="Ecosystem cache mode (go, yarn, python, pnpm, rust, gradle, maven).",
        ),
        click.option(
            "--config", "config_file", default=None, type=click.Path(dir_okay=False, path_type=Path),
            help="YAML file with restore settings.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


cache_root_option = click.option(
    "--cache-root", default=None, type=click.Path(path_type=Path),
    help=f"Cache volume root. Defaults to ${CACHE_ROOT_ENV}.",
)


def build_settings(config_file: Optional[Path], **overrides: Any) -> RestoreSettings:
    """Load settings, turning CLI tuples into lists."""
    cleaned = {
        k: (list(v) if isinstance(v, tuple) and v else v) for k, v in overrides.items()
    }
    return load_settings(config_file, **cleaned)


def fail(exc: CacheMountError) -> NoReturn:
    """Report a fatal error and end the step with a failure status."""
    console.print(f"[bold red]Error:[/] {escape(str(exc))}")
    raise SystemExit(1)
