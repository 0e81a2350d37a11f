"""
cachemount CLI — cache restore steps for CI jobs.

The main Click group is defined here; each command group lives in its
own module and is attached through a register function.

Entry point: cachemount.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="cachemount")
@click.option("--verbose", "-v", is_flag=True, help="Log progress messages.")
@click.option("--debug", is_flag=True, help="Log every command that is run.")
def main(verbose: bool, debug: bool):
    """cachemount — restore build caches from a cache volume or store.

    \b
    Restore:  cachemount restore --cache go --path ~/.cache/custom
    Post:     cachemount post
    """
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s: %(message)s")


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .restore import register_restore_commands
from .post import register_post_commands
from .metadata import register_metadata_commands

register_restore_commands(main)
register_post_commands(main)
register_metadata_commands(main)
