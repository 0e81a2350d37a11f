"""
Cache mode resolution — ecosystem shorthands to logical mounts.

Each mode token maps to a resolver. Introspected modes ask the tool
itself where its cache lives (``go env GOCACHE``, ``pip cache dir``);
fixed modes contribute well-known paths. The pnpm resolver also expands
the workspace: every member package's node_modules is mounted with
``wipe`` set, since it is rebuilt from the lockfile anyway.

A tool that fails to answer aborts the whole restore. An unknown token
only warns.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Callable, Optional, Sequence

from .errors import ToolIntrospectionError
from .jsonstream import parse_documents
from .models import CUSTOM_FRAMEWORK, CachePath
from .paths import path_in_cache, resolve_home
from .runner import CommandRunner

logger = logging.getLogger("cachemount.modes")

ModeResolver = Callable[[str, CommandRunner], list[CachePath]]


def _tool_output(mode: str, runner: CommandRunner, command: Sequence[str]) -> str:
    """Run an introspection command and return its trimmed stdout.

    Raises:
        ToolIntrospectionError: On non-zero exit or empty output.
    """
    result = runner.run(command)
    if not result.ok:
        detail = f"failed with exit code {result.exit_code}"
        if result.stderr.strip():
            detail = f"{detail}: {result.stderr.strip()}"
        raise ToolIntrospectionError(mode, command, detail)
    out = result.stdout.strip()
    if not out:
        raise ToolIntrospectionError(mode, command, "returned no output")
    return out


def _fixed(*targets: str) -> ModeResolver:
    def resolve(mode: str, runner: CommandRunner) -> list[CachePath]:
        return [CachePath(mount_target=t, framework=mode) for t in targets]

    return resolve


def _resolve_go(mode: str, runner: CommandRunner) -> list[CachePath]:
    go_cache = _tool_output(mode, runner, ["go", "env", "GOCACHE"])
    go_mod_cache = _tool_output(mode, runner, ["go", "env", "GOMODCACHE"])
    return [
        CachePath(mount_target=go_cache, framework=mode),
        CachePath(mount_target=go_mod_cache, framework=mode),
    ]


def _resolve_yarn(mode: str, runner: CommandRunner) -> list[CachePath]:
    version = _tool_output(mode, runner, ["yarn", "--version"])
    # Yarn classic and berry disagree on how to ask.
    if version.startswith("1."):
        yarn_cache = _tool_output(mode, runner, ["yarn", "cache", "dir"])
    else:
        yarn_cache = _tool_output(mode, runner, ["yarn", "config", "get", "cacheFolder"])
    return [CachePath(mount_target=yarn_cache, framework=mode)]


def _resolve_python(mode: str, runner: CommandRunner) -> list[CachePath]:
    pip_cache = _tool_output(mode, runner, ["pip", "cache", "dir"])
    return [CachePath(mount_target=pip_cache, framework=mode)]


def _resolve_pnpm(mode: str, runner: CommandRunner) -> list[CachePath]:
    store = _tool_output(mode, runner, ["pnpm", "store", "path"])
    paths = [CachePath(mount_target=store, framework=mode)]

    command = ["pnpm", "m", "ls", "--depth", "-1", "--json"]
    listing = _tool_output(mode, runner, command)
    try:
        documents = parse_documents(listing)
    except json.JSONDecodeError as exc:
        raise ToolIntrospectionError(mode, command, f"printed invalid JSON: {exc}") from exc

    for doc in documents:
        members = doc if isinstance(doc, list) else [doc]
        for entry in members:
            if isinstance(entry, dict) and entry.get("path"):
                paths.append(
                    CachePath(
                        mount_target=f"{entry['path']}/node_modules",
                        framework=mode,
                        wipe=True,
                    )
                )
    return paths


CACHE_MODES: dict[str, ModeResolver] = {
    "go": _resolve_go,
    "yarn": _resolve_yarn,
    "python": _resolve_python,
    "pnpm": _resolve_pnpm,
    # ~/.cargo/bin holds cargo itself; mounting over it would hide the toolchain.
    # .global-cache is the SQLite database behind cargo's cache cleaning.
    "rust": _fixed("~/.cargo/registry", "~/.cargo/git", "./target", "~/.cargo/.global-cache"),
    "gradle": _fixed("~/.gradle/caches", "~/.gradle/wrapper"),
    "maven": _fixed("~/.m2/repository"),
}


def supported_modes() -> list[str]:
    """Mode tokens this release understands."""
    return sorted(CACHE_MODES)


def resolve_cache_mode(
    mode: str,
    runner: CommandRunner,
    warn: Optional[Callable[[str], None]] = None,
) -> list[CachePath]:
    """Expand one mode token into logical mounts.

    Args:
        mode: Ecosystem token, e.g. ``go`` or ``pnpm``.
        runner: Used for tool introspection.
        warn: Receives the unknown-token warning. Defaults to the logger.

    Returns:
        list[CachePath]: Unresolved mounts; empty for an unknown token.

    Raises:
        ToolIntrospectionError: If the ecosystem tool cannot answer.
    """
    resolver = CACHE_MODES.get(mode)
    if resolver is None:
        (warn or logger.warning)(f"Unknown cache option: {mode}.")
        return []
    paths = resolver(mode, runner)
    logger.info("Cache mode '%s' resolved to %d path(s)", mode, len(paths))
    return paths


def resolve_cache_paths(
    volume_root: Optional[str],
    manual: Sequence[str],
    modes: Sequence[str],
    runner: CommandRunner,
    home: Optional[str] = None,
    warn: Optional[Callable[[str], None]] = None,
) -> list[CachePath]:
    """Build the full list of logical mounts for one restore.

    Manual paths come first, then modes in request order. A target
    requested twice is kept once, under its first requester.

    Args:
        volume_root: Cache volume root; when None, ``path_in_cache``
            stays unset (remote mode).
        manual: Paths given directly by the user.
        modes: Ecosystem mode tokens.
        runner: Used for tool introspection.
        home: Home directory for ``~`` expansion.
        warn: Receives warnings about unknown tokens.

    Returns:
        list[CachePath]: Resolved mounts.
    """
    requested = [CachePath(mount_target=p, framework=CUSTOM_FRAMEWORK) for p in manual]
    for mode in modes:
        requested.extend(resolve_cache_mode(mode, runner, warn))

    paths: list[CachePath] = []
    seen: set[str] = set()
    for p in requested:
        expanded = os.path.normpath(resolve_home(p.mount_target, home))
        if expanded in seen:
            logger.debug("Skipping duplicate cache path %s (%s)", p.mount_target, p.framework)
            continue
        seen.add(expanded)
        if volume_root is not None:
            p.path_in_cache = path_in_cache(volume_root, p.mount_target, home)
        paths.append(p)
    return paths
