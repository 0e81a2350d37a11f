"""
Cache restore — the request phase of a job.

Local mode bind-mounts cache volume directories over the requested
paths and records the request in the volume metadata. Remote mode
resolves a key against a cache store and extracts the matching archive.

Usage:
    from cachemount.restore import restore
    result = restore(settings, runner, job)
    result.cache_hit
"""

from __future__ import annotations

import logging
from typing import Optional

from rich import filesize

from . import ACTION_VERSION
from .actions import OUTPUT_CACHE_HIT, OUTPUT_MATCHED_KEY, JobContext
from .config import RestoreSettings
from .errors import CacheMissError, ConfigurationError, MetadataError
from .metadata import record_user_request, volume_usage
from .models import CachePath, Handoff, RestoreResult
from .modes import resolve_cache_paths
from .mounter import MountOrchestrator
from .paths import resolve_home
from .remote import (
    CacheBackend,
    DirectoryBackend,
    RestoreOptions,
    cache_version,
    resolve_cache_key,
    validate_key,
)
from .runner import CommandRunner

logger = logging.getLogger("cachemount.restore")


def restore(
    settings: RestoreSettings,
    runner: CommandRunner,
    job: JobContext,
    home: Optional[str] = None,
    backend: Optional[CacheBackend] = None,
    mounter: Optional[MountOrchestrator] = None,
) -> RestoreResult:
    """Restore caches in the mode the settings select.

    Any handoff left in the state file by an earlier run is removed
    first, so the post step only ever sees mounts made by this restore.

    Raises:
        ConfigurationError: Missing volume, key or backend.
        ToolIntrospectionError: An ecosystem tool could not answer.
        MountError: A sudo step or mount failed.
        FilesystemError: A directory or the state file could not be set up.
        RemoteStoreError: The remote archive could not be read.
        CacheMissError: Something was missing and fail-on-cache-miss is set.
    """
    job.clear_handoff()
    if settings.local_cache:
        return restore_local(settings, runner, job, home=home, mounter=mounter)
    return restore_remote(settings, runner, job, home=home, backend=backend)


def restore_local(
    settings: RestoreSettings,
    runner: CommandRunner,
    job: JobContext,
    home: Optional[str] = None,
    mounter: Optional[MountOrchestrator] = None,
) -> RestoreResult:
    """Bind-mount the requested paths from the cache volume."""
    volume_root = str(settings.require_cache_root())
    logger.info("Found cross-invocation cache at %s.", volume_root)

    paths = resolve_cache_paths(
        volume_root, settings.paths, settings.cache, runner, home, warn=job.warning,
    )
    mounter = mounter or MountOrchestrator(runner, home=home)
    misses = mounter.restore(paths)

    full_hit = not misses
    job.set_output(OUTPUT_CACHE_HIT, full_hit)

    if not full_hit:
        message = f"Some cache paths missing: {', '.join(misses)}."
        job.warning(message)
        if settings.fail_on_cache_miss:
            raise CacheMissError(message, keys=misses)
    else:
        logger.info("All cache paths found and restored.")

    _update_metadata(volume_root, paths, job)
    job.save_handoff(Handoff(volume_root=volume_root, paths=paths))
    report_volume_usage(volume_root, job)

    return RestoreResult(cache_hit=full_hit, misses=misses, paths=paths)


def _update_metadata(volume_root: str, paths: list[CachePath], job: JobContext) -> None:
    try:
        record_user_request(volume_root, paths, ACTION_VERSION)
    except MetadataError as exc:
        job.warning(f"Failed to update cache metadata: {exc}")


def report_volume_usage(volume_root: str, job: JobContext) -> None:
    """Log how full the cache volume is."""
    try:
        usage = volume_usage(volume_root)
    except OSError as exc:
        logger.warning("Could not query cache volume usage: %s", exc)
        return
    job.echo(
        f"Total available cache space is {filesize.decimal(usage.total)}, "
        f"and {filesize.decimal(usage.used)} have been used."
    )


def remote_backend(settings: RestoreSettings) -> CacheBackend:
    """Backend for remote mode.

    Raises:
        ConfigurationError: If no remote store is configured.
    """
    if settings.remote_dir is None:
        raise ConfigurationError(
            "Remote cache store not configured. Pass --remote-dir or set CACHEMOUNT_REMOTE_DIR."
        )
    return DirectoryBackend(settings.remote_dir)


def restore_remote(
    settings: RestoreSettings,
    runner: CommandRunner,
    job: JobContext,
    home: Optional[str] = None,
    backend: Optional[CacheBackend] = None,
) -> RestoreResult:
    """Restore the best-matching archive from a key-addressed store."""
    if not settings.key:
        raise ConfigurationError("Input required and not supplied: key")
    validate_key(settings.key)
    for restore_key in settings.restore_keys:
        validate_key(restore_key)

    paths = resolve_cache_paths(
        None, settings.paths, settings.cache, runner, home, warn=job.warning,
    )
    if not paths:
        raise ConfigurationError(
            "Path Validation Error: at least one path or cache mode is required."
        )
    targets = [resolve_home(p.mount_target, home) for p in paths]
    backend = backend or remote_backend(settings)
    version = cache_version(targets, settings.cross_os_archive)

    resolution = resolve_cache_key(backend, settings.key, settings.restore_keys, version)
    searched = ", ".join(resolution.searched_keys)

    if resolution.matched_key is None:
        if settings.fail_on_cache_miss:
            raise CacheMissError(
                "Failed to restore cache entry. Exiting as fail-on-cache-miss is set. "
                f"Input keys: {searched}",
                keys=resolution.searched_keys,
            )
        job.echo(f"Cache not found for input keys: {searched}")
        job.set_output(OUTPUT_CACHE_HIT, False)
        return RestoreResult(cache_hit=False, paths=paths)

    options = RestoreOptions(
        lookup_only=settings.lookup_only,
        cross_os_archive=settings.cross_os_archive,
        download_concurrency=settings.download_concurrency,
    )
    if options.lookup_only:
        job.echo(f"Cache found and can be restored from key: {resolution.matched_key}")
    else:
        entry = backend.get_entry(resolution.matched_key, version)
        backend.restore(entry, targets, options)
        job.echo(f"Cache restored from key: {resolution.matched_key}")

    job.set_output(OUTPUT_CACHE_HIT, resolution.exact_match)
    job.set_output(OUTPUT_MATCHED_KEY, resolution.matched_key)
    return RestoreResult(
        cache_hit=resolution.exact_match,
        matched_key=resolution.matched_key,
        paths=paths,
    )


def save(
    settings: RestoreSettings,
    runner: CommandRunner,
    home: Optional[str] = None,
    backend: Optional[CacheBackend] = None,
) -> bool:
    """Store the requested paths in the remote store under ``settings.key``.

    Returns:
        bool: False if an entry with that key already exists.
    """
    if not settings.key:
        raise ConfigurationError("Input required and not supplied: key")
    validate_key(settings.key)

    paths = resolve_cache_paths(None, settings.paths, settings.cache, runner, home)
    if not paths:
        raise ConfigurationError(
            "Path Validation Error: at least one path or cache mode is required."
        )
    targets = [resolve_home(p.mount_target, home) for p in paths]
    backend = backend or remote_backend(settings)
    entry = backend.save(settings.key, cache_version(targets, settings.cross_os_archive), targets)
    return entry is not None
