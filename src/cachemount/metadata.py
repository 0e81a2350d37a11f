"""
Cache volume metadata — who asked for what, and how big it got.

The document lives at ``<volume>/.ns/cache-metadata.json`` and survives
across jobs. The restore step records each requested path under
``userRequest``; the post step records measured sizes under
``postExecution.usage``. Each phase reads, updates and rewrites the
whole document. There is no lock: one job at a time owns a volume.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from .errors import MetadataError
from .models import CacheMetadata, CacheMount, CachePath, VolumeUsage
from .runner import CommandRunner

logger = logging.getLogger("cachemount.metadata")

PRIVATE_NAMESPACE_DIR = ".ns"
METADATA_FILE_NAME = "cache-metadata.json"
METADATA_VERSION = 1


def metadata_path(volume_root: str | Path) -> Path:
    """Where the metadata document lives inside a volume."""
    return Path(volume_root) / PRIVATE_NAMESPACE_DIR / METADATA_FILE_NAME


def ensure_cache_metadata(volume_root: str | Path) -> CacheMetadata:
    """Load the metadata document, creating its directory if needed.

    Args:
        volume_root: Cache volume root.

    Returns:
        CacheMetadata: The stored document, or an empty one if none exists.

    Raises:
        MetadataError: If the directory cannot be created or the file
            is unreadable or malformed.
    """
    path = metadata_path(volume_root)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if not path.exists():
            return CacheMetadata()
        raw = path.read_bytes()
    except OSError as exc:
        raise MetadataError(f"Cannot read cache metadata {path}: {exc}") from exc

    # Bytes, so that invalid UTF-8 surfaces as a ValidationError too.
    try:
        return CacheMetadata.model_validate_json(raw)
    except ValidationError as exc:
        raise MetadataError(f"Malformed cache metadata {path}: {exc}") from exc


def write_cache_metadata(volume_root: str | Path, metadata: CacheMetadata) -> Path:
    """Overwrite the metadata document.

    Raises:
        MetadataError: If the file cannot be written.
    """
    path = metadata_path(volume_root)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        created = not path.exists()
        path.write_text(
            metadata.model_dump_json(by_alias=True, exclude_none=True), encoding="utf-8"
        )
        if created:
            # Jobs may run as different users against the same volume.
            os.chmod(path, 0o666)
    except OSError as exc:
        raise MetadataError(f"Cannot write cache metadata {path}: {exc}") from exc
    return path


def record_user_request(
    volume_root: str | Path, paths: Sequence[CachePath], source: str
) -> CacheMetadata:
    """Record the paths requested by this restore.

    An existing entry for the same in-volume path is replaced; all
    other entries are kept.

    Raises:
        MetadataError: If the document cannot be read or written.
    """
    metadata = ensure_cache_metadata(volume_root)
    metadata.touch()
    metadata.version = METADATA_VERSION

    for p in paths:
        if p.path_in_cache is None:
            continue
        metadata.user_request[p.path_in_cache] = CacheMount(
            source=source,
            cache_framework=p.framework,
            mount_target=[p.mount_target],
        )

    write_cache_metadata(volume_root, metadata)
    return metadata


def directory_size(path: str, runner: CommandRunner) -> Optional[int]:
    """Apparent size of a directory tree in bytes, via ``du -sb``."""
    result = runner.run(["du", "-sb", path])
    if not result.ok:
        logger.warning("Could not measure %s: %s", path, result.stderr.strip())
        return None
    try:
        return int(result.stdout.split()[0])
    except (IndexError, ValueError):
        logger.warning("Unexpected du output for %s: %r", path, result.stdout)
        return None


def record_usage(
    volume_root: str | Path, paths: Sequence[CachePath], runner: CommandRunner
) -> CacheMetadata:
    """Record how much space each mounted path uses after the job.

    Raises:
        MetadataError: If the document cannot be read or written.
    """
    metadata = ensure_cache_metadata(volume_root)
    metadata.touch()

    for p in paths:
        if p.path_in_cache is None:
            continue
        size = directory_size(p.path_in_cache, runner)
        if size is not None:
            metadata.post_execution.usage[p.path_in_cache] = size

    write_cache_metadata(volume_root, metadata)
    return metadata


def volume_usage(volume_root: str | Path) -> VolumeUsage:
    """Total and used space of the filesystem holding the volume."""
    usage = shutil.disk_usage(volume_root)
    return VolumeUsage(total=usage.total, used=usage.used, free=usage.free)

