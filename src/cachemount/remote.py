"""
Remote cache stores and cache key resolution.

A restore asks for a primary key plus an ordered list of restore-key
prefixes. The exact key wins; otherwise the first prefix that matches
anything picks its most recent entry. Entries are further scoped by a
version hash of the requested paths, so an archive of ``~/.m2`` is never
offered to a job asking for ``~/.gradle``.

Backends:

DirectoryBackend: Archives and an index in a plain directory (NFS
share, mounted bucket, local disk).
"""

from __future__ import annotations

import hashlib
import json
import logging
import platform
import tarfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from .errors import ConfigurationError, RemoteStoreError
from .models import CacheEntry, CacheKeyResolution

logger = logging.getLogger("cachemount.remote")

COMPRESSION_METHOD = "gzip"
INDEX_FILE_NAME = "index.json"
MAX_KEY_LENGTH = 512

_entries_adapter = TypeAdapter(list[CacheEntry])


@dataclass
class RestoreOptions:
    """Tuning for a remote restore.

    Attributes:
        lookup_only: Resolve the key without downloading anything.
        cross_os_archive: Allow archives created on another OS.
        download_concurrency: Parallel download hint, if the backend
            supports it.
    """

    lookup_only: bool = False
    cross_os_archive: bool = False
    download_concurrency: Optional[int] = None


def cache_version(paths: Sequence[str], cross_os_archive: bool = False) -> str:
    """Version hash scoping entries to a set of paths.

    Windows archives are not portable unless explicitly allowed, so the
    Windows marker is part of the hash unless cross-OS is enabled.
    """
    components = list(paths) + [COMPRESSION_METHOD]
    if platform.system() == "Windows" and not cross_os_archive:
        components.append("windows-only")
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()


def validate_key(key: str) -> None:
    """Reject keys the stores cannot hold.

    Raises:
        ConfigurationError: For empty, overlong or comma-containing keys.
    """
    if not key:
        raise ConfigurationError("Cache key must not be empty.")
    if len(key) > MAX_KEY_LENGTH:
        raise ConfigurationError(
            f"Key Validation Error: {key} cannot be larger than {MAX_KEY_LENGTH} characters."
        )
    if "," in key:
        raise ConfigurationError(f"Key Validation Error: {key} cannot contain commas.")


class CacheBackend(ABC):
    """Abstract key-addressed cache store."""

    @abstractmethod
    def get_entry(self, key: str, version: str) -> Optional[CacheEntry]:
        """Entry stored under exactly ``key``, or None."""

    @abstractmethod
    def list_entries(self, prefix: str, version: str) -> list[CacheEntry]:
        """Entries whose key starts with ``prefix``, most recent first."""

    @abstractmethod
    def restore(self, entry: CacheEntry, paths: Sequence[str], options: RestoreOptions) -> None:
        """Extract an entry's archive into ``paths``.

        Raises:
            RemoteStoreError: If the archive is missing or unreadable.
        """

    @abstractmethod
    def save(self, key: str, version: str, paths: Sequence[str]) -> Optional[CacheEntry]:
        """Archive ``paths`` under ``key``. None if the key already exists."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""


def resolve_cache_key(
    backend: CacheBackend,
    primary_key: str,
    restore_keys: Sequence[str],
    version: str,
) -> CacheKeyResolution:
    """Find the most specific entry for a key and its fallbacks.

    Args:
        backend: Store to search.
        primary_key: Exact key wanted.
        restore_keys: Prefixes to fall back on, in priority order.
        version: Path-set version the entry must carry.

    Returns:
        CacheKeyResolution: ``matched_key`` is None when nothing matched.
    """
    resolution = CacheKeyResolution(primary_key=primary_key, restore_keys=list(restore_keys))

    exact = backend.get_entry(primary_key, version)
    if exact is not None:
        resolution.matched_key = exact.key
        return resolution

    for prefix in restore_keys:
        candidates = backend.list_entries(prefix, version)
        if candidates:
            resolution.matched_key = candidates[0].key
            logger.info("Restore key '%s' matched %s", prefix, candidates[0].key)
            return resolution

    return resolution


class DirectoryBackend(CacheBackend):
    """Cache store kept in a directory.

    Layout::

        <root>/
        ├── index.json          # list of CacheEntry
        └── <sha256>.tar.gz     # one archive per key + version

    Inside an archive, path ``i`` of the saved path list is stored
    under the member prefix ``i/``.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def name(self) -> str:
        return "directory"

    @property
    def index_path(self) -> Path:
        return self.root / INDEX_FILE_NAME

    def _load_index(self) -> list[CacheEntry]:
        if not self.index_path.exists():
            return []
        try:
            raw = self.index_path.read_bytes()
        except OSError as exc:
            raise RemoteStoreError(f"Cannot read cache index {self.index_path}: {exc}") from exc
        try:
            return _entries_adapter.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Ignoring corrupt cache index %s: %s", self.index_path, exc)
            return []

    def _write_index(self, entries: list[CacheEntry]) -> None:
        data = [e.model_dump(mode="json", by_alias=True) for e in entries]
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self.index_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as exc:
            raise RemoteStoreError(f"Cannot write cache index {self.index_path}: {exc}") from exc

    def get_entry(self, key: str, version: str) -> Optional[CacheEntry]:
        for entry in self._load_index():
            if entry.key == key and entry.version == version:
                return entry
        return None

    def list_entries(self, prefix: str, version: str) -> list[CacheEntry]:
        # Later index position breaks timestamp ties: it was appended last.
        matches = [
            (e.created_at, i, e) for i, e in enumerate(self._load_index())
            if e.key.startswith(prefix) and e.version == version
        ]
        return [e for _, _, e in sorted(matches, key=lambda m: m[:2], reverse=True)]

    def restore(self, entry: CacheEntry, paths: Sequence[str], options: RestoreOptions) -> None:
        if options.download_concurrency:
            logger.debug(
                "Download concurrency %d ignored by %s backend",
                options.download_concurrency, self.name,
            )
        archive = self.root / entry.archive
        try:
            with tarfile.open(archive, "r:gz") as tar:
                self._extract(tar, paths)
        except (OSError, tarfile.TarError) as exc:
            raise RemoteStoreError(f"Cannot restore {entry.key} from {archive}: {exc}") from exc
        logger.info("Restored %s from %s", entry.key, archive)

    @staticmethod
    def _extract(tar: tarfile.TarFile, paths: Sequence[str]) -> None:
        for member in tar.getmembers():
            index, _, rel = member.name.partition("/")
            if not index.isdigit() or int(index) >= len(paths):
                continue
            target = Path(paths[int(index)])
            if not rel:
                # The cached path itself: a directory root, or a single file.
                if member.isdir():
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                member.name = target.name
                tar.extract(member, target.parent, filter="data")
                continue
            target.mkdir(parents=True, exist_ok=True)
            member.name = rel
            tar.extract(member, target, filter="data")

    def save(self, key: str, version: str, paths: Sequence[str]) -> Optional[CacheEntry]:
        entries = self._load_index()
        if any(e.key == key and e.version == version for e in entries):
            logger.warning("Cache entry %s already exists, not saving", key)
            return None

        digest = hashlib.sha256(f"{key}|{version}".encode("utf-8")).hexdigest()
        archive = self.root / f"{digest}.tar.gz"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with tarfile.open(archive, "w:gz") as tar:
                for i, p in enumerate(paths):
                    if Path(p).exists():
                        tar.add(p, arcname=str(i))
                    else:
                        logger.warning("Path %s does not exist, not archived", p)
            size = archive.stat().st_size
        except (OSError, tarfile.TarError) as exc:
            raise RemoteStoreError(f"Cannot save {key} to {archive}: {exc}") from exc

        entry = CacheEntry(
            key=key,
            version=version,
            archive=archive.name,
            paths=list(paths),
            created_at=datetime.now(timezone.utc),
            size=size,
        )
        entries.append(entry)
        self._write_index(entries)
        logger.info("Saved %s to %s", key, archive)
        return entry
