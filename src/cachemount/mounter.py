"""
Mount orchestration — put cache volume content in place.

For every logical mount:

    CHECK_EXISTS -> [WIPE] -> ENSURE_DIRS -> BIND_MOUNT

A path missing from the volume before anything is touched is a miss.
Mount targets under directories the job user does not own (``/opt``,
``/usr/local``) are created through sudo and handed back to the user,
so the job can write into them afterwards. Nothing is unmounted: the
mounts live as long as the ephemeral runner.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Sequence

from .errors import FilesystemError, MountError
from .models import CachePath
from .paths import ancestors, resolve_home
from .runner import CommandRunner

logger = logging.getLogger("cachemount.mounter")


class MountOrchestrator:
    """Bind-mounts cache volume directories over their mount targets.

    Args:
        runner: Executes sudo, chown and mount.
        home: Home directory for ``~`` expansion. Defaults to $HOME.
        uid: Owner for directories created with sudo. Defaults to the
            current user.
        gid: Group for directories created with sudo.
    """

    def __init__(
        self,
        runner: CommandRunner,
        home: Optional[str] = None,
        uid: Optional[int] = None,
        gid: Optional[int] = None,
    ):
        self.runner = runner
        self.home = home
        self.uid = os.getuid() if uid is None else uid
        self.gid = os.getgid() if gid is None else gid

    def restore(self, paths: Sequence[CachePath]) -> list[str]:
        """Mount every path and report the misses.

        Args:
            paths: Mounts resolved against the cache volume.

        Returns:
            list[str]: Mount targets that were absent from the volume.

        Raises:
            FilesystemError: If a directory cannot be created or wiped.
            MountError: If a sudo step or a mount fails.
        """
        misses: list[str] = []
        for p in paths:
            if p.path_in_cache is None:
                raise ValueError(f"Cache path {p.mount_target} was not resolved against a volume")

            if not os.path.exists(p.path_in_cache):
                logger.info("Cache miss: %s", p.mount_target)
                misses.append(p.mount_target)

            if p.wipe:
                self.wipe(p.path_in_cache)

            target = resolve_home(p.mount_target, self.home)
            self.ensure_target(target)
            try:
                Path(p.path_in_cache).mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FilesystemError("create cache directory", p.path_in_cache, exc) from exc
            self.bind_mount(p.path_in_cache, target)
        return misses

    def wipe(self, path: str) -> None:
        """Remove a regenerable directory tree from the volume."""
        if not os.path.lexists(path):
            return
        logger.info("Wiping %s", path)
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
        except OSError as exc:
            raise FilesystemError("wipe", path, exc) from exc

    def ensure_target(self, target: str) -> None:
        """Create a mount target, escalating when the parent is not ours.

        Raises:
            FilesystemError: If the target cannot be a directory, e.g.
                it or one of its ancestors is a regular file.
            MountError: If the sudo fallback fails.
        """
        try:
            Path(target).mkdir(parents=True, exist_ok=True)
        except PermissionError:
            logger.debug("No permission to create %s, retrying with sudo", target)
            self.sudo_mkdir_p(target)
        except OSError as exc:
            raise FilesystemError("create mount target", target, exc) from exc

    def sudo_mkdir_p(self, path: str) -> None:
        """Create ``path`` and its missing ancestors as root, owned by the user.

        A directory that shows up between the check and ``sudo mkdir``
        (another process created it) is accepted.

        Raises:
            MountError: If mkdir fails for any other reason, or chown fails.
        """
        owner = f"{self.uid}:{self.gid}"
        for p in ancestors(path):
            if os.path.exists(p):
                logger.debug("%s already exists", p)
                continue

            command = ["sudo", "mkdir", p]
            result = self.runner.run(command)
            if not result.ok:
                # mkdir exits 1 for EEXIST as for everything else.
                if os.path.exists(p):
                    logger.debug("%s was concurrently created", p)
                    continue
                raise MountError(command, result.exit_code, result.stderr)

            command = ["sudo", "chown", owner, p]
            result = self.runner.run(command)
            if not result.ok:
                raise MountError(command, result.exit_code, result.stderr)

    def bind_mount(self, source: str, target: str) -> None:
        """Overlay ``target`` with ``source``."""
        command = ["sudo", "mount", "--bind", source, target]
        result = self.runner.run(command)
        if not result.ok:
            raise MountError(command, result.exit_code, result.stderr)
        logger.info("Mounted %s -> %s", source, target)
