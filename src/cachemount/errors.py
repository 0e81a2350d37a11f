"""
Error types for cachemount.

Every failure that should stop a restore derives from CacheMountError,
so the CLI can report it with one handler and exit non-zero.
MetadataError is the exception: callers catch it and only warn.
"""

from __future__ import annotations

from typing import Optional, Sequence


class CacheMountError(Exception):
    """Base exception for all cachemount errors."""


class ConfigurationError(CacheMountError):
    """Required configuration is missing or invalid."""


class ToolIntrospectionError(CacheMountError):
    """An ecosystem tool could not report its cache location."""

    def __init__(self, mode: str, command: Sequence[str], detail: str):
        self.mode = mode
        self.command = list(command)
        super().__init__(
            f"Cache mode '{mode}': '{' '.join(self.command)}' {detail}"
        )


class MountError(CacheMountError):
    """Directory creation or bind mount failed."""

    def __init__(self, command: Sequence[str], exit_code: int, stderr: str = ""):
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"'{' '.join(self.command)}' failed with exit code {exit_code}"
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class FilesystemError(CacheMountError):
    """A directory or file a step depends on could not be prepared."""

    def __init__(self, action: str, path: object, error: OSError):
        self.path = str(path)
        self.errno = error.errno
        super().__init__(f"Cannot {action} {self.path}: {error.strerror or error}")


class RemoteStoreError(CacheMountError):
    """The remote cache store could not be read or written."""


class MetadataError(CacheMountError):
    """The cache volume metadata document could not be read or written."""


class CacheMissError(CacheMountError):
    """Cache miss while fail-on-cache-miss is set."""

    def __init__(self, message: str, keys: Optional[Sequence[str]] = None):
        self.keys = list(keys or [])
        super().__init__(message)
