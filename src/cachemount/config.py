"""
Restore configuration.

Settings come from, in increasing precedence: an optional YAML file,
the environment, and explicit command-line values. List inputs accept
either YAML lists or newline-separated strings, the way CI inputs are
usually written::

    path: |
      ~/.cache/custom
      ./build
    cache: [go, rust]
    fail-on-cache-miss: true
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from . import CACHE_ROOT_ENV, REMOTE_DIR_ENV
from .errors import ConfigurationError

logger = logging.getLogger("cachemount.config")

DOWNLOAD_CONCURRENCY_ENV = "CACHE_DOWNLOAD_CONCURRENCY"


def split_multiline(value: Any) -> list[str]:
    """Normalize a list input: split lines, strip, drop blanks."""
    if value is None:
        return []
    items = [value] if isinstance(value, str) else list(value)
    out: list[str] = []
    for item in items:
        for line in str(item).splitlines():
            line = line.strip()
            if line:
                out.append(line)
    return out


class RestoreSettings(BaseModel):
    """Everything one restore or post step needs to know."""

    paths: list[str] = Field(default_factory=list)
    cache: list[str] = Field(default_factory=list)
    fail_on_cache_miss: bool = False
    local_cache: bool = True
    cache_root: Optional[Path] = None

    # Remote mode
    key: Optional[str] = None
    restore_keys: list[str] = Field(default_factory=list)
    lookup_only: bool = False
    cross_os_archive: bool = False
    download_concurrency: Optional[int] = Field(default=None, gt=0)
    remote_dir: Optional[Path] = None

    @field_validator("paths", "cache", "restore_keys", mode="before")
    @classmethod
    def _split_lines(cls, value: Any) -> list[str]:
        return split_multiline(value)

    def require_cache_root(self) -> Path:
        """The cache volume root, or an explanation of why there is none.

        Raises:
            ConfigurationError: If no cache volume is attached.
        """
        if self.cache_root is None:
            logger.info("Runner does not have a cross-invocation cache volume.")
            raise ConfigurationError(
                "Local cache not found. Did you configure the runs-on labels to "
                f"enable the cross-invocation cache? (${CACHE_ROOT_ENV} is not set)"
            )
        return self.cache_root


def load_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML settings file.

    Hyphenated keys map to underscores, and ``path`` is accepted for
    ``paths`` to match the CI input name.

    Raises:
        ConfigurationError: If the file is missing or not a mapping.
    """
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    data = {str(k).replace("-", "_"): v for k, v in raw.items()}
    if "path" in data and "paths" not in data:
        data["paths"] = data.pop("path")
    return data


def _from_env(env: Mapping[str, str]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if env.get(CACHE_ROOT_ENV):
        data["cache_root"] = env[CACHE_ROOT_ENV]
    if env.get(REMOTE_DIR_ENV):
        data["remote_dir"] = env[REMOTE_DIR_ENV]
    if env.get(DOWNLOAD_CONCURRENCY_ENV):
        data["download_concurrency"] = env[DOWNLOAD_CONCURRENCY_ENV]
    return data


def load_settings(
    config_file: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> RestoreSettings:
    """Assemble settings from file, environment and explicit values.

    Args:
        config_file: Optional YAML file.
        env: Environment mapping. Defaults to ``os.environ``.
        **overrides: Explicit values; None and empty tuples mean
            "not given" and do not override.

    Raises:
        ConfigurationError: If the merged settings are invalid.
    """
    data: dict[str, Any] = {}
    if config_file is not None:
        data.update(load_config_file(config_file))
    data.update(_from_env(os.environ if env is None else env))
    for name, value in overrides.items():
        if value is None or value == ():
            continue
        data[name] = value

    try:
        return RestoreSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid settings: {exc}") from exc
