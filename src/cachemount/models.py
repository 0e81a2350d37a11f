"""
Pydantic models for cache requests, volume metadata and key resolution.

Field names follow Python conventions; the camelCase aliases are the
on-disk names, shared by the metadata document and the phase handoff.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

CUSTOM_FRAMEWORK = "custom"


class CachePath(BaseModel):
    """A logical mount: one requested cache path.

    ``path_in_cache`` is empty until the path is resolved against a
    cache volume.
    """

    model_config = ConfigDict(populate_by_name=True)

    mount_target: str = Field(alias="mountTarget")
    framework: str = CUSTOM_FRAMEWORK
    path_in_cache: Optional[str] = Field(default=None, alias="pathInCache")
    wipe: bool = False


class CacheMount(BaseModel):
    """Provenance of one cached directory, as recorded in the metadata."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    source: str = ""
    cache_framework: str = Field(default="", alias="cacheFramework")
    mount_target: list[str] = Field(default_factory=list, alias="mountTarget")


class PostExecution(BaseModel):
    """Measurements taken after the job ran.

    Older releases wrote ``null`` for a path they could not measure;
    such entries are dropped on load.
    """

    model_config = ConfigDict(extra="allow")

    usage: dict[str, int] = Field(default_factory=dict)

    @field_validator("usage", mode="before")
    @classmethod
    def _drop_unmeasured(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if v is not None}
        return value


class CacheMetadata(BaseModel):
    """The bookkeeping document stored inside the cache volume.

    A document without ``version`` was written by an older release and
    is read as-is. Fields this release does not know about are kept so
    a rewrite never drops them.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: Optional[int] = None
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    user_request: dict[str, CacheMount] = Field(default_factory=dict, alias="userRequest")
    post_execution: PostExecution = Field(default_factory=PostExecution, alias="postExecution")

    def touch(self) -> None:
        """Stamp the document with the current UTC time."""
        self.updated_at = datetime.now(timezone.utc).isoformat()


class CacheKeyResolution(BaseModel):
    """Outcome of looking up a primary key and its restore-key prefixes."""

    model_config = ConfigDict(populate_by_name=True)

    primary_key: str = Field(alias="primaryKey")
    restore_keys: list[str] = Field(default_factory=list, alias="restoreKeys")
    matched_key: Optional[str] = Field(default=None, alias="matchedKey")

    @computed_field(alias="exactMatch")
    @property
    def exact_match(self) -> bool:
        return self.matched_key is not None and self.matched_key == self.primary_key

    @property
    def searched_keys(self) -> list[str]:
        return [self.primary_key, *self.restore_keys]


class CacheEntry(BaseModel):
    """One archive held by a remote cache store."""

    model_config = ConfigDict(populate_by_name=True)

    key: str
    version: str
    archive: str
    paths: list[str] = Field(default_factory=list)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )
    size: int = 0


class Handoff(BaseModel):
    """State passed from the restore step to the post step of one job."""

    model_config = ConfigDict(populate_by_name=True)

    volume_root: Optional[str] = Field(default=None, alias="volumeRoot")
    paths: list[CachePath] = Field(default_factory=list)


class VolumeUsage(BaseModel):
    """Disk space of the filesystem holding the cache volume, in bytes."""

    total: int
    used: int
    free: int = 0


class RestoreResult(BaseModel):
    """What a restore did, for reporting and outputs."""

    cache_hit: bool = False
    misses: list[str] = Field(default_factory=list)
    matched_key: Optional[str] = None
    paths: list[CachePath] = Field(default_factory=list)
