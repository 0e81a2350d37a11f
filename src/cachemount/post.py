"""
Post-job bookkeeping — the completion phase.

Runs after the job's own steps. Measures every path the restore step
mounted and records the sizes in the volume metadata. The mount set
comes from the restore step's handoff, never from the current
environment.
"""

from __future__ import annotations

import logging
from typing import Optional

from .actions import JobContext
from .errors import MetadataError
from .metadata import record_usage
from .models import CacheMetadata
from .runner import CommandRunner

logger = logging.getLogger("cachemount.post")


def record_post_execution(job: JobContext, runner: CommandRunner) -> Optional[CacheMetadata]:
    """Record cache usage for the paths mounted earlier in this job.

    Returns:
        CacheMetadata as written, or None if there was nothing to record
        or the metadata could not be updated.
    """
    handoff = job.load_handoff()
    if handoff is None or not handoff.paths:
        job.echo("No paths were cached, skip caching metadata updates.")
        return None
    if not handoff.volume_root:
        job.echo("Paths were not restored from a cache volume, skip caching metadata updates.")
        return None

    try:
        metadata = record_usage(handoff.volume_root, handoff.paths, runner)
    except MetadataError as exc:
        job.warning(f"Failed to update cache metadata: {exc}")
        return None

    logger.info(
        "Recorded usage for %d path(s) in %s",
        len(metadata.post_execution.usage), handoff.volume_root,
    )
    return metadata
