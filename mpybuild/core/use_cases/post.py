"""
Post use case — save toolchain caches recorded by the run.

Runs as a separate process after the job's other steps. Reads the cache
decisions from the state file and saves every architecture whose cache
was not an exact hit. Never fails the job: every problem is a warning.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field

from mpybuild.adapters.cache.base import BlobCache
from mpybuild.core.errors import MpyBuildError
from mpybuild.core.models.architecture import SINGLE_ARCHITECTURES
from mpybuild.core.persistence.state_file import (
    StateStore,
    cache_hit_state,
    cache_key_state,
    cache_paths_state,
)
from mpybuild.core.services.toolchains.cache import save_cache

logger = logging.getLogger(__name__)


@dataclass
class PostResult:
    saved: int = 0
    skipped: int = 0
    keys: list[str] = field(default_factory=list)
    error: str = ""

    def to_dict(self) -> dict:
        return {
            "saved": self.saved,
            "skipped": self.skipped,
            "keys": self.keys,
            "error": self.error or None,
        }


async def save_toolchain_caches(state: StateStore, store: BlobCache) -> PostResult:
    result = PostResult()
    handled: set[str] = set()

    # Per-architecture entries, then the single-architecture legacy entry.
    labels: list[str | None] = [a.value for a in SINGLE_ARCHITECTURES]
    labels.append(None)

    for arch in labels:
        key = state.get(cache_key_state(arch))
        paths_json = state.get(cache_paths_state(arch))
        hit = state.get(cache_hit_state(arch)) == "true"
        label = arch or "legacy"

        if not key or not paths_json:
            continue
        if hit:
            logger.info("%s: Cache was hit, skipping save", label)
            result.skipped += 1
            continue
        if key in handled:
            # ARM variants share one key
            logger.debug("%s: key %s already handled", label, key)
            continue

        try:
            paths = json.loads(paths_json)
        except ValueError as e:
            logger.warning("%s: unreadable cache paths in state: %s", label, e)
            continue

        logger.info("%s: Saving cache...", label)
        handled.add(key)
        if await save_cache(key, paths, store):
            result.keys.append(key)
        result.saved += 1

    if result.saved == 0 and result.skipped == 0:
        logger.info("No cache state found, skipping cache save")
    else:
        logger.info(
            "Cache summary: %d saved, %d skipped (cache hit)", result.saved, result.skipped
        )
    return result


def run_post(state: StateStore, store: BlobCache) -> PostResult:
    """Save caches; problems are logged, never raised."""
    try:
        return asyncio.run(save_toolchain_caches(state, store))
    except (MpyBuildError, OSError) as e:
        logger.warning("Post step failed: %s", e)
        return PostResult(error=str(e))
