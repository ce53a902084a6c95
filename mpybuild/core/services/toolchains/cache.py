"""
Toolchain cache — restore before setup, save in the post phase.

Cache trouble never fails a run: restore errors are a miss, save errors
a warning, and a key that was already saved (by a parallel job, or by
another ARM variant sharing the key) is routine.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from mpybuild.adapters.cache.base import BlobCache
from mpybuild.core.errors import CacheError, CacheKeyExistsError
from mpybuild.core.models.toolchain import ToolchainCacheConfig

logger = logging.getLogger(__name__)


class ToolchainCache:
    """Restore one toolchain's cache entry.

    ``restore()`` reports whether anything was restored (exact or prefix
    match); ``cache_hit`` is only true for an exact key match.
    """

    def __init__(self, config: ToolchainCacheConfig, store: BlobCache):
        self.config = config
        self.store = store
        self.cache_hit = False
        self.matched_key: str | None = None

    async def restore(self) -> bool:
        if not self.config.cacheable:
            logger.info("No cache configuration, skipping restore")
            return False

        logger.info("Attempting to restore cache with key: %s", self.config.cache_key)
        try:
            matched = await self.store.restore(
                self.config.cache_paths,
                self.config.cache_key,
                self.config.restore_keys,
            )
        except CacheError as e:
            logger.warning("Cache restore failed: %s", e)
            return False

        if not matched:
            logger.info("No cache found")
            return False

        self.matched_key = matched
        self.cache_hit = matched == self.config.cache_key
        logger.info("Cache restored from key: %s (exact match: %s)", matched, self.cache_hit)
        return True


async def save_cache(key: str, paths: Sequence[str], store: BlobCache) -> bool:
    """Save ``paths`` under ``key``. Never raises.

    Returns:
        True if a new entry was written.
    """
    if not key or not paths:
        logger.info("No cache configuration, skipping save")
        return False

    logger.info("Saving cache with key: %s", key)
    try:
        await store.save(paths, key)
    except CacheKeyExistsError:
        logger.info("Cache already exists, skipping save")
        return False
    except CacheError as e:
        logger.warning("Cache save failed: %s", e)
        return False

    logger.info("Cache saved successfully")
    return True
