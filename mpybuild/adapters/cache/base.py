"""
Blob cache contract — the key/value store toolchain installs persist in.

Semantics follow the CI cache services this tool is designed around:

    restore(paths, key, restore_keys)
        exact ``key`` first, then the newest entry whose key starts with
        one of ``restore_keys`` (in order). Returns the matched key, or
        None on a miss. Entries only match when saved with the same path
        list.
    save(paths, key)
        write-once: saving an existing key raises CacheKeyExistsError.

Implementations raise ``CacheError`` for anything else; callers decide
that cache failures are never fatal.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence


class BlobCache(ABC):
    """Abstract base class for blob cache backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier (e.g. 'local')."""

    @abstractmethod
    async def restore(
        self,
        paths: Sequence[str],
        key: str,
        restore_keys: Sequence[str] = (),
    ) -> str | None:
        """Restore ``paths`` from the best matching entry.

        Returns:
            The key that matched, or None when nothing matched.

        Raises:
            CacheError: The backend failed (not a miss).
        """

    @abstractmethod
    async def save(self, paths: Sequence[str], key: str) -> None:
        """Persist ``paths`` under ``key``.

        Raises:
            CacheKeyExistsError: ``key`` was already saved.
            CacheError: Anything else went wrong.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
