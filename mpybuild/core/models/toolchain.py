"""
Toolchain records — what a toolchain contributes to a build, and what
of it is worth caching.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ToolchainEnv(BaseModel):
    """PATH and environment contribution of one set-up toolchain.

    Never applied to ``os.environ``: it is threaded explicitly into each
    build's subprocess environment.
    """

    model_config = ConfigDict(frozen=True)

    path_additions: tuple[str, ...] = ()
    environment: dict[str, str] = Field(default_factory=dict)

    def merged(self, other: ToolchainEnv) -> ToolchainEnv:
        """Combine two contributions; ``other`` wins on conflicts and its
        paths come first."""
        paths = list(other.path_additions)
        paths.extend(p for p in self.path_additions if p not in paths)
        return ToolchainEnv(
            path_additions=tuple(paths),
            environment={**self.environment, **other.environment},
        )


class ToolchainCacheConfig(BaseModel):
    """Cache footprint of a toolchain installation.

    ``cache_key`` must encode everything that changes the installed bytes.
    Interchangeable installations (the four ARM variants) share one key.
    """

    model_config = ConfigDict(frozen=True)

    architecture: str
    cache_paths: tuple[str, ...] = ()
    cache_key: str = ""
    restore_keys: tuple[str, ...] = ()

    @property
    def cacheable(self) -> bool:
        return bool(self.cache_key) and len(self.cache_paths) > 0
