"""
BuildConfig — the fully resolved, immutable input of a run.

Produced once by ``mpybuild.core.config.loader.load_config`` and passed
read-only into every component. Per-build slices are derived copies
(``for_build``); the run-wide config is never mutated.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from mpybuild.core import constants
from mpybuild.core.models.architecture import Architecture


class BuildConfig(BaseModel):
    """Every input a run needs, already validated and expanded."""

    model_config = ConfigDict(frozen=True)

    # ── Targets ──────────────────────────────────────────────────
    architecture: Architecture = Architecture.ALL
    architectures: tuple[Architecture, ...] = ()
    micropython_versions: tuple[str, ...] = ()
    micropython_repo: str = constants.DEFAULT_MICROPYTHON_REPO

    # ── Build parameters ─────────────────────────────────────────
    source_dir: Path
    output_name: str = ""
    make_target: str = ""
    make_args: str = ""
    mpy_cross_args: str = ""

    # ── Feature flags ────────────────────────────────────────────
    static_const_workaround: bool = False
    workaround_patterns: tuple[str, ...] = constants.DEFAULT_WORKAROUND_PATTERNS
    cache_toolchains: bool = True

    # ── Per-family tunables ──────────────────────────────────────
    esp_idf_version: str = constants.DEFAULT_ESP_IDF_VERSION
    esp_open_sdk_repo: str = constants.DEFAULT_ESP_OPEN_SDK_REPO
    esp_open_sdk_branch: str = constants.DEFAULT_ESP_OPEN_SDK_BRANCH

    # ── Scheduling ───────────────────────────────────────────────
    parallel_builds: int = constants.DEFAULT_PARALLEL_BUILDS  # 0 = sequential

    # ── Locations ────────────────────────────────────────────────
    toolchain_dir: Path = constants.DEFAULT_TOOLCHAIN_DIR
    micropython_dir: Path = constants.DEFAULT_MICROPYTHON_DIR
    cache_dir: Path = constants.DEFAULT_CACHE_DIR
    state_file: Path = constants.DEFAULT_STATE_FILE

    @property
    def output_dir(self) -> Path:
        return self.source_dir / constants.OUTPUT_DIR_NAME

    def for_build(self, architecture: Architecture, micropython_version: str) -> BuildConfig:
        """Slice of this config for exactly one architecture/version pair."""
        return self.model_copy(
            update={
                "architecture": architecture,
                "architectures": (architecture,),
                "micropython_versions": (micropython_version,),
            }
        )
