"""
MicroPython provisioning — the source tree and ``mpy-cross`` for one version.

Native modules are built against the MicroPython tree (``MPY_DIR``) and
compiled to bytecode with ``mpy-cross``. Each version is cached under
its own exact key; there is no prefix fallback, since a tree built for a
different tag is useless.

The result is returned as a ``ToolchainEnv`` and merged into each build's
environment rather than exported into this process.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path

from mpybuild.adapters.cache.base import BlobCache
from mpybuild.adapters.shell.command import ProcessRunner
from mpybuild.adapters.vcs.git import GitClient
from mpybuild.core import constants
from mpybuild.core.config.versions import normalize_version
from mpybuild.core.errors import CacheError
from mpybuild.core.models.toolchain import ToolchainEnv
from mpybuild.core.services.toolchains.cache import save_cache

logger = logging.getLogger(__name__)


def micropython_cache_key(version: str) -> str:
    return f"micropython-{constants.CACHE_VERSION}-{normalize_version(version)}"


def mpy_cross_path(mpy_dir: Path) -> Path:
    return mpy_dir / "mpy-cross" / "build" / "mpy-cross"


async def setup_micropython(
    version: str,
    *,
    repository: str = constants.DEFAULT_MICROPYTHON_REPO,
    mpy_dir: Path = constants.DEFAULT_MICROPYTHON_DIR,
    store: BlobCache | None = None,
    runner: ProcessRunner | None = None,
) -> ToolchainEnv:
    """Make ``mpy_dir`` hold MicroPython ``version`` with a built mpy-cross.

    Raises:
        CommandError: Clone or mpy-cross build failed.
    """
    runner = runner or ProcessRunner()
    tag = normalize_version(version)
    key = micropython_cache_key(tag)
    paths = [str(mpy_dir)]
    mpy_cross = mpy_cross_path(mpy_dir)

    logger.info("Setting up MicroPython %s...", tag)

    cache_hit = False
    if store is not None:
        try:
            cache_hit = await store.restore(paths, key) == key
        except CacheError as e:
            logger.warning("Cache restore failed: %s", e)
        if cache_hit:
            logger.info("MicroPython restored from cache")

    if not cache_hit or not mpy_cross.exists():
        logger.info("Cloning MicroPython %s...", tag)
        if mpy_dir.exists():
            await asyncio.to_thread(shutil.rmtree, mpy_dir)
        mpy_dir.parent.mkdir(parents=True, exist_ok=True)

        await GitClient(runner).clone(repository, mpy_dir, branch=tag, depth=1)

        logger.info("Building mpy-cross...")
        await runner.run(["make", f"-j{os.cpu_count() or 1}"], cwd=mpy_dir / "mpy-cross")

        if store is not None:
            await save_cache(key, paths, store)

    logger.info("MPY_DIR set to: %s", mpy_dir)
    return ToolchainEnv(
        path_additions=(str(mpy_cross.parent),),
        environment={"MPY_DIR": str(mpy_dir)},
    )
