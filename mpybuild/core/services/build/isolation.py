"""
Build isolation — a disposable copy of the source tree per build.

Concurrent builds for different architectures would otherwise share object
files in the user's tree, and the static-const workaround must never touch
the user's sources. Each build gets ``<tmp>/mpy-build/<arch>-<ms>-XXXX``,
removed again when the build is done whatever its outcome.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import time
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from pathlib import Path

from mpybuild.core import constants
from mpybuild.core.models.toolchain import ToolchainEnv

logger = logging.getLogger(__name__)

BUILD_ROOT_NAME = "mpy-build"


def copy_source_tree(source_dir: Path, dest: Path) -> None:
    """Copy ``source_dir`` into the existing ``dest``, skipping top-level
    output, VCS and dependency directories."""
    for entry in source_dir.iterdir():
        if entry.name in constants.BUILD_COPY_EXCLUDES and entry.is_dir():
            continue
        target = dest / entry.name
        if entry.is_dir() and not entry.is_symlink():
            shutil.copytree(entry, target, symlinks=True)
        else:
            shutil.copy2(entry, target, follow_symlinks=False)


def create_build_dir(source_dir: Path, architecture: str, base_dir: Path | None = None) -> Path:
    root = (base_dir or Path(tempfile.gettempdir())) / BUILD_ROOT_NAME
    root.mkdir(parents=True, exist_ok=True)
    build_dir = Path(
        tempfile.mkdtemp(prefix=f"{architecture}-{int(time.time() * 1000)}-", dir=root)
    )
    copy_source_tree(source_dir, build_dir)
    return build_dir


def remove_build_dir(build_dir: Path) -> None:
    """Remove an isolated directory; failure is only logged."""
    try:
        shutil.rmtree(build_dir)
        logger.debug("Cleaned up build directory: %s", build_dir)
    except OSError as e:
        logger.warning("Failed to clean up build directory %s: %s", build_dir, e)


@asynccontextmanager
async def isolated_build_dir(
    source_dir: Path,
    architecture: str,
    base_dir: Path | None = None,
) -> AsyncIterator[Path]:
    """Yield a fresh copy of ``source_dir``; removed on exit."""
    build_dir = await asyncio.to_thread(create_build_dir, source_dir, architecture, base_dir)
    logger.debug("Using isolated build directory: %s", build_dir)
    try:
        yield build_dir
    finally:
        await asyncio.to_thread(remove_build_dir, build_dir)


def compose_build_env(
    toolchain_env: ToolchainEnv,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Inherited environment + toolchain PATH entries (first) + its variables."""
    env = dict(os.environ if base_env is None else base_env)
    if toolchain_env.path_additions:
        current = env.get("PATH", "")
        parts = [*toolchain_env.path_additions, *([current] if current else [])]
        env["PATH"] = os.pathsep.join(parts)
    env.update(toolchain_env.environment)
    return env
