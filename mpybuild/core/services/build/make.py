"""
Make invocation — build one native module inside an isolated directory.

    make clean                                       (best effort)
    make ARCH=<arch> -j<n> [MPY_CROSS_FLAGS=...] [make_args...] [target]

``-j`` is divided among concurrently running builds so K parallel builds
do not each spawn one job per CPU.
"""

from __future__ import annotations

import logging
import os
import shlex
from collections.abc import Mapping
from pathlib import Path

from mpybuild.adapters.shell.command import ProcessRunner
from mpybuild.core.errors import BuildError, CommandError
from mpybuild.core.models.config import BuildConfig
from mpybuild.core.services.build.artifacts import find_artifact

logger = logging.getLogger(__name__)


def compute_make_jobs(concurrent_builds: int, cpu_count: int | None = None) -> int:
    """``max(1, cpus // max(1, concurrent_builds))``."""
    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    return max(1, cpus // max(1, concurrent_builds))


def make_arguments(config: BuildConfig, architecture: str, jobs: int) -> list[str]:
    args = [f"ARCH={architecture}", f"-j{jobs}"]

    # Command-line variables override the Makefile's, so -march must be
    # repeated alongside the user's flags.
    if config.mpy_cross_args:
        args.append(f"MPY_CROSS_FLAGS=-march={architecture} {config.mpy_cross_args}")
    if config.make_args:
        args.extend(shlex.split(config.make_args))
    if config.make_target:
        args.append(config.make_target)
    return args


async def run_make(
    build_dir: Path,
    config: BuildConfig,
    architecture: str,
    env: Mapping[str, str],
    *,
    concurrent_builds: int = 1,
    runner: ProcessRunner | None = None,
) -> Path:
    """Run the module's Makefile in ``build_dir`` and return the artifact.

    Raises:
        BuildError: make failed or produced no ``.mpy`` file.
    """
    runner = runner or ProcessRunner()
    logger.info("Building native module for %s...", architecture)

    logger.info("Running make clean...")
    code = await runner.run(["make", "clean"], cwd=build_dir, env=env, ignore_errors=True)
    if code != 0:
        logger.debug("make clean failed or no clean target, continuing...")

    jobs = compute_make_jobs(concurrent_builds)
    try:
        await runner.run(["make", *make_arguments(config, architecture, jobs)], cwd=build_dir, env=env)
    except CommandError as e:
        raise BuildError(str(e)) from e

    artifact = find_artifact(build_dir, config.output_name or None)
    if artifact is None:
        raise BuildError("Build completed but no .mpy file was found")

    logger.info("Built: %s", artifact.name)
    return artifact
