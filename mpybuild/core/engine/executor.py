"""
Engine executor — the two-phase build run.

Flow:
    Phase 1  toolchains, one architecture at a time
             (restore cache → setup on miss → record cache decision)
    Phase 2  per MicroPython version: provision MicroPython, then build
             every architecture, sequentially or through parallel_map
    Summary  succeeded / failed table → RunReport

Phase 1 never runs concurrently: package managers fail under concurrent
lock contention, and toolchain installs are the heaviest network and CPU
load of the run. A failed toolchain does not stop the run; its builds
are reported as failed with the setup error.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from pathlib import Path

from mpybuild.adapters.cache.base import BlobCache
from mpybuild.adapters.shell.command import ProcessRunner
from mpybuild.core.config.versions import architectures_for_version, micropython_major_minor
from mpybuild.core.engine.scheduler import parallel_map
from mpybuild.core.errors import MpyBuildError, ToolchainInstallError, ToolchainTimeoutError
from mpybuild.core.models.architecture import Architecture
from mpybuild.core.models.config import BuildConfig
from mpybuild.core.models.result import BuildResult, RunReport, ToolchainSetupResult
from mpybuild.core.models.toolchain import ToolchainEnv
from mpybuild.core.observability.annotations import log_group
from mpybuild.core.persistence.state_file import (
    StateStore,
    cache_hit_state,
    cache_key_state,
    cache_paths_state,
)
from mpybuild.core.services.build.artifacts import output_filename, sha256_file
from mpybuild.core.services.build.isolation import compose_build_env, isolated_build_dir
from mpybuild.core.services.build.make import run_make
from mpybuild.core.services.build.workarounds import apply_static_const_workaround
from mpybuild.core.services.micropython import setup_micropython
from mpybuild.core.services.toolchains import create_toolchain
from mpybuild.core.services.toolchains.cache import ToolchainCache

logger = logging.getLogger(__name__)

_RULE = "=" * 60


# ── Phase 1 ─────────────────────────────────────────────────────


async def setup_toolchain(
    architecture: Architecture,
    config: BuildConfig,
    *,
    store: BlobCache | None = None,
    state: StateStore | None = None,
    runner: ProcessRunner | None = None,
) -> ToolchainSetupResult:
    """Make one architecture's toolchain usable and capture its environment.

    Install errors are returned in the result, not raised.
    """
    logger.info("Setting up %s toolchain...", architecture)
    toolchain = create_toolchain(architecture, config, runner)
    cache_config = toolchain.get_cache_config()
    use_cache = config.cache_toolchains and cache_config.cacheable and store is not None

    cache_hit = False
    try:
        if use_cache:
            cache = ToolchainCache(cache_config, store)
            if await cache.restore() and await toolchain.is_available():
                logger.info("  %s: Restored from cache", architecture)
                cache_hit = cache.cache_hit
            else:
                logger.info("  %s: Setting up from scratch...", architecture)
        # Idempotent; also lets a restored toolchain capture its environment.
        await toolchain.setup()
    except ToolchainTimeoutError as e:
        logger.error("%s toolchain setup timed out: %s", architecture, e)
        return ToolchainSetupResult(architecture=architecture.value, error=f"timed out: {e}")
    except (ToolchainInstallError, OSError) as e:
        logger.error("%s toolchain setup failed: %s", architecture, e)
        return ToolchainSetupResult(architecture=architecture.value, error=str(e))

    if use_cache and state is not None:
        state.update({
            cache_key_state(architecture): cache_config.cache_key,
            cache_paths_state(architecture): json.dumps(list(cache_config.cache_paths)),
            cache_hit_state(architecture): "true" if cache_hit else "false",
        })

    return ToolchainSetupResult(
        architecture=architecture.value,
        env=toolchain.toolchain_env(),
        cache_hit=cache_hit,
    )


async def setup_toolchains(
    config: BuildConfig,
    *,
    store: BlobCache | None = None,
    state: StateStore | None = None,
    runner: ProcessRunner | None = None,
) -> dict[Architecture, ToolchainSetupResult]:
    """Phase 1: every requested architecture, strictly one after another."""
    results: dict[Architecture, ToolchainSetupResult] = {}
    with log_group("Phase 1: Setting up toolchains"):
        for architecture in config.architectures:
            results[architecture] = await setup_toolchain(
                architecture, config, store=store, state=state, runner=runner
            )
        ready = [a.value for a, r in results.items() if r.ok]
        logger.info("Toolchains ready: %s", ", ".join(ready) or "none")
    return results


# ── Phase 2 ─────────────────────────────────────────────────────


async def build_for_architecture(
    architecture: Architecture,
    micropython_version: str,
    config: BuildConfig,
    toolchain_env: ToolchainEnv,
    *,
    concurrent_builds: int = 1,
    runner: ProcessRunner | None = None,
) -> BuildResult:
    """Build one (architecture, version) pair into the output directory.

    Never raises for build problems; they become a failed ``BuildResult``.
    """
    logger.info("Building: %s / MicroPython %s", architecture, micropython_version)
    build_config = config.for_build(architecture, micropython_version)
    output_dir = config.output_dir

    try:
        async with isolated_build_dir(config.source_dir, architecture.value) as build_dir:
            if config.static_const_workaround:
                await asyncio.to_thread(
                    apply_static_const_workaround, build_dir, config.workaround_patterns
                )

            artifact = await run_make(
                build_dir,
                build_config,
                architecture.value,
                compose_build_env(toolchain_env),
                concurrent_builds=concurrent_builds,
                runner=runner,
            )

            name = output_filename(
                artifact, micropython_major_minor(micropython_version), architecture.value
            )
            output_path = output_dir / name
            await asyncio.to_thread(shutil.copyfile, artifact, output_path)
    except (MpyBuildError, OSError) as e:
        logger.error(
            "Failed to build %s for MicroPython %s: %s", architecture, micropython_version, e
        )
        return BuildResult.failure(architecture.value, micropython_version, str(e))

    digest = await asyncio.to_thread(sha256_file, output_path)
    logger.info("  Output: %s", output_path)
    logger.info("  SHA256: %s", digest)
    return BuildResult(
        architecture=architecture.value,
        micropython_version=micropython_version,
        mpy_file=str(output_path),
        success=True,
    )


async def build_version(
    micropython_version: str,
    config: BuildConfig,
    toolchains: dict[Architecture, ToolchainSetupResult],
    *,
    store: BlobCache | None = None,
    runner: ProcessRunner | None = None,
) -> list[BuildResult]:
    """Phase 2 for one MicroPython version."""
    logger.info("")
    logger.info(_RULE)
    logger.info("MicroPython %s", micropython_version)
    logger.info(_RULE)

    architectures = architectures_for_version(config.architectures, micropython_version)
    skipped = [a.value for a in config.architectures if a not in architectures]
    if skipped:
        logger.info(
            "Skipping architectures not supported by %s: %s",
            micropython_version,
            ", ".join(skipped),
        )

    try:
        with log_group(f"Setting up MicroPython {micropython_version}"):
            mpy_env = await setup_micropython(
                micropython_version,
                repository=config.micropython_repo,
                mpy_dir=config.micropython_dir,
                store=store,
                runner=runner,
            )
    except (MpyBuildError, OSError) as e:
        reason = f"MicroPython {micropython_version} setup failed: {e}"
        logger.error("%s", reason)
        return [BuildResult.failure(a.value, micropython_version, reason) for a in architectures]

    async def build(architecture: Architecture, concurrent_builds: int) -> BuildResult:
        setup = toolchains.get(architecture)
        if setup is None or not setup.ok or setup.env is None:
            error = setup.error if setup is not None else "not set up"
            return BuildResult.failure(
                architecture.value, micropython_version, f"Toolchain setup failed: {error}"
            )
        return await build_for_architecture(
            architecture,
            micropython_version,
            config,
            setup.env.merged(mpy_env),
            concurrent_builds=concurrent_builds,
            runner=runner,
        )

    if config.parallel_builds > 0 and len(architectures) > 1:
        effective = min(config.parallel_builds, len(architectures))
        logger.info(
            "Building %d architectures in parallel (max %d concurrent)...",
            len(architectures),
            effective,
        )
        return await parallel_map(
            architectures, effective, lambda arch: build(arch, effective)
        )

    logger.info("Building for architectures: %s", ", ".join(a.value for a in architectures))
    return [await build(architecture, 1) for architecture in architectures]


# ── Run ─────────────────────────────────────────────────────────


async def run_builds(
    config: BuildConfig,
    *,
    store: BlobCache | None = None,
    state: StateStore | None = None,
    runner: ProcessRunner | None = None,
) -> RunReport:
    """Both phases for every requested architecture and version."""
    runner = runner or ProcessRunner()
    config.output_dir.mkdir(parents=True, exist_ok=True)

    toolchains = await setup_toolchains(config, store=store, state=state, runner=runner)

    results: list[BuildResult] = []
    for version in config.micropython_versions:
        results.extend(
            await build_version(version, config, toolchains, store=store, runner=runner)
        )

    report = RunReport(
        results=results,
        output_dir=str(config.output_dir),
        mpy_dir=str(config.micropython_dir),
        architecture=config.architecture.value,
        toolchain_cache_hit=any(t.cache_hit for t in toolchains.values()),
        single_target=len(config.architectures) == 1 and len(config.micropython_versions) == 1,
    )
    log_summary(report)
    return report


def log_summary(report: RunReport) -> None:
    successful = report.successful
    failed = report.failed

    logger.info("")
    logger.info(_RULE)
    logger.info("Build Summary")
    logger.info(_RULE)
    logger.info("Successful: %d/%d", len(successful), len(report.results))

    if successful:
        logger.info("")
        logger.info("Built files:")
        for result in successful:
            logger.info("  - %s", Path(result.mpy_file).name)

    if failed:
        logger.info("")
        logger.warning("Failed builds:")
        for result in failed:
            logger.warning(
                "  - %s (mpy %s): %s",
                result.architecture,
                result.micropython_version,
                result.error,
            )
