"""
Run use case — validate inputs, build everything, publish outputs.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mpybuild.adapters.cache.base import BlobCache
from mpybuild.adapters.cache.local import LocalBlobCache
from mpybuild.adapters.shell.command import ProcessRunner
from mpybuild.core.config.loader import load_config
from mpybuild.core.engine.executor import run_builds
from mpybuild.core.errors import ConfigurationError
from mpybuild.core.models.config import BuildConfig
from mpybuild.core.models.result import RunReport
from mpybuild.core.persistence.outputs import write_outputs
from mpybuild.core.persistence.state_file import StateStore

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of the run command."""

    config: BuildConfig | None = None
    report: RunReport | None = None
    error: str = ""

    @property
    def config_error(self) -> bool:
        return self.report is None

    @property
    def ok(self) -> bool:
        return self.report is not None and self.report.all_ok

    @property
    def message(self) -> str:
        if self.error:
            return self.error
        return self.report.failure_message if self.report else ""

    def to_dict(self) -> dict:
        if self.report is None:
            return {"status": "error", "error": self.error}
        return self.report.to_dict()


def log_inputs(config: BuildConfig) -> None:
    logger.info("Architecture: %s", config.architecture)
    logger.info("MicroPython versions: %s", ", ".join(config.micropython_versions))
    logger.info("Source directory: %s", config.source_dir)
    logger.info(
        "Parallel builds: %s",
        "disabled (sequential)" if config.parallel_builds == 0 else config.parallel_builds,
    )
    if config.static_const_workaround:
        logger.info("Static const workaround: enabled (applied to build copies, not source)")


def run(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    *,
    store: BlobCache | None = None,
    runner: ProcessRunner | None = None,
    publish: bool = True,
) -> RunResult:
    """Execute a full build run.

    Args:
        config_path: Explicit mpybuild.yml (default: search upward).
        overrides: CLI values; win over the config file.
        store: Blob cache (default: ``LocalBlobCache`` at ``cache_dir``).
        runner: Process runner shared by every phase.
        publish: Write step outputs to ``$GITHUB_OUTPUT``.
    """
    logger.info("Validating inputs...")
    try:
        config = load_config(config_path, overrides)
    except ConfigurationError as e:
        return RunResult(error=f"Validation error: {e}")

    log_inputs(config)

    store = store or LocalBlobCache(config.cache_dir)
    state = StateStore(config.state_file)
    state.clear()

    report = asyncio.run(run_builds(config, store=store, state=state, runner=runner))

    if publish:
        write_outputs(report.outputs())

    return RunResult(config=config, report=report)
