"""
APT package manager — OS-level toolchain dependencies.

Installing an already-installed package is a no-op success, so callers
do not need to check first. Commands are prefixed with ``sudo`` unless
the process already runs as root (container runners).
"""

from __future__ import annotations

import logging
import os

from mpybuild.adapters.shell.command import ProcessRunner

logger = logging.getLogger(__name__)


class AptPackageManager:
    """``apt-get update`` / ``apt-get install -y``."""

    def __init__(self, runner: ProcessRunner | None = None):
        self._runner = runner or ProcessRunner()

    @staticmethod
    def _prefix() -> list[str]:
        if hasattr(os, "geteuid") and os.geteuid() == 0:
            return []
        return ["sudo"]

    async def update(self) -> None:
        await self._runner.run(self._prefix() + ["apt-get", "update"])

    async def install(self, packages: list[str]) -> None:
        if not packages:
            return
        logger.info("Installing packages: %s", " ".join(packages))
        await self._runner.run(self._prefix() + ["apt-get", "install", "-y", *packages])
