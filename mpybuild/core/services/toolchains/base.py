"""
Toolchain contract — the interface every architecture family implements.

The orchestrator only talks to toolchains through ``Toolchain``:

    is_available()        already installed (cache restore, preinstalled
                          runner image)? Probes only, never installs.
    setup()               install if needed; idempotent
    get_cache_config()    what to cache and under which keys
    get_path_additions()  PATH entries the builder needs
    get_environment()     extra variables the builder needs

``BaseToolchain`` supplies the defaults (not cacheable, no PATH or env
contribution) and the install helpers. Helpers translate process errors
into ``ToolchainInstallError`` / ``ToolchainTimeoutError`` so callers see
one error type per architecture.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path

from mpybuild.adapters.packages.apt import AptPackageManager
from mpybuild.adapters.shell.command import CommandResult, ProcessRunner
from mpybuild.adapters.vcs.git import GitClient
from mpybuild.core import constants
from mpybuild.core.errors import (
    CommandError,
    CommandTimeoutError,
    ToolchainInstallError,
    ToolchainTimeoutError,
)
from mpybuild.core.models.architecture import Architecture
from mpybuild.core.models.toolchain import ToolchainCacheConfig, ToolchainEnv

logger = logging.getLogger(__name__)

# Interpreter the MicroPython linker (mpy_ld.py) runs under during make.
PYTHON = "python3"
PYELFTOOLS_REQUIREMENT = "pyelftools>=0.25"


class Toolchain(ABC):
    """Abstract base class for architecture toolchains."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable identifier (e.g. 'arm-armv7m')."""

    @property
    @abstractmethod
    def architecture(self) -> Architecture:
        """The single architecture this instance serves."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether the toolchain is already usable. Never raises."""

    @abstractmethod
    async def setup(self) -> None:
        """Install the toolchain if ``is_available()`` is false.

        Raises:
            ToolchainInstallError: Install, download, clone or build failed.
            ToolchainTimeoutError: A long-running step was killed.
        """

    def get_cache_config(self) -> ToolchainCacheConfig:
        return ToolchainCacheConfig(architecture=self.architecture.value)

    def get_path_additions(self) -> list[str]:
        return []

    def get_environment(self) -> dict[str, str]:
        return {}

    def toolchain_env(self) -> ToolchainEnv:
        """PATH and environment contribution as one record."""
        return ToolchainEnv(
            path_additions=tuple(self.get_path_additions()),
            environment=dict(self.get_environment()),
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class BaseToolchain(Toolchain):
    """Shared setup flow and install helpers.

    Subclasses implement ``is_available`` and ``_install``; ``setup``
    handles the idempotency check, pyelftools, and logging.
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        toolchain_dir: Path = constants.DEFAULT_TOOLCHAIN_DIR,
    ):
        self.runner = runner or ProcessRunner()
        self.toolchain_dir = Path(toolchain_dir)
        self.apt = AptPackageManager(self.runner)
        self.git = GitClient(self.runner)

    async def setup(self) -> None:
        logger.info("Setting up %s toolchain...", self.name)

        if await self.is_available():
            logger.info("%s toolchain already available, skipping setup", self.name)
            await self._on_available()
            return

        await self._install()
        await self.install_pyelftools()
        logger.info("%s toolchain setup complete", self.name)

    @abstractmethod
    async def _install(self) -> None:
        """Family-specific installation steps."""

    async def _on_available(self) -> None:
        """Hook run when setup finds the toolchain already installed."""

    # ── Helpers ─────────────────────────────────────────────────

    @contextmanager
    def _install_step(self) -> Iterator[None]:
        """Translate process failures into toolchain errors."""
        try:
            yield
        except CommandTimeoutError as e:
            raise ToolchainTimeoutError(self.architecture.value, str(e)) from e
        except CommandError as e:
            raise ToolchainInstallError(self.architecture.value, str(e)) from e

    async def _exec(
        self,
        cmd: list[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> int:
        with self._install_step():
            return await self.runner.run(cmd, cwd=cwd, env=env, timeout=timeout)

    async def _exec_with_output(
        self,
        cmd: list[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        with self._install_step():
            return await self.runner.run_with_output(cmd, cwd=cwd, env=env)

    async def _probe(self, cmd: list[str]) -> bool:
        """Exit status 0 means present; a missing executable means absent."""
        result = await self.runner.run_with_output(cmd, ignore_errors=True)
        return result.ok

    async def _has_pyelftools(self) -> bool:
        return await self._probe([PYTHON, "-c", "import elftools"])

    async def _apt_install(self, packages: list[str], *, update: bool = True) -> None:
        with self._install_step():
            if update:
                await self.apt.update()
            await self.apt.install(packages)

    async def install_pyelftools(self) -> None:
        """pyelftools is needed by the MicroPython native-module linker."""
        logger.info("Installing pyelftools...")
        await self._exec([PYTHON, "-m", "pip", "install", PYELFTOOLS_REQUIREMENT])


def cache_key(*parts: str) -> str:
    """``build-mpy-native-module-<version>-<part>-<part>...``"""
    return "-".join((constants.CACHE_KEY_PREFIX, *parts))
