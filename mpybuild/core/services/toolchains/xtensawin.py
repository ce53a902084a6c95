"""
Xtensawin (ESP32) toolchain — installed through ESP-IDF.

ESP-IDF is cloned shallowly at the configured version and its installer
fetches the xtensa-esp32 compiler into the Espressif tools directory.
The compiler is only usable after sourcing ``export.sh``, so its
environment is captured (see ``envcapture``) and contributed to builds
through ``get_path_additions`` / ``get_environment``. Capture also runs
when the install was restored from cache.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from mpybuild.core import constants
from mpybuild.core.models.architecture import Architecture
from mpybuild.core.models.toolchain import ToolchainCacheConfig
from mpybuild.core.services.toolchains.base import BaseToolchain, cache_key
from mpybuild.core.services.toolchains.envcapture import diff_environment, parse_env_output

logger = logging.getLogger(__name__)

ESP_IDF_REPO = "https://github.com/espressif/esp-idf.git"
ESP_IDF_DIRNAME = "esp-idf"
ESPRESSIF_HOME_DIRNAME = "espressif"
IDF_TARGET = "esp32"


class XtensawinToolchain(BaseToolchain):
    def __init__(self, version: str = constants.DEFAULT_ESP_IDF_VERSION, **kwargs):
        super().__init__(**kwargs)
        self.version = version
        self._path_additions: list[str] = []
        self._environment: dict[str, str] = {}

    @property
    def name(self) -> str:
        return "xtensawin"

    @property
    def architecture(self) -> Architecture:
        return Architecture.XTENSAWIN

    @property
    def idf_dir(self) -> Path:
        return self.toolchain_dir / ESP_IDF_DIRNAME

    @property
    def espressif_home(self) -> Path:
        return self.toolchain_dir / ESPRESSIF_HOME_DIRNAME

    async def is_available(self) -> bool:
        export_script = self.idf_dir / "export.sh"
        compiler = self.espressif_home / "tools" / "xtensa-esp32-elf"
        return export_script.exists() and compiler.exists()

    def _idf_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env["IDF_TOOLS_PATH"] = str(self.espressif_home)
        return env

    async def _install(self) -> None:
        self.toolchain_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Cloning ESP-IDF %s...", self.version)
        with self._install_step():
            await self.git.clone(ESP_IDF_REPO, self.idf_dir, branch=self.version, depth=1)
            logger.info("Updating submodules...")
            await self.git.update_submodules(self.idf_dir, depth=1)

        logger.info("Running ESP-IDF install script for %s (this may take 10+ minutes)...", IDF_TARGET)
        await self._exec(
            ["./install.sh", IDF_TARGET],
            cwd=self.idf_dir,
            env=self._idf_env(),
            timeout=constants.TOOLCHAIN_BUILD_TIMEOUT_S,
        )

        await self.capture_environment()

    async def _on_available(self) -> None:
        await self.capture_environment()

    async def capture_environment(self) -> None:
        """Source ``export.sh`` in a child shell and keep what it added."""
        logger.info("Capturing ESP-IDF environment variables...")
        env = self._idf_env()
        script = f'source "{self.idf_dir / "export.sh"}" >/dev/null 2>&1; env'
        result = await self._exec_with_output(["bash", "-c", script], env=env)

        self._path_additions, self._environment = diff_environment(
            dict(os.environ), parse_env_output(result.stdout)
        )
        for key in sorted(self._environment):
            logger.info("Captured env: %s", key)
        for segment in self._path_additions:
            logger.info("Captured PATH addition: %s", segment)

    def get_cache_config(self) -> ToolchainCacheConfig:
        return ToolchainCacheConfig(
            architecture=self.architecture.value,
            cache_paths=(str(self.idf_dir), str(self.espressif_home)),
            cache_key=cache_key(self.architecture.value, self.version),
            restore_keys=(cache_key(self.architecture.value, ""),),
        )

    def get_path_additions(self) -> list[str]:
        return list(self._path_additions)

    def get_environment(self) -> dict[str, str]:
        return dict(self._environment)
