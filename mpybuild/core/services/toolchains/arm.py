"""
ARM toolchain — prebuilt ARM GNU Toolchain (arm-none-eabi) from arm.com.

One install serves all four Cortex-M variants (armv6m, armv7m, armv7emsp,
armv7emdp), so they share a single cache key instead of storing the same
large toolchain four times.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tarfile
import tempfile
from pathlib import Path

from mpybuild.adapters.net.download import download
from mpybuild.core.errors import ToolchainInstallError
from mpybuild.core.models.architecture import ARM_ARCHITECTURES, Architecture
from mpybuild.core.models.toolchain import ToolchainCacheConfig
from mpybuild.core.services.toolchains.base import BaseToolchain, cache_key

logger = logging.getLogger(__name__)

ARM_TOOLCHAIN_VERSION = "13.2.rel1"
ARM_TOOLCHAIN_URL = (
    "https://developer.arm.com/-/media/Files/downloads/gnu/"
    f"{ARM_TOOLCHAIN_VERSION}/binrel/"
    f"arm-gnu-toolchain-{ARM_TOOLCHAIN_VERSION}-x86_64-arm-none-eabi.tar.xz"
)
ARM_TOOLCHAIN_DIRNAME = "arm-none-eabi-gcc"
_EXTRACTED_PREFIX = "arm-gnu-toolchain"


class ARMToolchain(BaseToolchain):
    def __init__(self, architecture: Architecture, **kwargs):
        if architecture not in ARM_ARCHITECTURES:
            raise ValueError(f"Not an ARM architecture: {architecture}")
        super().__init__(**kwargs)
        self._architecture = architecture

    @property
    def name(self) -> str:
        return f"arm-{self._architecture.value}"

    @property
    def architecture(self) -> Architecture:
        return self._architecture

    @property
    def install_dir(self) -> Path:
        return self.toolchain_dir / ARM_TOOLCHAIN_DIRNAME

    async def is_available(self) -> bool:
        return (self.install_dir / "bin" / "arm-none-eabi-gcc").exists()

    async def _install(self) -> None:
        self.toolchain_dir.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="mpy-arm-") as tmp:
            try:
                archive = await download(ARM_TOOLCHAIN_URL, Path(tmp))
            except OSError as e:
                raise ToolchainInstallError(
                    self.architecture.value, f"Failed to download ARM toolchain: {e}"
                ) from e

            logger.info("Extracting toolchain...")
            try:
                await asyncio.to_thread(self._extract, archive)
            except (OSError, tarfile.TarError) as e:
                raise ToolchainInstallError(
                    self.architecture.value, f"Failed to extract ARM toolchain: {e}"
                ) from e

    def _extract(self, archive: Path) -> None:
        parent = self.toolchain_dir
        with tarfile.open(archive, "r:xz") as tf:
            tf.extractall(parent, filter="tar")

        # The archive unpacks to a long versioned folder name.
        extracted = sorted(
            p for p in parent.iterdir() if p.is_dir() and p.name.startswith(_EXTRACTED_PREFIX)
        )
        if not extracted:
            raise OSError(f"No {_EXTRACTED_PREFIX}* directory in {archive.name}")
        if self.install_dir.exists():
            shutil.rmtree(self.install_dir)
        extracted[-1].rename(self.install_dir)

    def get_cache_config(self) -> ToolchainCacheConfig:
        return ToolchainCacheConfig(
            architecture=self.architecture.value,
            cache_paths=(str(self.install_dir),),
            cache_key=cache_key("arm", ARM_TOOLCHAIN_VERSION),
            restore_keys=(cache_key("arm", ""),),
        )

    def get_path_additions(self) -> list[str]:
        return [str(self.install_dir / "bin")]
