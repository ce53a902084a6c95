"""
Xtensa (ESP8266) toolchain — built from source with esp-open-sdk.

The build takes fifteen minutes or more and runs under the long toolchain
timeout. The cache key is derived from repo and branch, since those fully
determine the built toolchain.
"""

from __future__ import annotations

import base64
import logging
import os
from pathlib import Path

from mpybuild.core import constants
from mpybuild.core.models.architecture import Architecture
from mpybuild.core.models.toolchain import ToolchainCacheConfig
from mpybuild.core.services.toolchains.base import BaseToolchain, cache_key

logger = logging.getLogger(__name__)

ESP_OPEN_SDK_DIRNAME = "esp-open-sdk"

BUILD_DEPENDENCIES = [
    "make",
    "unrar-free",
    "autoconf",
    "automake",
    "libtool",
    "gcc",
    "g++",
    "gperf",
    "flex",
    "bison",
    "texinfo",
    "gawk",
    "ncurses-dev",
    "libexpat-dev",
    "python3-dev",
    "python3-serial",
    "sed",
    "git",
    "help2man",
    "wget",
    "libtool-bin",
]


def repo_fingerprint(repo: str, branch: str) -> str:
    """First 8 characters of base64(repo + branch)."""
    return base64.b64encode(f"{repo}{branch}".encode("utf-8")).decode("ascii")[:8]


class XtensaToolchain(BaseToolchain):
    def __init__(
        self,
        repo: str = constants.DEFAULT_ESP_OPEN_SDK_REPO,
        branch: str = constants.DEFAULT_ESP_OPEN_SDK_BRANCH,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.repo = repo
        self.branch = branch

    @property
    def name(self) -> str:
        return "xtensa"

    @property
    def architecture(self) -> Architecture:
        return Architecture.XTENSA

    @property
    def sdk_dir(self) -> Path:
        return self.toolchain_dir / ESP_OPEN_SDK_DIRNAME

    @property
    def bin_dir(self) -> Path:
        return self.sdk_dir / "xtensa-lx106-elf" / "bin"

    async def is_available(self) -> bool:
        return (self.bin_dir / "xtensa-lx106-elf-gcc").exists()

    async def _install(self) -> None:
        logger.info("Installing build dependencies...")
        await self._apt_install(BUILD_DEPENDENCIES)

        self.toolchain_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Cloning esp-open-sdk from %s (branch: %s)...", self.repo, self.branch)
        with self._install_step():
            await self.git.clone(self.repo, self.sdk_dir, branch=self.branch, recursive=True)

        logger.info("Building Xtensa toolchain (this may take 15+ minutes)...")
        env = dict(os.environ)
        env["LD_LIBRARY_PATH"] = ""
        await self._exec(
            ["make"],
            cwd=self.sdk_dir,
            env=env,
            timeout=constants.TOOLCHAIN_BUILD_TIMEOUT_S,
        )

    def get_cache_config(self) -> ToolchainCacheConfig:
        return ToolchainCacheConfig(
            architecture=self.architecture.value,
            cache_paths=(str(self.sdk_dir),),
            cache_key=cache_key(self.architecture.value, repo_fingerprint(self.repo, self.branch)),
            restore_keys=(cache_key(self.architecture.value, ""),),
        )

    def get_path_additions(self) -> list[str]:
        return [str(self.bin_dir)]
