"""
x86 / x64 toolchains — the runner's native GCC.

x86 needs the 32-bit multilib runtime; x64 only needs GCC itself, which
hosted Ubuntu runners already ship.
"""

from __future__ import annotations

from mpybuild.core.models.architecture import Architecture
from mpybuild.core.services.toolchains.base import BaseToolchain


class X86Toolchain(BaseToolchain):
    @property
    def name(self) -> str:
        return "x86"

    @property
    def architecture(self) -> Architecture:
        return Architecture.X86

    async def is_available(self) -> bool:
        has_multilib = await self._probe(["gcc", "-m32", "-print-file-name=libc.a"])
        return has_multilib and await self._has_pyelftools()

    async def _install(self) -> None:
        await self._apt_install(["gcc-multilib"])


class X64Toolchain(BaseToolchain):
    @property
    def name(self) -> str:
        return "x64"

    @property
    def architecture(self) -> Architecture:
        return Architecture.X64

    async def is_available(self) -> bool:
        has_gcc = await self._probe(["gcc", "--version"])
        return has_gcc and await self._has_pyelftools()

    async def _install(self) -> None:
        with self._install_step():
            await self.apt.update()
