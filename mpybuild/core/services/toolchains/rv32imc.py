"""
rv32imc toolchain — the distribution's bare-metal RISC-V GCC and picolibc.
"""

from __future__ import annotations

from mpybuild.core.models.architecture import Architecture
from mpybuild.core.services.toolchains.base import BaseToolchain

RISCV_PACKAGES = ["gcc-riscv64-unknown-elf", "picolibc-riscv64-unknown-elf"]


class RV32IMCToolchain(BaseToolchain):
    @property
    def name(self) -> str:
        return "rv32imc"

    @property
    def architecture(self) -> Architecture:
        return Architecture.RV32IMC

    async def is_available(self) -> bool:
        has_gcc = await self._probe(["riscv64-unknown-elf-gcc", "--version"])
        return has_gcc and await self._has_pyelftools()

    async def _install(self) -> None:
        await self._apt_install(RISCV_PACKAGES)
