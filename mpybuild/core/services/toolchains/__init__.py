"""
Toolchains — one implementation per architecture family.

    create_toolchain(Architecture.ARMV7M, config)  →  ARMToolchain

The four ARM variants share one implementation (and one install); every
other architecture has its own family.
"""

from __future__ import annotations

from mpybuild.adapters.shell.command import ProcessRunner
from mpybuild.core.errors import ConfigurationError
from mpybuild.core.models.architecture import ARM_ARCHITECTURES, Architecture
from mpybuild.core.models.config import BuildConfig
from mpybuild.core.services.toolchains.arm import ARMToolchain
from mpybuild.core.services.toolchains.base import BaseToolchain, Toolchain
from mpybuild.core.services.toolchains.rv32imc import RV32IMCToolchain
from mpybuild.core.services.toolchains.x86 import X64Toolchain, X86Toolchain
from mpybuild.core.services.toolchains.xtensa import XtensaToolchain
from mpybuild.core.services.toolchains.xtensawin import XtensawinToolchain


def create_toolchain(
    architecture: Architecture | str,
    config: BuildConfig,
    runner: ProcessRunner | None = None,
) -> Toolchain:
    """Build the toolchain for one concrete architecture.

    Raises:
        ConfigurationError: ``architecture`` is unknown or ``all``.
    """
    try:
        arch = Architecture(architecture)
    except ValueError:
        raise ConfigurationError("architecture", f"Unsupported architecture: {architecture}") from None

    common = {"runner": runner, "toolchain_dir": config.toolchain_dir}

    if arch is Architecture.X86:
        return X86Toolchain(**common)
    if arch is Architecture.X64:
        return X64Toolchain(**common)
    if arch in ARM_ARCHITECTURES:
        return ARMToolchain(arch, **common)
    if arch is Architecture.XTENSA:
        return XtensaToolchain(config.esp_open_sdk_repo, config.esp_open_sdk_branch, **common)
    if arch is Architecture.XTENSAWIN:
        return XtensawinToolchain(config.esp_idf_version, **common)
    if arch is Architecture.RV32IMC:
        return RV32IMCToolchain(**common)

    raise ConfigurationError("architecture", f"Unsupported architecture: {architecture}")


__all__ = [
    "ARMToolchain",
    "BaseToolchain",
    "RV32IMCToolchain",
    "Toolchain",
    "X64Toolchain",
    "X86Toolchain",
    "XtensaToolchain",
    "XtensawinToolchain",
    "create_toolchain",
]
