"""
Architecture identifiers — the build targets mpy_ld can emit code for.
"""

from __future__ import annotations

from enum import StrEnum


class Architecture(StrEnum):
    """Target architecture. ``ALL`` is the meta value meaning every target."""

    X86 = "x86"
    X64 = "x64"
    ARMV6M = "armv6m"
    ARMV7M = "armv7m"
    ARMV7EMSP = "armv7emsp"
    ARMV7EMDP = "armv7emdp"
    XTENSA = "xtensa"
    XTENSAWIN = "xtensawin"
    RV32IMC = "rv32imc"
    ALL = "all"


# Fixed order used whenever "all" is expanded.
SINGLE_ARCHITECTURES: tuple[Architecture, ...] = (
    Architecture.X86,
    Architecture.X64,
    Architecture.ARMV6M,
    Architecture.ARMV7M,
    Architecture.ARMV7EMSP,
    Architecture.ARMV7EMDP,
    Architecture.XTENSA,
    Architecture.XTENSAWIN,
    Architecture.RV32IMC,
)

ARM_ARCHITECTURES = frozenset({
    Architecture.ARMV6M,
    Architecture.ARMV7M,
    Architecture.ARMV7EMSP,
    Architecture.ARMV7EMDP,
})

VALID_ARCHITECTURES: tuple[str, ...] = tuple(a.value for a in Architecture)
