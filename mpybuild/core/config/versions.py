"""
MicroPython version helpers — parsing, ordering, and the per-version
architecture set.

Versions look like ``v1.24.1``, ``1.24.1`` or ``v1.25.0-preview.1``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from mpybuild.core.models.architecture import SINGLE_ARCHITECTURES, Architecture

VERSION_PATTERN = re.compile(r"^v?\d+\.\d+\.\d+(-[\w.]+)?$")

# rv32imc native modules are supported from MicroPython 1.25.0 on.
_RV32IMC_MIN = (1, 25)


@dataclass(frozen=True)
class ParsedVersion:
    major: int
    minor: int
    patch: int
    prerelease: str = ""

    def sort_key(self) -> tuple:
        # A pre-release sorts before its release: (1, "preview") < (2, "").
        return (
            self.major,
            self.minor,
            self.patch,
            0 if self.prerelease else 1,
            self.prerelease,
        )


def normalize_version(version: str) -> str:
    """Ensure a leading ``v`` (git tags are ``v1.24.1``)."""
    return version if version.startswith("v") else f"v{version}"


def parse_version(version: str) -> ParsedVersion:
    """Split ``v1.25.0-preview.1`` into its numeric parts and suffix."""
    core, _, prerelease = version.removeprefix("v").partition("-")
    parts = [int(p) for p in core.split(".") if p.isdigit()]
    parts += [0] * (3 - len(parts))
    return ParsedVersion(parts[0], parts[1], parts[2], prerelease)


def sort_versions(versions: list[str] | tuple[str, ...]) -> list[str]:
    """Return versions sorted ascending."""
    return sorted(versions, key=lambda v: parse_version(v).sort_key())


def micropython_major_minor(version: str) -> str:
    """``v1.22.2`` → ``1.22``."""
    normalized = version.removeprefix("v")
    parts = normalized.split(".")
    if len(parts) >= 2:
        return f"{parts[0]}.{parts[1]}"
    return normalized


def supports_rv32imc(version: str) -> bool:
    """Whether this MicroPython version can build rv32imc native modules.

    The pre-release suffix is ignored: ``v1.25.0-preview`` qualifies,
    ``v1.24.1-rc1`` does not.
    """
    parsed = parse_version(version)
    return (parsed.major, parsed.minor) >= _RV32IMC_MIN


def resolve_architectures(architecture: Architecture | str, version: str) -> list[Architecture]:
    """Expand ``all`` to the concrete architecture list for ``version``."""
    architecture = Architecture(architecture)
    if architecture is Architecture.ALL:
        return architectures_for_version(list(SINGLE_ARCHITECTURES), version)
    return [architecture]


def architectures_for_version(
    requested: list[Architecture] | tuple[Architecture, ...],
    version: str,
) -> list[Architecture]:
    """Drop the architectures ``version`` cannot build, keeping order."""
    if supports_rv32imc(version):
        return list(requested)
    return [a for a in requested if a is not Architecture.RV32IMC]
