"""
Artifact discovery — locate the ``.mpy`` a build produced.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from mpybuild.core import constants

logger = logging.getLogger(__name__)


def find_artifact(
    directory: Path,
    expected_name: str | None = None,
    extension: str = constants.ARTIFACT_EXTENSION,
) -> Path | None:
    """Find the build output in ``directory`` (top level only).

    An exact ``expected_name`` match (with or without the extension) wins,
    even over a newer file. Otherwise a single candidate is returned as is,
    and among several the most recently modified one is picked with a
    warning.
    """
    candidates = sorted(p for p in directory.glob(f"*{extension}") if p.is_file())
    if not candidates:
        return None

    if expected_name:
        for path in candidates:
            if path.stem == expected_name or path.name == expected_name:
                return path
        logger.warning(
            'Expected output file "%s%s" not found, using most recent %s file',
            expected_name,
            extension,
            extension,
        )

    if len(candidates) == 1:
        return candidates[0]

    newest = max(candidates, key=lambda p: p.stat().st_mtime_ns)
    if not expected_name:
        logger.warning(
            "Found %d %s files, using most recently modified: %s",
            len(candidates),
            extension,
            newest.name,
        )
    return newest


def output_filename(artifact: Path, mpy_major_minor: str, architecture: str) -> str:
    """``simple.mpy`` → ``simple-mpy1.24-armv7m.mpy``."""
    return f"{artifact.stem}-mpy{mpy_major_minor}-{architecture}{artifact.suffix}"


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()
