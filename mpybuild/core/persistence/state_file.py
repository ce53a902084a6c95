"""
State file persistence — values handed from the run phase to the post phase.

The run and post phases are separate processes (the post phase runs after
the job's other steps), so cache decisions made while setting up toolchains
are written to a small JSON file and read back later. Writes are atomic
(write to temp file, then rename) so a crashed run never leaves a
half-written file behind for the post phase.

Keys:
    toolchain-cache-key-<arch>     primary cache key
    toolchain-cache-paths-<arch>   JSON-encoded list of cached paths
    toolchain-cache-hit-<arch>     "true" / "false"

plus the same three keys without the ``-<arch>`` suffix for single-arch
runs written by older releases.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def cache_key_state(architecture: str | None = None) -> str:
    return _suffixed("toolchain-cache-key", architecture)


def cache_paths_state(architecture: str | None = None) -> str:
    return _suffixed("toolchain-cache-paths", architecture)


def cache_hit_state(architecture: str | None = None) -> str:
    return _suffixed("toolchain-cache-hit", architecture)


def _suffixed(name: str, architecture: str | None) -> str:
    return f"{name}-{architecture}" if architecture else name


class RunState(BaseModel):
    """Persisted key/value state of one run."""

    values: dict[str, str] = Field(default_factory=dict)
    updated_at: str = ""

    def touch(self) -> None:
        self.updated_at = datetime.now(UTC).isoformat()


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        tmp.replace(path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


class StateStore:
    """Key/value store backed by a JSON state file.

    A missing or corrupt file reads as empty; ``get`` of an unknown key
    returns the empty string.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> RunState:
        if not self.path.is_file():
            return RunState()
        try:
            return RunState.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            logger.warning("Corrupt state file %s: %s — starting fresh", self.path, e)
            return RunState()

    def get(self, key: str) -> str:
        return self.load().values.get(key, "")

    def set(self, key: str, value: str) -> None:
        state = self.load()
        state.values[key] = value
        self._save(state)

    def update(self, values: dict[str, str]) -> None:
        """Set several keys with a single write."""
        state = self.load()
        state.values.update(values)
        self._save(state)

    def clear(self) -> None:
        """Drop all values left over from a previous run."""
        self._save(RunState())

    def _save(self, state: RunState) -> None:
        state.touch()
        content = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"
        try:
            atomic_write_text(self.path, content)
        except OSError as e:
            logger.error("Failed to save state to %s: %s", self.path, e)
            raise
        logger.debug("State saved to %s", self.path)
