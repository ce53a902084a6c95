"""
Local blob cache — gzip tarballs in a directory, indexed by a manifest.

Suited to self-hosted runners with a persistent disk (or a CI cache step
that persists the cache directory itself). Layout::

    <root>/manifest.json
    <root>/<sha256(key)[:16]>.tar.gz

Each archive stores the i-th cached path under the member prefix ``i/``,
so entries restore to the same absolute locations they were saved from.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import shutil
import tarfile
import tempfile
import time
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, Field

from mpybuild.adapters.cache.base import BlobCache
from mpybuild.core.errors import CacheError, CacheKeyExistsError
from mpybuild.core.persistence.state_file import atomic_write_text

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"


class CacheEntry(BaseModel):
    archive: str
    paths: list[str]
    created_at: float = Field(default_factory=time.time)
    size_bytes: int = 0


class CacheManifest(BaseModel):
    schema_version: int = 1
    entries: dict[str, CacheEntry] = Field(default_factory=dict)


class LocalBlobCache(BlobCache):
    """Directory-backed ``BlobCache``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def name(self) -> str:
        return "local"

    async def restore(
        self,
        paths: Sequence[str],
        key: str,
        restore_keys: Sequence[str] = (),
    ) -> str | None:
        return await asyncio.to_thread(self._restore, list(paths), key, list(restore_keys))

    async def save(self, paths: Sequence[str], key: str) -> None:
        await asyncio.to_thread(self._save, list(paths), key)

    # ── Manifest ────────────────────────────────────────────────

    def _manifest_path(self) -> Path:
        return self.root / MANIFEST_FILE

    def _load_manifest(self) -> CacheManifest:
        path = self._manifest_path()
        if not path.is_file():
            return CacheManifest()
        try:
            return CacheManifest.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            raise CacheError(f"Corrupt cache manifest {path}: {e}") from e

    def _write_manifest(self, manifest: CacheManifest) -> None:
        content = json.dumps(manifest.model_dump(mode="json"), indent=2) + "\n"
        atomic_write_text(self._manifest_path(), content)

    # ── Restore ─────────────────────────────────────────────────

    def _lookup(
        self,
        manifest: CacheManifest,
        paths: list[str],
        key: str,
        restore_keys: list[str],
    ) -> tuple[str, CacheEntry] | None:
        exact = manifest.entries.get(key)
        if exact is not None and exact.paths == paths:
            return key, exact

        for prefix in restore_keys:
            candidates = [
                (k, e)
                for k, e in manifest.entries.items()
                if k.startswith(prefix) and e.paths == paths
            ]
            if candidates:
                return max(candidates, key=lambda item: item[1].created_at)
        return None

    def _restore(self, paths: list[str], key: str, restore_keys: list[str]) -> str | None:
        manifest = self._load_manifest()
        match = self._lookup(manifest, paths, key, restore_keys)
        if match is None:
            return None

        matched_key, entry = match
        archive = self.root / entry.archive
        if not archive.is_file():
            logger.warning("Cache archive missing for key %s: %s", matched_key, archive)
            return None

        try:
            with tempfile.TemporaryDirectory(dir=self.root, prefix=".restore_") as tmp:
                staging = Path(tmp)
                with tarfile.open(archive, "r:gz") as tf:
                    tf.extractall(staging, filter="tar")

                for index, target in enumerate(paths):
                    src = staging / str(index)
                    if not src.exists():
                        continue
                    _place(src, Path(target))
        except (OSError, tarfile.TarError) as e:
            raise CacheError(f"Failed to restore cache key {matched_key}: {e}") from e

        logger.debug("Restored %s from %s", matched_key, archive)
        return matched_key

    # ── Save ────────────────────────────────────────────────────

    def _save(self, paths: list[str], key: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        manifest = self._load_manifest()
        if key in manifest.entries:
            raise CacheKeyExistsError(f"Cache entry already exists: {key}")

        existing = [(i, Path(p)) for i, p in enumerate(paths) if Path(p).exists()]
        if not existing:
            raise CacheError(f"None of the cache paths exist: {', '.join(paths)}")

        archive_name = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16] + ".tar.gz"
        archive = self.root / archive_name

        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".save_", suffix=".tmp")
            tmp = Path(tmp_name)
            try:
                with open(fd, "wb") as fh, tarfile.open(fileobj=fh, mode="w:gz") as tf:
                    for index, path in existing:
                        tf.add(str(path), arcname=str(index))
                tmp.replace(archive)
            except BaseException:
                tmp.unlink(missing_ok=True)
                raise
        except (OSError, tarfile.TarError) as e:
            raise CacheError(f"Failed to save cache key {key}: {e}") from e

        manifest.entries[key] = CacheEntry(
            archive=archive_name,
            paths=paths,
            created_at=time.time(),
            size_bytes=archive.stat().st_size,
        )
        self._write_manifest(manifest)
        logger.debug("Saved %s (%d bytes)", key, manifest.entries[key].size_bytes)


def _place(src: Path, dest: Path) -> None:
    """Move a restored path into place, merging into an existing directory."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    if src.is_dir() and dest.is_dir():
        shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
        return
    if dest.is_dir():
        shutil.rmtree(dest)
    elif dest.exists() or dest.is_symlink():
        dest.unlink()
    shutil.move(str(src), str(dest))
