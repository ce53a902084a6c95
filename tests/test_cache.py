"""
Tests for the local blob cache and the toolchain cache wrappers.
"""

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from mpybuild.adapters.cache.local import MANIFEST_FILE, LocalBlobCache
from mpybuild.core.errors import CacheError, CacheKeyExistsError
from mpybuild.core.models.toolchain import ToolchainCacheConfig
from mpybuild.core.services.toolchains.cache import ToolchainCache, save_cache


@pytest.fixture
def store(tmp_path: Path) -> LocalBlobCache:
    return LocalBlobCache(tmp_path / "cache")


@pytest.fixture
def install(tmp_path: Path) -> Path:
    root = tmp_path / "toolchains" / "arm-none-eabi-gcc"
    (root / "bin").mkdir(parents=True)
    (root / "bin" / "arm-none-eabi-gcc").write_text("#!/bin/sh\n")
    return root


@pytest.fixture
def clock(monkeypatch):
    now = SimpleNamespace(value=1_000.0)
    monkeypatch.setattr(
        "mpybuild.adapters.cache.local.time", SimpleNamespace(time=lambda: now.value)
    )
    return now


# ── LocalBlobCache ───────────────────────────────────────────────────


class TestLocalBlobCache:
    def test_name_and_repr(self, store: LocalBlobCache):
        assert store.name == "local"
        assert repr(store) == "<LocalBlobCache name='local'>"

    @pytest.mark.asyncio
    async def test_miss_on_empty_cache(self, store: LocalBlobCache, install: Path):
        assert await store.restore([str(install)], "k1") is None

    @pytest.mark.asyncio
    async def test_save_then_restore_exact(self, store: LocalBlobCache, install: Path):
        await store.save([str(install)], "k1")
        (install / "bin" / "arm-none-eabi-gcc").unlink()
        (install / "bin").rmdir()
        install.rmdir()

        assert await store.restore([str(install)], "k1") == "k1"
        assert (install / "bin" / "arm-none-eabi-gcc").read_text() == "#!/bin/sh\n"

    @pytest.mark.asyncio
    async def test_restore_merges_into_existing_dir(self, store: LocalBlobCache, install: Path):
        await store.save([str(install)], "k1")
        (install / "extra.txt").write_text("local")
        (install / "bin" / "arm-none-eabi-gcc").write_text("changed")

        assert await store.restore([str(install)], "k1") == "k1"
        assert (install / "bin" / "arm-none-eabi-gcc").read_text() == "#!/bin/sh\n"
        assert (install / "extra.txt").read_text() == "local"

    @pytest.mark.asyncio
    async def test_multiple_paths(self, store: LocalBlobCache, tmp_path: Path):
        idf = tmp_path / "esp-idf"
        home = tmp_path / "espressif"
        (idf).mkdir()
        (idf / "export.sh").write_text("idf")
        (home / "tools").mkdir(parents=True)
        (home / "tools" / "gcc").write_text("tools")
        paths = [str(idf), str(home)]

        await store.save(paths, "xtensawin-v5.0.6")
        for path in (idf / "export.sh", home / "tools" / "gcc"):
            path.unlink()

        assert await store.restore(paths, "xtensawin-v5.0.6") == "xtensawin-v5.0.6"
        assert (idf / "export.sh").read_text() == "idf"
        assert (home / "tools" / "gcc").read_text() == "tools"

    @pytest.mark.asyncio
    async def test_write_once(self, store: LocalBlobCache, install: Path):
        await store.save([str(install)], "k1")
        with pytest.raises(CacheKeyExistsError):
            await store.save([str(install)], "k1")

    @pytest.mark.asyncio
    async def test_save_missing_paths(self, store: LocalBlobCache, tmp_path: Path):
        with pytest.raises(CacheError):
            await store.save([str(tmp_path / "nope")], "k1")

    @pytest.mark.asyncio
    async def test_paths_must_match(self, store: LocalBlobCache, install: Path, tmp_path: Path):
        await store.save([str(install)], "k1")
        assert await store.restore([str(tmp_path / "elsewhere")], "k1") is None

    @pytest.mark.asyncio
    async def test_prefix_restore_picks_newest(self, store: LocalBlobCache, install: Path, clock):
        paths = [str(install)]
        clock.value = 1_000.0
        await store.save(paths, "arm-12.3")
        clock.value = 3_000.0
        await store.save(paths, "arm-13.1")
        clock.value = 2_000.0
        await store.save(paths, "arm-12.9")

        assert await store.restore(paths, "arm-13.2", ["arm-"]) == "arm-13.1"

    @pytest.mark.asyncio
    async def test_exact_beats_prefix(self, store: LocalBlobCache, install: Path, clock):
        paths = [str(install)]
        await store.save(paths, "arm-13.2")
        clock.value = 9_000.0
        await store.save(paths, "arm-14.0")
        assert await store.restore(paths, "arm-13.2", ["arm-"]) == "arm-13.2"

    @pytest.mark.asyncio
    async def test_restore_keys_in_order(self, store: LocalBlobCache, install: Path):
        paths = [str(install)]
        await store.save(paths, "b-1")
        await store.save(paths, "a-1")
        assert await store.restore(paths, "zzz", ["a-", "b-"]) == "a-1"

    @pytest.mark.asyncio
    async def test_missing_archive_is_a_miss(self, store: LocalBlobCache, install: Path):
        await store.save([str(install)], "k1")
        for archive in store.root.glob("*.tar.gz"):
            archive.unlink()
        assert await store.restore([str(install)], "k1") is None

    @pytest.mark.asyncio
    async def test_corrupt_manifest(self, store: LocalBlobCache, install: Path):
        store.root.mkdir(parents=True)
        (store.root / MANIFEST_FILE).write_text("{not json")
        with pytest.raises(CacheError):
            await store.restore([str(install)], "k1")

    @pytest.mark.asyncio
    async def test_manifest_contents(self, store: LocalBlobCache, install: Path, clock):
        clock.value = 1234.5
        await store.save([str(install)], "k1")
        manifest = json.loads((store.root / MANIFEST_FILE).read_text())
        entry = manifest["entries"]["k1"]
        assert manifest["schema_version"] == 1
        assert entry["paths"] == [str(install)]
        assert entry["created_at"] == 1234.5
        assert entry["size_bytes"] > 0
        assert (store.root / entry["archive"]).is_file()
        assert not list(store.root.glob(".save_*"))


# ── ToolchainCache / save_cache ──────────────────────────────────────


def _cache_config(**kwargs) -> ToolchainCacheConfig:
    values = {
        "architecture": "armv7m",
        "cache_paths": ("/tc/arm",),
        "cache_key": "build-mpy-native-module-v2-arm-13.2.rel1",
        "restore_keys": ("build-mpy-native-module-v2-arm-",),
    }
    values.update(kwargs)
    return ToolchainCacheConfig(**values)


class TestToolchainCache:
    @pytest.mark.asyncio
    async def test_exact_hit(self, fake_cache):
        fake_cache.entries["build-mpy-native-module-v2-arm-13.2.rel1"] = ["/tc/arm"]
        cache = ToolchainCache(_cache_config(), fake_cache)
        assert await cache.restore() is True
        assert cache.cache_hit is True
        assert cache.matched_key == "build-mpy-native-module-v2-arm-13.2.rel1"

    @pytest.mark.asyncio
    async def test_prefix_hit_is_not_exact(self, fake_cache):
        fake_cache.entries["build-mpy-native-module-v2-arm-13.1.rel1"] = ["/tc/arm"]
        cache = ToolchainCache(_cache_config(), fake_cache)
        assert await cache.restore() is True
        assert cache.cache_hit is False
        assert cache.matched_key == "build-mpy-native-module-v2-arm-13.1.rel1"

    @pytest.mark.asyncio
    async def test_miss(self, fake_cache):
        cache = ToolchainCache(_cache_config(), fake_cache)
        assert await cache.restore() is False
        assert cache.cache_hit is False

    @pytest.mark.asyncio
    async def test_backend_error_is_a_miss(self, failing_cache, caplog):
        cache = ToolchainCache(_cache_config(), failing_cache)
        assert await cache.restore() is False
        assert "Cache restore failed" in caplog.text

    @pytest.mark.asyncio
    async def test_not_cacheable(self, fake_cache):
        cache = ToolchainCache(ToolchainCacheConfig(architecture="x64"), fake_cache)
        assert await cache.restore() is False


class TestSaveCache:
    @pytest.mark.asyncio
    async def test_saves(self, fake_cache):
        assert await save_cache("k", ["/p"], fake_cache) is True
        assert fake_cache.saved == ["k"]

    @pytest.mark.asyncio
    async def test_existing_key(self, fake_cache):
        fake_cache.entries["k"] = ["/p"]
        assert await save_cache("k", ["/p"], fake_cache) is False

    @pytest.mark.asyncio
    async def test_backend_error_never_raises(self, failing_cache, caplog):
        assert await save_cache("k", ["/p"], failing_cache) is False
        assert "Cache save failed" in caplog.text

    @pytest.mark.asyncio
    async def test_nothing_to_save(self, fake_cache):
        assert await save_cache("", ["/p"], fake_cache) is False
        assert await save_cache("k", [], fake_cache) is False
        assert fake_cache.saved == []
