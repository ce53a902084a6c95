"""
Tests for the post step: saving toolchain caches recorded during the run.
"""

import json
from pathlib import Path

import pytest

from mpybuild.core.persistence.state_file import StateStore
from mpybuild.core.use_cases.post import run_post, save_toolchain_caches

ARM_KEY = "build-mpy-native-module-v2-arm-13.2.rel1"


def _record(state: StateStore, arch: str | None, key: str, paths: list[str], hit: bool) -> None:
    suffix = f"-{arch}" if arch else ""
    state.update({
        f"toolchain-cache-key{suffix}": key,
        f"toolchain-cache-paths{suffix}": json.dumps(paths),
        f"toolchain-cache-hit{suffix}": "true" if hit else "false",
    })


@pytest.fixture
def state(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state.json")


class TestSaveToolchainCaches:
    @pytest.mark.asyncio
    async def test_nothing_recorded(self, state, fake_cache, caplog):
        caplog.set_level("INFO")
        result = await save_toolchain_caches(state, fake_cache)
        assert (result.saved, result.skipped) == (0, 0)
        assert "No cache state found" in caplog.text

    @pytest.mark.asyncio
    async def test_misses_saved_hits_skipped(self, state, fake_cache, caplog):
        caplog.set_level("INFO")
        _record(state, "xtensa", "xtensa-key", ["/tc/esp-open-sdk"], hit=False)
        _record(state, "xtensawin", "xtensawin-key", ["/tc/esp-idf", "/tc/espressif"], hit=True)

        result = await save_toolchain_caches(state, fake_cache)

        assert fake_cache.saved == ["xtensa-key"]
        assert fake_cache.entries["xtensa-key"] == ["/tc/esp-open-sdk"]
        assert (result.saved, result.skipped) == (1, 1)
        assert result.keys == ["xtensa-key"]
        assert "Cache summary: 1 saved, 1 skipped (cache hit)" in caplog.text

    @pytest.mark.asyncio
    async def test_shared_arm_key_saved_once(self, state, fake_cache):
        for arch in ("armv6m", "armv7m", "armv7emsp", "armv7emdp"):
            _record(state, arch, ARM_KEY, ["/tc/arm-none-eabi-gcc"], hit=False)

        result = await save_toolchain_caches(state, fake_cache)

        assert fake_cache.saved == [ARM_KEY]
        assert result.saved == 1

    @pytest.mark.asyncio
    async def test_legacy_unsuffixed_entry(self, state, fake_cache):
        _record(state, None, "legacy-key", ["/tc/x"], hit=False)
        result = await save_toolchain_caches(state, fake_cache)
        assert fake_cache.saved == ["legacy-key"]
        assert result.saved == 1

    @pytest.mark.asyncio
    async def test_existing_key_is_not_an_error(self, state, fake_cache):
        fake_cache.entries[ARM_KEY] = ["/tc/arm-none-eabi-gcc"]
        _record(state, "armv7m", ARM_KEY, ["/tc/arm-none-eabi-gcc"], hit=False)

        result = await save_toolchain_caches(state, fake_cache)

        assert result.keys == []
        assert result.error == ""

    @pytest.mark.asyncio
    async def test_unreadable_paths_skipped(self, state, fake_cache, caplog):
        state.update({
            "toolchain-cache-key-xtensa": "k",
            "toolchain-cache-paths-xtensa": "[not json",
            "toolchain-cache-hit-xtensa": "false",
        })
        result = await save_toolchain_caches(state, fake_cache)
        assert fake_cache.saved == []
        assert result.saved == 0
        assert "unreadable cache paths" in caplog.text


class TestRunPost:
    def test_backend_failure_never_raises(self, state, failing_cache, caplog):
        _record(state, "xtensa", "xtensa-key", ["/tc/esp-open-sdk"], hit=False)
        result = run_post(state, failing_cache)
        assert result.error == ""
        assert "Cache save failed" in caplog.text

    def test_to_dict(self, state, fake_cache):
        _record(state, "x64", "k", ["/p"], hit=False)
        assert run_post(state, fake_cache).to_dict() == {
            "saved": 1,
            "skipped": 0,
            "keys": ["k"],
            "error": None,
        }
