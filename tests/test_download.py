"""
Tests for HTTP downloads, using file:// URLs so nothing leaves the machine.
"""

import urllib.error
from pathlib import Path

import pytest

from mpybuild.adapters.net.download import download, download_file


class TestDownload:
    def test_download_file(self, tmp_path: Path):
        source = tmp_path / "src" / "toolchain.tar.xz"
        source.parent.mkdir()
        source.write_bytes(b"\xfd7zXZ" * 1000)

        target = download_file(source.as_uri(), tmp_path / "dest")

        assert target == tmp_path / "dest" / "toolchain.tar.xz"
        assert target.read_bytes() == source.read_bytes()
        assert not list((tmp_path / "dest").glob(".dl_*"))

    def test_missing_source(self, tmp_path: Path):
        with pytest.raises(urllib.error.URLError):
            download_file((tmp_path / "missing.tar.xz").as_uri(), tmp_path / "dest")
        assert list((tmp_path / "dest").iterdir()) == []

    @pytest.mark.asyncio
    async def test_async_wrapper(self, tmp_path: Path):
        source = tmp_path / "a.bin"
        source.write_bytes(b"abc")
        target = await download(source.as_uri(), tmp_path / "dest")
        assert target.read_bytes() == b"abc"
