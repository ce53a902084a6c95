"""
HTTP downloads — prebuilt toolchain archives.

Plain ``urllib.request``; the blocking transfer runs in a worker thread so
other coroutines keep making progress.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import urllib.request
from pathlib import Path

logger = logging.getLogger(__name__)

USER_AGENT = "mpybuild/1.0"
_CHUNK = 1024 * 1024


def download_file(url: str, dest_dir: Path, *, timeout: int = 60) -> Path:
    """Download ``url`` into ``dest_dir`` and return the file path.

    Raises:
        OSError: Network or filesystem failure (``urllib.error.URLError``
            is an ``OSError``).
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    filename = url.rsplit("/", 1)[-1] or "download"
    target = dest_dir / filename

    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    fd, tmp_name = tempfile.mkstemp(dir=dest_dir, prefix=".dl_", suffix=".part")
    tmp = Path(tmp_name)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp, open(fd, "wb") as out:
            shutil.copyfileobj(resp, out, _CHUNK)
        tmp.replace(target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    logger.info("Downloaded %s (%d bytes)", filename, target.stat().st_size)
    return target


async def download(url: str, dest_dir: Path, *, timeout: int = 60) -> Path:
    logger.info("Downloading %s", url)
    return await asyncio.to_thread(download_file, url, dest_dir, timeout=timeout)
