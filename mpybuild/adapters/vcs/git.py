"""
Git client — clones for toolchain sources and MicroPython itself.

Uses the git CLI through the process runner. Every network operation is
retried; a failed clone attempt has its partial checkout removed before
the next attempt so ``git clone`` never sees a non-empty destination.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from mpybuild.adapters.shell.command import ProcessRunner

logger = logging.getLogger(__name__)


class GitClient:
    """Clone and submodule operations."""

    def __init__(self, runner: ProcessRunner | None = None):
        self._runner = runner or ProcessRunner()

    async def clone(
        self,
        repository: str,
        dest: Path,
        *,
        branch: str | None = None,
        depth: int | None = None,
        recursive: bool = False,
    ) -> None:
        """Clone ``repository`` at ``branch`` (a branch or tag) into ``dest``."""
        args = ["git", "clone"]
        if branch:
            args += ["--branch", branch]
        if depth:
            args += ["--depth", str(depth)]
        if recursive:
            args.append("--recursive")
        args += [repository, str(dest)]

        def _discard_partial() -> None:
            shutil.rmtree(dest, ignore_errors=True)

        logger.info("Cloning %s%s", repository, f" ({branch})" if branch else "")
        await self._runner.run_with_retry(args, before_retry=_discard_partial)

    async def update_submodules(self, repo_dir: Path, *, depth: int | None = None) -> None:
        """``git submodule update --init --recursive`` inside ``repo_dir``."""
        args = ["git", "submodule", "update", "--init", "--recursive"]
        if depth:
            args += ["--depth", str(depth)]
        await self._runner.run_with_retry(args, cwd=repo_dir)
