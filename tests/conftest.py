"""
Shared test fixtures — fake process runner, fake blob cache, module tree.

Nothing here touches the network, the package manager, or a real
toolchain: commands are recorded and answered by rules.
"""

from __future__ import annotations

import asyncio
import shlex
import textwrap
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from mpybuild.adapters.cache.base import BlobCache
from mpybuild.adapters.shell.command import CommandResult, ProcessRunner
from mpybuild.core.errors import CacheError, CacheKeyExistsError, CommandError


@dataclass
class Call:
    cmd: list[str]
    cwd: Path | None = None
    env: dict[str, str] | None = None
    timeout: float | None = None

    @property
    def line(self) -> str:
        return shlex.join(self.cmd)


@dataclass
class _Rule:
    pattern: str
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    action: Callable[[Call], None] | None = None
    error: Exception | None = None


class FakeRunner(ProcessRunner):
    """Records every command; answers from rules (substring match on the
    joined command line, most recently added rule first). Unmatched
    commands succeed."""

    def __init__(self):
        super().__init__(max_retries=0, retry_delay=0)
        self.calls: list[Call] = []
        self._rules: list[_Rule] = []

    def on(
        self,
        pattern: str,
        *,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        action: Callable[[Call], None] | None = None,
        error: Exception | None = None,
    ) -> FakeRunner:
        self._rules.insert(0, _Rule(pattern, returncode, stdout, stderr, action, error))
        return self

    @property
    def lines(self) -> list[str]:
        return [c.line for c in self.calls]

    def find(self, pattern: str) -> list[Call]:
        return [c for c in self.calls if pattern in c.line]

    async def _respond(self, cmd, cwd, env, timeout=None) -> CommandResult:
        call = Call(
            cmd=list(cmd),
            cwd=Path(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            timeout=timeout,
        )
        self.calls.append(call)
        await asyncio.sleep(0)

        for rule in self._rules:
            if rule.pattern in call.line:
                if rule.action is not None:
                    rule.action(call)
                if rule.error is not None:
                    raise rule.error
                return CommandResult(
                    cmd=list(cmd),
                    returncode=rule.returncode,
                    stdout=rule.stdout,
                    stderr=rule.stderr,
                )
        return CommandResult(cmd=list(cmd), returncode=0)

    async def run(self, cmd, *, cwd=None, env=None, ignore_errors=False, timeout=None):
        result = await self._respond(cmd, cwd, env, timeout)
        if not result.ok and not ignore_errors:
            raise CommandError(cmd, result.returncode, result.stderr)
        return result.returncode

    async def run_with_output(self, cmd, *, cwd=None, env=None, ignore_errors=False):
        result = await self._respond(cmd, cwd, env)
        if not result.ok and not ignore_errors:
            raise CommandError(cmd, result.returncode, result.stderr)
        return result


@dataclass
class FakeBlobCache(BlobCache):
    """In-memory cache: remembers keys and paths, moves no files."""

    entries: dict[str, list[str]] = field(default_factory=dict)
    saved: list[str] = field(default_factory=list)
    restore_error: Exception | None = None
    save_error: Exception | None = None
    on_restore: Callable[[str], None] | None = None

    @property
    def name(self) -> str:
        return "fake"

    async def restore(self, paths, key, restore_keys=()):
        if self.restore_error is not None:
            raise self.restore_error
        paths = list(paths)
        matched = None
        if self.entries.get(key) == paths:
            matched = key
        else:
            for prefix in restore_keys:
                hits = [k for k, p in self.entries.items() if k.startswith(prefix) and p == paths]
                if hits:
                    matched = hits[-1]
                    break
        if matched and self.on_restore is not None:
            self.on_restore(matched)
        return matched

    async def save(self, paths, key):
        if self.save_error is not None:
            raise self.save_error
        if key in self.entries:
            raise CacheKeyExistsError(f"Cache entry already exists: {key}")
        self.entries[key] = list(paths)
        self.saved.append(key)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_cache() -> FakeBlobCache:
    return FakeBlobCache()


@pytest.fixture
def failing_cache() -> FakeBlobCache:
    return FakeBlobCache(
        restore_error=CacheError("service unavailable"),
        save_error=CacheError("service unavailable"),
    )


@pytest.fixture
def module_dir(tmp_path: Path) -> Path:
    """A minimal native module: Makefile plus one C source."""
    root = tmp_path / "module"
    root.mkdir()
    (root / "Makefile").write_text(
        textwrap.dedent("""\
            MPY_DIR ?= ../micropython
            MOD = simple
            SRC = simple.c
            include $(MPY_DIR)/py/dynruntime.mk
        """)
    )
    (root / "simple.c").write_text(
        textwrap.dedent("""\
            #include "py/dynruntime.h"

            // static const is rewritten only outside comments
            static const int answer = 42;

            static mp_obj_t get(void) {
                return mp_obj_new_int(answer);
            }
        """)
    )
    return root
