"""
Process runner — the single place where external commands are spawned.

Every toolchain install, clone, cache probe and ``make`` invocation goes
through ``ProcessRunner``. Modes:

    run()               plain: output streams to the job log, non-zero raises
    run(timeout=...)    the child gets its own process group, which is
                        SIGKILLed as a whole when the timeout elapses
    run_with_output()   same as plain, stdout/stderr buffered and returned
    run_with_retry()    plain mode retried with exponential backoff

All modes are coroutines: awaiting a child never blocks other builds
running on the same event loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from mpybuild.core.errors import CommandError, CommandTimeoutError

logger = logging.getLogger(__name__)

# Exit status reported when the executable itself cannot be started.
EXIT_NOT_FOUND = 127


@dataclass
class CommandResult:
    """Outcome of a command run in output-capturing mode."""

    cmd: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner:
    """Runs external commands on the current event loop.

    Args:
        max_retries: Retries after the first attempt in ``run_with_retry``.
        retry_delay: Seconds before the first retry; doubles each time.
    """

    def __init__(self, max_retries: int = 2, retry_delay: float = 5.0):
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def run(
        self,
        cmd: list[str],
        *,
        cwd: str | os.PathLike | None = None,
        env: Mapping[str, str] | None = None,
        ignore_errors: bool = False,
        timeout: float | None = None,
    ) -> int:
        """Run to completion with output streamed to the job log.

        Returns:
            The exit code (only non-zero when ``ignore_errors``).

        Raises:
            CommandError: Non-zero exit and not ``ignore_errors``.
            CommandTimeoutError: ``timeout`` elapsed; the process group
                was killed. Raised even with ``ignore_errors``.
        """
        logger.info("Running: %s", shlex.join(cmd))

        if timeout is not None and timeout > 0:
            returncode = await self._run_killable(cmd, cwd=cwd, env=env, timeout=timeout)
        else:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    cwd=cwd,
                    env=dict(env) if env is not None else None,
                    stdin=asyncio.subprocess.DEVNULL,
                )
            except OSError as e:
                return self._not_started(cmd, e, ignore_errors)
            returncode = await proc.wait()

        if returncode != 0 and not ignore_errors:
            raise CommandError(cmd, returncode)
        return returncode

    async def run_with_output(
        self,
        cmd: list[str],
        *,
        cwd: str | os.PathLike | None = None,
        env: Mapping[str, str] | None = None,
        ignore_errors: bool = False,
    ) -> CommandResult:
        """Run to completion and return buffered stdout/stderr.

        Raises:
            CommandError: Non-zero exit and not ``ignore_errors``;
                the message carries the tail of stderr.
        """
        logger.debug("Running (captured): %s", shlex.join(cmd))
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            returncode = self._not_started(cmd, e, ignore_errors)
            return CommandResult(cmd=list(cmd), returncode=returncode, stderr=str(e))

        out, err = await proc.communicate()
        result = CommandResult(
            cmd=list(cmd),
            returncode=proc.returncode if proc.returncode is not None else 1,
            stdout=out.decode("utf-8", errors="replace") if out else "",
            stderr=err.decode("utf-8", errors="replace") if err else "",
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )

        if not result.ok and not ignore_errors:
            raise CommandError(cmd, result.returncode, result.stderr)
        return result

    async def run_with_retry(
        self,
        cmd: list[str],
        *,
        cwd: str | os.PathLike | None = None,
        env: Mapping[str, str] | None = None,
        max_retries: int | None = None,
        delay: float | None = None,
        before_retry: Callable[[], None] | None = None,
    ) -> int:
        """Plain mode, retried on failure with exponential backoff.

        Waits ``delay * 2**attempt`` seconds between attempts. Only the
        final failure is raised. ``before_retry`` runs ahead of every
        retry, e.g. to remove a partial checkout.
        """
        retries = self.max_retries if max_retries is None else max_retries
        base_delay = self.retry_delay if delay is None else delay
        last_error: CommandError | None = None

        for attempt in range(retries + 1):
            try:
                return await self.run(cmd, cwd=cwd, env=env)
            except CommandError as e:
                last_error = e
                if attempt < retries:
                    wait = base_delay * (2 ** attempt)
                    logger.warning(
                        "Command failed (attempt %d/%d), retrying in %.1fs: %s",
                        attempt + 1,
                        retries + 1,
                        wait,
                        shlex.join(cmd),
                    )
                    await asyncio.sleep(wait)
                    if before_retry is not None:
                        before_retry()

        assert last_error is not None
        raise last_error

    # ── Internals ───────────────────────────────────────────────

    async def _run_killable(
        self,
        cmd: list[str],
        *,
        cwd: str | os.PathLike | None,
        env: Mapping[str, str] | None,
        timeout: float,
    ) -> int:
        """Run in a new session so the whole process tree can be killed."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise CommandError(cmd, EXIT_NOT_FOUND, str(e)) from e

        try:
            return await asyncio.wait_for(proc.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Command timed out after %gs, killing process group: %s",
                timeout,
                shlex.join(cmd),
            )
            _kill_process_group(proc.pid)
            await proc.wait()
            raise CommandTimeoutError(cmd, timeout) from None
        except asyncio.CancelledError:
            _kill_process_group(proc.pid)
            raise

    @staticmethod
    def _not_started(cmd: list[str], error: OSError, ignore_errors: bool) -> int:
        if not ignore_errors:
            raise CommandError(cmd, EXIT_NOT_FOUND, str(error)) from error
        logger.debug("Could not start %s: %s", cmd[0], error)
        return EXIT_NOT_FOUND


def _kill_process_group(pid: int) -> None:
    """SIGKILL the process group led by ``pid`` (falls back to the pid)."""
    try:
        os.killpg(pid, signal.SIGKILL)
    except ProcessLookupError:
        return
    except PermissionError:
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
