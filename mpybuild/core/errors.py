"""
Error taxonomy — every failure mode the build pipeline distinguishes.

Scope of each error:
    ConfigurationError     fatal, raised before any toolchain/build work
    ToolchainInstallError  fatal to one architecture's setup only
    ToolchainTimeoutError  forced-kill subtype of ToolchainInstallError
    BuildError             fatal to one (architecture, version) build only
    CacheError             never fatal — logged and treated as a miss

``CommandError`` / ``CommandTimeoutError`` come from the process runner
and are translated into the domain errors above by their callers.
"""

from __future__ import annotations


class MpyBuildError(Exception):
    """Base class for all mpybuild errors."""


class ConfigurationError(MpyBuildError):
    """Raised when an input is malformed or missing.

    The message always names the offending field.
    """

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class CommandError(MpyBuildError):
    """An external command exited non-zero."""

    def __init__(
        self,
        cmd: list[str],
        returncode: int,
        stderr: str = "",
        message: str | None = None,
    ):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        if message is None:
            message = f"Command failed with exit code {returncode}: {' '.join(self.cmd)}"
            if stderr.strip():
                message += f"\nstderr: {stderr.strip()[-2000:]}"
        super().__init__(message)


class CommandTimeoutError(CommandError):
    """An external command was killed after exceeding its timeout."""

    def __init__(self, cmd: list[str], timeout: float):
        self.timeout = timeout
        super().__init__(
            cmd,
            returncode=-1,
            message=f"Command timed out after {timeout:g}s: {' '.join(cmd)}",
        )


class ToolchainInstallError(MpyBuildError):
    """Package install, download, clone or toolchain build failed."""

    def __init__(self, architecture: str, message: str):
        self.architecture = architecture
        super().__init__(message)


class ToolchainTimeoutError(ToolchainInstallError):
    """A toolchain build step was killed after its timeout elapsed."""


class BuildError(MpyBuildError):
    """The external builder failed or produced no artifact."""


class CacheError(MpyBuildError):
    """A blob cache restore or save failed."""


class CacheKeyExistsError(CacheError):
    """A cache entry with the same key was already saved."""
