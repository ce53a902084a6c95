"""
Build results — one record per (architecture, MicroPython version) pair,
plus the aggregate report of a whole run.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict

from mpybuild.core.models.toolchain import ToolchainEnv


class BuildResult(BaseModel):
    """Outcome of a single build. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    architecture: str
    micropython_version: str
    mpy_file: str = ""
    success: bool = False
    error: str | None = None

    @property
    def label(self) -> str:
        return f"{self.architecture}@{self.micropython_version}"

    @classmethod
    def failure(cls, architecture: str, micropython_version: str, error: str) -> BuildResult:
        return cls(
            architecture=architecture,
            micropython_version=micropython_version,
            success=False,
            error=error,
        )


@dataclass
class ToolchainSetupResult:
    """What Phase 1 produced for one architecture."""

    architecture: str
    env: ToolchainEnv | None = None
    cache_hit: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunReport:
    """Aggregate result of a run: every build plus run-level facts."""

    results: list[BuildResult] = field(default_factory=list)
    output_dir: str = ""
    mpy_dir: str = ""
    architecture: str = ""
    toolchain_cache_hit: bool = False
    single_target: bool = False

    @property
    def successful(self) -> list[BuildResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[BuildResult]:
        return [r for r in self.results if not r.success]

    @property
    def all_ok(self) -> bool:
        return not self.failed

    @property
    def failure_message(self) -> str:
        failed = self.failed
        if not failed:
            return ""
        labels = ", ".join(r.label for r in failed)
        return f"{len(failed)} build(s) failed: {labels}"

    def outputs(self) -> dict[str, str | list[str] | bool]:
        """Values published to the CI platform after the run."""
        successful = self.successful
        architectures = list(dict.fromkeys(r.architecture for r in successful))
        versions = list(dict.fromkeys(r.micropython_version for r in successful))

        if self.single_target and len(successful) == 1:
            mpy_file = successful[0].mpy_file
        else:
            mpy_file = self.output_dir

        return {
            "mpy-file": mpy_file,
            "mpy-files": [r.mpy_file for r in successful],
            "output-dir": self.output_dir,
            "mpy-dir": self.mpy_dir,
            "architecture": self.architecture,
            "architectures": architectures,
            "micropython-versions": versions,
            "toolchain-cache-hit": self.toolchain_cache_hit,
        }

    def to_dict(self) -> dict:
        return {
            "status": "ok" if self.all_ok else "failed",
            "total": len(self.results),
            "succeeded": len(self.successful),
            "failed": len(self.failed),
            "results": [r.model_dump(mode="json") for r in self.results],
            "outputs": self.outputs(),
        }
