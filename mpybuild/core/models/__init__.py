"""
Domain models — Pydantic types for the build pipeline.

All models are re-exported here for convenient access:

    from mpybuild.core.models import BuildConfig, BuildResult, ToolchainEnv
"""

from mpybuild.core.models.architecture import (
    ARM_ARCHITECTURES,
    SINGLE_ARCHITECTURES,
    VALID_ARCHITECTURES,
    Architecture,
)
from mpybuild.core.models.config import BuildConfig
from mpybuild.core.models.result import BuildResult, RunReport, ToolchainSetupResult
from mpybuild.core.models.toolchain import ToolchainCacheConfig, ToolchainEnv

__all__ = [
    # architecture.py
    "ARM_ARCHITECTURES",
    "Architecture",
    # config.py
    "BuildConfig",
    # result.py
    "BuildResult",
    "RunReport",
    "SINGLE_ARCHITECTURES",
    # toolchain.py
    "ToolchainCacheConfig",
    "ToolchainEnv",
    "ToolchainSetupResult",
    "VALID_ARCHITECTURES",
]
