"""
Config check use case — validate inputs without building anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mpybuild.core.config.loader import find_config_file, load_config
from mpybuild.core.errors import ConfigurationError
from mpybuild.core.models.config import BuildConfig


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: BuildConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        config = self.config
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "architectures": [a.value for a in config.architectures] if config else [],
            "micropython_versions": list(config.micropython_versions) if config else [],
            "source_dir": str(config.source_dir) if config else None,
        }


def check_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ConfigCheckResult:
    result = ConfigCheckResult(config_path=config_path or find_config_file())
    try:
        result.config = load_config(result.config_path, overrides)
    except ConfigurationError as e:
        result.errors.append(f"{e.field}: {e}")
        return result

    result.valid = True
    return result
