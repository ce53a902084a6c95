"""
Configuration loader — reads mpybuild.yml, merges CLI overrides, and
validates everything into an immutable ``BuildConfig``.

Precedence (highest first):
    CLI option / INPUT_* env var  >  mpybuild.yml  >  built-in default

Every validation failure raises ``ConfigurationError`` naming the field,
before any toolchain or build work starts.
"""

from __future__ import annotations

import logging
import re
import shlex
from pathlib import Path
from typing import Any

import yaml

from mpybuild.core import constants
from mpybuild.core.config.versions import (
    VERSION_PATTERN,
    resolve_architectures,
    sort_versions,
    supports_rv32imc,
)
from mpybuild.core.errors import ConfigurationError
from mpybuild.core.models.architecture import VALID_ARCHITECTURES, Architecture
from mpybuild.core.models.config import BuildConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "mpybuild.yml"

_ESP_IDF_VERSION_PATTERN = r"^v?\d+\.\d+(\.\d+)?$"

_TRUE = {"true", "yes", "1", "on"}
_FALSE = {"false", "no", "0", "off"}


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for mpybuild.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to mpybuild.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML config file into a flat dict with snake_case keys.

    Raises:
        ConfigurationError: If the file is unreadable or not a mapping.
    """
    if not path.is_file():
        raise ConfigurationError("config", f"Config file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError("config", f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigurationError("config", f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "config", f"Expected a YAML mapping in {path}, got {type(data).__name__}"
        )

    # The YAML may wrap everything under a "build" key or be flat
    if isinstance(data.get("build"), dict):
        data = data["build"]

    logger.debug("Loaded config file %s (%d keys)", path, len(data))
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def load_config(
    path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> BuildConfig:
    """Load, merge and validate the run configuration.

    Args:
        path: Explicit path to mpybuild.yml. If None, searches upward;
            a missing file is fine (all inputs may come from overrides).
        overrides: Values from the CLI. ``None`` values are ignored.

    Returns:
        Validated, immutable BuildConfig.

    Raises:
        ConfigurationError: If any input is invalid.
    """
    raw: dict[str, Any] = {}

    if path is None:
        path = find_config_file()
    if path is not None:
        raw.update(read_config_file(path))

    for key, value in (overrides or {}).items():
        if value is None or value == () or value == []:
            continue
        raw[key] = value

    config = validate_inputs(raw, base_dir=path.parent if path else None)
    logger.debug(
        "Resolved config: %s for %s",
        ", ".join(config.architectures),
        ", ".join(config.micropython_versions),
    )
    return config


def validate_inputs(raw: dict[str, Any], base_dir: Path | None = None) -> BuildConfig:
    """Validate a flat dict of raw inputs into a BuildConfig.

    Relative ``source_dir`` values from a config file resolve against
    the file's directory; CLI values resolve against the cwd.
    """
    # ── Architecture ─────────────────────────────────────────────
    architecture = str(raw.get("architecture") or "all").strip()
    if architecture not in VALID_ARCHITECTURES:
        raise ConfigurationError(
            "architecture",
            f'Invalid architecture "{architecture}". '
            f"Valid options: {', '.join(VALID_ARCHITECTURES)}",
        )
    arch = Architecture(architecture)

    # ── MicroPython versions ─────────────────────────────────────
    versions = _as_list(
        raw.get("micropython_version") or raw.get("micropython_versions"), separator=","
    )
    if not versions:
        raise ConfigurationError("micropython-version", "micropython-version is required")

    for version in versions:
        if not VERSION_PATTERN.match(version):
            raise ConfigurationError(
                "micropython-version",
                f'Invalid micropython-version format "{version}". '
                "Expected format: v1.22.2, 1.22.2, or v1.25.0-preview.1",
            )

    if arch is Architecture.RV32IMC:
        for version in versions:
            if not supports_rv32imc(version):
                raise ConfigurationError(
                    "architecture",
                    f"Architecture rv32imc requires MicroPython >= 1.25.0, got {version}",
                )

    # The highest version decides the set; older versions filter per build.
    highest = sort_versions(versions)[-1]
    architectures = resolve_architectures(arch, highest)

    # ── Source directory ─────────────────────────────────────────
    source_dir = Path(str(raw.get("source_dir") or ".")).expanduser()
    if not source_dir.is_absolute() and base_dir is not None and "source_dir" in raw:
        source_dir = base_dir / source_dir
    source_dir = source_dir.resolve()
    if not source_dir.is_dir():
        raise ConfigurationError(
            "source-dir", f"Source directory does not exist: {source_dir}"
        )
    if not (source_dir / "Makefile").is_file():
        raise ConfigurationError(
            "source-dir", f"No Makefile found in source directory: {source_dir}"
        )

    # ── Workaround ───────────────────────────────────────────────
    patterns = _as_list(
        raw.get("static_const_workaround_patterns") or raw.get("workaround_patterns"),
        separator=",",
    ) or list(constants.DEFAULT_WORKAROUND_PATTERNS)

    # ── Make arguments ───────────────────────────────────────────
    make_args = str(raw.get("make_args") or "")
    try:
        shlex.split(make_args)
    except ValueError as e:
        raise ConfigurationError(
            "make-args", f'Invalid make-args "{make_args}": {e}'
        ) from e

    # ── ESP-IDF ──────────────────────────────────────────────────
    esp_idf_version = str(raw.get("esp_idf_version") or constants.DEFAULT_ESP_IDF_VERSION)
    if not re.match(_ESP_IDF_VERSION_PATTERN, esp_idf_version):
        raise ConfigurationError(
            "esp-idf-version",
            f'Invalid esp-idf-version format "{esp_idf_version}". '
            "Expected format: v5.0.6 or v5.2",
        )

    # ── Parallel builds ──────────────────────────────────────────
    parallel_raw = raw.get("parallel_builds")
    if parallel_raw is None or parallel_raw == "":
        parallel_raw = constants.DEFAULT_PARALLEL_BUILDS
    try:
        parallel_builds = int(str(parallel_raw).strip())
    except ValueError:
        parallel_builds = -1
    if not 0 <= parallel_builds <= 9:
        raise ConfigurationError(
            "parallel-builds",
            f'Invalid parallel-builds "{parallel_raw}". Must be 0-9 (0 = sequential).',
        )

    locations: dict[str, Path] = {}
    for key in ("toolchain_dir", "micropython_dir", "cache_dir", "state_file"):
        if raw.get(key):
            locations[key] = Path(str(raw[key])).expanduser()

    return BuildConfig(
        architecture=arch,
        architectures=tuple(architectures),
        micropython_versions=tuple(versions),
        micropython_repo=str(raw.get("micropython_repo") or constants.DEFAULT_MICROPYTHON_REPO),
        source_dir=source_dir,
        output_name=str(raw.get("output_name") or ""),
        make_target=str(raw.get("make_target") or ""),
        make_args=make_args,
        mpy_cross_args=str(raw.get("mpy_cross_args") or ""),
        static_const_workaround=_as_bool(
            raw.get("static_const_workaround"), "static-const-workaround", default=False
        ),
        workaround_patterns=tuple(patterns),
        cache_toolchains=_as_bool(
            raw.get("cache_toolchains"), "cache-toolchains", default=True
        ),
        esp_idf_version=esp_idf_version,
        esp_open_sdk_repo=str(raw.get("esp_open_sdk_repo") or constants.DEFAULT_ESP_OPEN_SDK_REPO),
        esp_open_sdk_branch=str(
            raw.get("esp_open_sdk_branch") or constants.DEFAULT_ESP_OPEN_SDK_BRANCH
        ),
        parallel_builds=parallel_builds,
        **locations,
    )


def _as_list(value: Any, separator: str | None = None) -> list[str]:
    """Normalise a YAML list, a multiline string, or a separated string."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        text = str(value)
        if separator and separator in text:
            items = text.split(separator)
        else:
            items = text.splitlines()
    return [item.strip() for item in items if item and item.strip()]


def _as_bool(value: Any, field: str, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigurationError(field, f'Invalid {field} "{value}". Expected true or false.')
