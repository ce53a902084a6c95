"""
Shared constants — cache format version, default locations, timeouts.

Locations live under the user's home directory so the same layout works
on hosted and self-hosted runners. Each can be overridden through
``BuildConfig`` (and therefore the CLI / YAML config).
"""

from __future__ import annotations

from pathlib import Path

# Bump to invalidate every toolchain and MicroPython cache entry at once.
CACHE_VERSION = "v2"

CACHE_KEY_PREFIX = f"build-mpy-native-module-{CACHE_VERSION}"

DEFAULT_TOOLCHAIN_DIR = Path.home() / ".mpy-toolchains"
DEFAULT_MICROPYTHON_DIR = Path.home() / "micropython"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "mpybuild" / "blobs"
DEFAULT_STATE_FILE = Path(".mpybuild") / "state.json"

# Toolchain source builds (esp-open-sdk, ESP-IDF) legitimately run 15+ min.
TOOLCHAIN_BUILD_TIMEOUT_S = 30 * 60

DEFAULT_MICROPYTHON_REPO = "https://github.com/micropython/micropython"
DEFAULT_ESP_IDF_VERSION = "v5.0.6"
DEFAULT_ESP_OPEN_SDK_REPO = "https://github.com/BrianPugh/esp-open-sdk.git"
DEFAULT_ESP_OPEN_SDK_BRANCH = "fix-ubuntu-21.10-build"
DEFAULT_WORKAROUND_PATTERNS = ("**/*.c", "**/*.h")
DEFAULT_PARALLEL_BUILDS = 4

# Top-level source entries never copied into an isolated build directory.
BUILD_COPY_EXCLUDES = frozenset({"dist", ".git", "node_modules", ".mpy_build"})

ARTIFACT_EXTENSION = ".mpy"
OUTPUT_DIR_NAME = "dist"
