"""
Environment capture — what sourcing a setup script adds to the environment.

ESP-IDF's ``export.sh`` only works by mutating the calling shell. Instead of
exporting its result into this process, the script is sourced in a child
shell and the resulting ``env`` dump is diffed against the current one.
"""

from __future__ import annotations

from collections.abc import Mapping

RELEVANT_PREFIXES = ("IDF_", "ESP_", "OPENOCD", "ESPRESSIF")


def parse_env_output(output: str) -> dict[str, str]:
    """Parse ``env`` output (``KEY=value`` per line)."""
    result: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep and key:
            result[key] = value
    return result


def is_relevant(name: str) -> bool:
    return name.startswith(RELEVANT_PREFIXES)


def diff_environment(
    before: Mapping[str, str],
    after: Mapping[str, str],
) -> tuple[list[str], dict[str, str]]:
    """Return ``(new PATH segments, new or changed relevant variables)``.

    PATH is compared segment-wise as a set, so ``/foo/bar`` already being
    present never hides a new ``/foo/bar/baz``. New segments keep their
    order from ``after``.
    """
    variables = {
        key: value
        for key, value in after.items()
        if key != "PATH" and is_relevant(key) and before.get(key) != value
    }

    before_path = before.get("PATH", "")
    after_path = after.get("PATH", "")
    path_additions: list[str] = []
    if after_path and after_path != before_path:
        existing = set(before_path.split(":")) if before_path else set()
        for segment in after_path.split(":"):
            if segment and segment not in existing and segment not in path_additions:
                path_additions.append(segment)

    return path_additions, variables
