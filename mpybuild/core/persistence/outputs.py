"""
Step outputs — publishing run results to the CI platform.

GitHub Actions reads ``key=value`` lines from the file named by
``GITHUB_OUTPUT``. Lists are JSON-encoded, booleans are ``true``/``false``.
Multi-line values use the heredoc form the runner understands.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from collections.abc import Mapping
from pathlib import Path

logger = logging.getLogger(__name__)


def format_output_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    return str(value)


def write_outputs(outputs: Mapping[str, object], path: Path | None = None) -> bool:
    """Append ``outputs`` to the step output file.

    Args:
        outputs: Output name → value.
        path: Target file; defaults to ``$GITHUB_OUTPUT``.

    Returns:
        True if written, False when no output file is configured.
    """
    if path is None:
        env_path = os.environ.get("GITHUB_OUTPUT", "")
        if not env_path:
            logger.debug("GITHUB_OUTPUT not set — outputs not published")
            return False
        path = Path(env_path)

    lines: list[str] = []
    for name, value in outputs.items():
        text = format_output_value(value)
        if "\n" in text:
            delimiter = f"ghadelimiter_{uuid.uuid4().hex}"
            lines.append(f"{name}<<{delimiter}\n{text}\n{delimiter}")
        else:
            lines.append(f"{name}={text}")

    with open(path, "a", encoding="utf-8") as fh:
        fh.write("\n".join(lines) + "\n")
    logger.debug("Wrote %d output(s) to %s", len(lines), path)
    return True
