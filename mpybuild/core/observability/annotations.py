"""
CI annotations — collapsible log groups and surfaced warnings.

On GitHub Actions (``GITHUB_ACTIONS=true``) these emit workflow commands
so the runner folds phases and lists warnings in the job summary. They go
to stderr, beside the log, so ``--json`` output on stdout stays parseable.
Everywhere else they degrade to ordinary log lines.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


def in_github_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS", "").lower() == "true"


def _escape(message: str) -> str:
    # Workflow-command data escaping
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


@contextmanager
def log_group(title: str) -> Iterator[None]:
    """Fold everything logged inside the block under ``title``."""
    if in_github_actions():
        sys.stderr.write(f"::group::{title}\n")
        sys.stderr.flush()
    else:
        logger.info("── %s ──", title)
    try:
        yield
    finally:
        if in_github_actions():
            sys.stderr.write("::endgroup::\n")
            sys.stderr.flush()


def annotate(level: str, message: str) -> None:
    """Raise a ``warning``/``error``/``notice`` annotation on the run."""
    if in_github_actions():
        sys.stderr.write(f"::{level}::{_escape(message)}\n")
        sys.stderr.flush()
    else:
        log_level = {"error": logging.ERROR, "warning": logging.WARNING}.get(
            level, logging.INFO
        )
        logger.log(log_level, "%s", message)
