"""
Static-const workaround — rewrite ``static const`` to ``const`` in C sources.

On ESP32 (and possibly other ports) ``static const`` data in native modules
reads back as garbage; dropping ``static`` fixes it. See
micropython/micropython#14429 and #6592.

Only live code is rewritten: matches inside ``//`` or ``/* */`` comments are
left alone. The rewrite is applied to isolated build copies, never to the
user's source tree.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

STATIC_CONST = re.compile(r"\bstatic\s+const\b")


def strip_comments(source: str) -> str:
    """Blank out C comments, keeping every offset and newline in place.

    String and character literals are skipped over so ``"http://x"`` is not
    mistaken for a comment. Unterminated comments run to end of input.
    """
    out = list(source)
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < n else ""

        if ch == "/" and nxt == "/":
            end = source.find("\n", i)
            end = n if end == -1 else end
            _blank(out, i, end)
            i = end
        elif ch == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            end = n if end == -1 else end + 2
            _blank(out, i, end)
            i = end
        elif ch in "\"'":
            i = _skip_literal(source, i)
        else:
            i += 1
    return "".join(out)


def _blank(chars: list[str], start: int, end: int) -> None:
    for j in range(start, end):
        if chars[j] != "\n":
            chars[j] = " "


def _skip_literal(source: str, start: int) -> int:
    quote = source[start]
    i = start + 1
    while i < len(source):
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote or ch == "\n":
            return i + 1
        i += 1
    return i


def rewrite_static_const(source: str) -> str | None:
    """Return the rewritten source, or None when nothing in live code matched."""
    stripped = strip_comments(source)
    if not STATIC_CONST.search(stripped):
        return None

    # Stripping preserves offsets; a match inside a comment was blanked in the copy.
    spans = [
        m.span()
        for m in STATIC_CONST.finditer(source)
        if stripped[m.start() : m.end()] == m.group()
    ]
    if not spans:
        return None

    result = source
    for start, end in reversed(spans):
        result = result[:start] + "const" + result[end:]
    return result


def apply_static_const_workaround(root: Path, patterns: Iterable[str]) -> int:
    """Rewrite every file under ``root`` matching ``patterns``.

    Returns:
        Number of files modified. Files without live matches are not
        written at all.
    """
    logger.info("Applying static const workaround...")
    modified = 0
    seen: set[Path] = set()

    for pattern in patterns:
        logger.debug("Searching for files matching: %s", root / pattern)
        for path in sorted(root.glob(pattern)):
            if path in seen or not path.is_file():
                continue
            seen.add(path)
            try:
                # latin-1 maps bytes 1:1, so untouched bytes round-trip exactly.
                content = path.read_bytes().decode("latin-1")
                rewritten = rewrite_static_const(content)
                if rewritten is None:
                    continue
                path.write_bytes(rewritten.encode("latin-1"))
            except OSError as e:
                logger.warning("Failed to process %s: %s", path, e)
                continue
            modified += 1
            logger.info("Applied workaround to: %s", path.relative_to(root))

    logger.info("Static const workaround applied to %d file(s)", modified)
    return modified
