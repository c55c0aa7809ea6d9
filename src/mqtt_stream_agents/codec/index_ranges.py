"""
Byte index expressions for HEX payloads.

An expression is a list of tokens separated by spaces, semicolons or commas:

    7         single index
    2-5, 2..5 inclusive ascending range
    -3, ..3   0 through 3
    7-, 7..   7 through the last index of the payload

Tokens that do not match are skipped without error.
"""

from __future__ import annotations

import logging
import re
from typing import Iterator

logger = logging.getLogger(__name__)

_SPLIT_RE = re.compile(r"[ ;,]")
_TOKEN_RE = re.compile(
    r"^\s*(?:"
    r"(?P<single>\d+)"
    r"|(?P<start>\d+)?(?P<sep>-|\.\.)(?P<end>\d+)?"
    r")\s*$"
)


def iter_indexes(expr: str, last_index: int) -> Iterator[int]:
    """Yield indexes in token order, expanding ranges ascending."""
    for token in _SPLIT_RE.split(expr or ""):
        m = _TOKEN_RE.match(token)
        if m is None:
            if token.strip():
                logger.debug("Skipping malformed index token %r", token)
            continue

        if m.group("single") is not None:
            yield int(m.group("single"))
            continue

        start, end = m.group("start"), m.group("end")
        if start is None and end is None:
            # bare separator
            logger.debug("Skipping malformed index token %r", token)
            continue

        first = int(start) if start is not None else 0
        last = int(end) if end is not None else last_index
        yield from range(first, last + 1)


def parse_indexes(expr: str, last_index: int) -> list[int]:
    return list(iter_indexes(expr, last_index))
