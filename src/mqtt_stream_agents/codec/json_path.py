"""
Dotted/bracketed path lookup into decoded JSON values.

Supported forms: ``$.a.b``, ``a.b[0].c``, ``['a b'].c``, ``["x"][2]``.
Lookups never raise; anything that does not resolve to a scalar is ABSENT.
"""

from __future__ import annotations

import re
from typing import Any, Optional, Union

_SEGMENT_RE = re.compile(
    r"""
    \.?(?P<name>[^.\[\]'"]+)        # member name, optionally dot-prefixed
    | \[(?P<index>\d+)\]            # [0]
    | \['(?P<sq>[^']*)'\]           # ['name']
    | \["(?P<dq>[^"]*)"\]           # ["name"]
    """,
    re.VERBOSE,
)


class _Absent:
    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()

PathSegment = Union[str, int]


def compile_path(path: str) -> Optional[list[PathSegment]]:
    """
    Split a path into member names and list indexes.
    Returns None when the path does not parse.
    """
    text = (path or "").strip()
    if text.startswith("$"):
        text = text[1:]
    if not text:
        return None

    segments: list[PathSegment] = []
    pos = 0
    while pos < len(text):
        m = _SEGMENT_RE.match(text, pos)
        if m is None:
            return None
        if m.group("index") is not None:
            segments.append(int(m.group("index")))
        elif m.group("name") is not None:
            segments.append(m.group("name").strip())
        elif m.group("sq") is not None:
            segments.append(m.group("sq"))
        else:
            segments.append(m.group("dq"))
        pos = m.end()
    return segments


def extract(value: Any, path: str) -> Any:
    """Return the scalar at ``path`` inside ``value``, or ABSENT."""
    segments = compile_path(path)
    if segments is None:
        return ABSENT

    node = value
    for seg in segments:
        if isinstance(seg, int):
            if not isinstance(node, list) or seg >= len(node):
                return ABSENT
            node = node[seg]
        else:
            if not isinstance(node, dict) or seg not in node:
                return ABSENT
            node = node[seg]

    if isinstance(node, (dict, list)):
        return ABSENT
    return node
