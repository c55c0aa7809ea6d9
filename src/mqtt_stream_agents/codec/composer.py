"""
Nested object composition for outbound records.

Selected flat fields are lifted out of a record and re-attached under a single
new field, either as an object keyed by alias or as an array of values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

SOURCE_COLUMN = "Source"
ALIAS_COLUMN = "Alias"

Record = dict[str, Any]


@dataclass(frozen=True, slots=True)
class AliasMapping:
    pairs: tuple[tuple[str, str], ...] = ()

    @staticmethod
    def from_rows(rows: Iterable[Mapping[str, Any]]) -> "AliasMapping":
        pairs = []
        for row in rows:
            source = str(row.get(SOURCE_COLUMN) or "")
            alias = str(row.get(ALIAS_COLUMN) or "")
            pairs.append((source, alias if alias.strip() else source))
        return AliasMapping(pairs=tuple(pairs))

    def sources(self) -> set[str]:
        return {source for source, _ in self.pairs}

    def __iter__(self):
        return iter(self.pairs)


@dataclass(frozen=True, slots=True)
class NestedObjectSettings:
    object_name: str
    aliases: AliasMapping
    as_array: bool = False


def compose(
    record: Mapping[str, Any],
    aliases: Iterable[tuple[str, str]],
    as_array: bool,
    object_name: str,
) -> Record:
    """
    Return a new record with the aliased fields moved under ``object_name``.

    Values are read from the input record, so a source listed twice feeds every
    alias it maps to; a repeated alias keeps the last value.
    """
    remaining: Record = dict(record)
    lifted: Record = {}
    for source, alias in aliases:
        lifted[alias] = record.get(source)
        remaining.pop(source, None)

    nested: Any = list(lifted.values()) if as_array else lifted
    # composed field always goes last
    remaining.pop(object_name, None)
    remaining[object_name] = nested
    return remaining


def compose_with(record: Mapping[str, Any], settings: NestedObjectSettings) -> Record:
    return compose(record, settings.aliases, settings.as_array, settings.object_name)
