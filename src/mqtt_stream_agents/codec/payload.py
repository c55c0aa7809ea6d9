"""
Payload definition: the ordered field schema shared by both codec directions.

Built from the ``PayloadDefinition`` grid: one row per field with columns
``Name``, ``Path`` (JSON mode), ``ByteIndexes`` (HEX mode) and ``Type``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

NAME_COLUMN = "Name"
PATH_COLUMN = "Path"
TYPE_COLUMN = "Type"
BYTE_INDEXES_COLUMN = "ByteIndexes"


class FieldType(str, Enum):
    """Scalar type tags understood by the host pipeline."""

    STRING = "String"
    INT = "Int"
    LONG = "Long"
    DOUBLE = "Double"
    DECIMAL = "Decimal"
    BOOLEAN = "Boolean"
    DATETIME = "DateTime"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "FieldType":
        """Case-insensitive lookup by tag. Blank means String; unknown raises ValueError."""
        text = (raw or "").strip()
        if not text:
            return cls.STRING
        for member in cls:
            if member.value.lower() == text.lower():
                return member
        raise ValueError(f"Unknown field type: {raw!r}")


def _cell(row: Mapping[str, Any], column: str) -> str:
    value = row.get(column)
    return "" if value is None else str(value)


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    path: str = ""
    byte_indexes: str = ""
    type: FieldType = FieldType.STRING

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "FieldSpec":
        return FieldSpec(
            name=_cell(row, NAME_COLUMN),
            path=_cell(row, PATH_COLUMN),
            byte_indexes=_cell(row, BYTE_INDEXES_COLUMN),
            type=FieldType.parse(_cell(row, TYPE_COLUMN)),
        )


@dataclass(frozen=True, slots=True)
class PayloadDefinition:
    fields: tuple[FieldSpec, ...] = ()

    @staticmethod
    def from_rows(rows: Iterable[Mapping[str, Any]]) -> "PayloadDefinition":
        """Raises ValueError if a row declares an unknown type."""
        return PayloadDefinition(fields=tuple(FieldSpec.from_row(r) for r in rows))

    def __iter__(self):
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)
