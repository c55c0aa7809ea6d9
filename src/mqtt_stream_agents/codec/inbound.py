"""
Inbound codec: broker payload bytes to host records.

One call to ``decode`` per received message. Nothing is kept between calls.
Every failure is turned into a single error record on the Error channel.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from mqtt_stream_agents.codec.index_ranges import iter_indexes
from mqtt_stream_agents.codec.json_path import ABSENT, extract
from mqtt_stream_agents.codec.notification import (
    ERROR_CHANNEL,
    OUTPUT_CHANNEL,
    Notification,
    build_error_record,
)
from mqtt_stream_agents.codec.payload import PayloadDefinition

logger = logging.getLogger(__name__)

FORMAT_JSON = "JSON"
FORMAT_HEX = "HEX"
FORMATS = (FORMAT_JSON, FORMAT_HEX)


class DecodeError(ValueError):
    """Raised inside the decode boundary for payloads that cannot be decoded."""


def normalize_json_text(text: str) -> str:
    """Wrap a bare object (or a half-bracketed array) into a single JSON array."""
    stripped = text.strip()
    if stripped.startswith("[") and stripped.endswith("]"):
        return stripped
    return "[" + stripped.lstrip("[").rstrip("]") + "]"


def decode_json(text: str, definition: PayloadDefinition, specify_path: bool) -> list[Any]:
    parsed = json.loads(normalize_json_text(text))
    if not isinstance(parsed, list):
        raise DecodeError("payload is not a JSON array")

    if not specify_path:
        return parsed

    records: list[Any] = []
    for element in parsed:
        if not isinstance(element, dict):
            continue
        record: dict[str, Any] = {}
        for spec in definition:
            value = extract(element, spec.path)
            record[spec.name] = None if value is ABSENT else value
        records.append(record)
    return records


def decode_hex(payload: bytes, definition: PayloadDefinition) -> dict[str, str]:
    last_index = len(payload) - 1
    record: dict[str, str] = {}
    for spec in definition:
        parts = []
        for i in iter_indexes(spec.byte_indexes, last_index):
            if i > last_index:
                raise IndexError(
                    f"byte index {i} out of range for {len(payload)}-byte payload (field {spec.name!r})"
                )
            parts.append(f"{payload[i]:02X}")
        record[spec.name] = "".join(parts)
    return record


@dataclass(frozen=True, slots=True)
class InboundCodec:
    agent_id: int
    definition: PayloadDefinition = field(default_factory=PayloadDefinition)
    format: str = FORMAT_JSON
    specify_path: bool = False
    source: str = "on_message"

    def decode(self, payload: bytes) -> Notification:
        """Decode one message; never raises."""
        text: Optional[str] = None
        try:
            if self.format == FORMAT_JSON:
                text = bytes(payload).decode("utf-8")
                records = decode_json(text, self.definition, self.specify_path)
            elif self.format == FORMAT_HEX:
                records = [decode_hex(bytes(payload), self.definition)]
            else:
                raise DecodeError(f"Unknown payload format specified: {self.format}")
        except Exception as exc:
            logger.warning("Decode failed agent=%s format=%s err=%s", self.agent_id, self.format, exc)
            error = build_error_record(self.agent_id, self.source, exc, text)
            return Notification(records=[error], channel=ERROR_CHANNEL)

        logger.debug("Decoded %d record(s) agent=%s", len(records), self.agent_id)
        return Notification(records=records, channel=OUTPUT_CHANNEL)
