"""
Notification envelope handed to the host: a batch of records on a named channel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

OUTPUT_CHANNEL = "Output"
ERROR_CHANNEL = "Error"

UNDECODABLE_PLACEHOLDER = "Error deserializing the data"


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True, slots=True)
class Notification:
    records: list[Any] = field(default_factory=list)
    channel: str = OUTPUT_CHANNEL

    @property
    def is_error(self) -> bool:
        return self.channel == ERROR_CHANNEL


def build_error_record(
    agent_id: int,
    source: str,
    exc: BaseException,
    raw: Optional[str],
) -> dict[str, Any]:
    """Structured diagnostic record for the Error channel."""
    return {
        "AgentId": agent_id,
        "Timestamp": _utc_iso(),
        "Source": source,
        "Error": type(exc).__name__,
        "DetailedError": str(exc),
        "Data": raw if raw is not None else UNDECODABLE_PLACEHOLDER,
    }
