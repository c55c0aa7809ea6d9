"""
Outbound codec: host records to broker payloads.

``is_batch`` only changes how many publishes go on the wire; the caller always
gets back the full list of (possibly composed) records for a single
downstream notification.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol

from mqtt_stream_agents.codec.composer import NestedObjectSettings, compose_with

logger = logging.getLogger(__name__)


class BrokerPublisher(Protocol):
    """The slice of the connection manager the outbound codec relies on."""

    def ensure_connected(self) -> None: ...

    def is_connected(self) -> bool: ...

    def publish(self, topic: str, payload: bytes, *, qos: int = 0, retain: bool = False) -> Any: ...


def encode_json(value: Any) -> bytes:
    return json.dumps(value, ensure_ascii=False, default=str).encode("utf-8")


@dataclass(frozen=True, slots=True)
class OutboundCodec:
    topic: str
    qos: int
    is_batch: bool = True
    nested: Optional[NestedObjectSettings] = None

    def prepare(self, record: Any) -> Any:
        if self.nested is None or not isinstance(record, dict):
            return record
        return compose_with(record, self.nested)

    def transmit(self, broker: BrokerPublisher, records: Iterable[Any]) -> Optional[list[Any]]:
        """
        Connect if needed, publish, and return the records that went out.
        Returns None when the broker still reports disconnected after connecting.
        Connection and publish failures propagate.
        """
        broker.ensure_connected()
        if not broker.is_connected():
            logger.warning("Broker not connected; nothing published to %s", self.topic)
            return None

        if not self.is_batch:
            sent: list[Any] = []
            for record in records:
                processed = self.prepare(record)
                broker.publish(self.topic, encode_json(processed), qos=self.qos, retain=False)
                sent.append(processed)
            logger.debug("Published %d record(s) individually to %s", len(sent), self.topic)
            return sent

        processed_all = [self.prepare(r) for r in records]
        broker.publish(self.topic, encode_json(processed_all), qos=self.qos, retain=False)
        logger.debug("Published batch of %d record(s) to %s", len(processed_all), self.topic)
        return processed_all
