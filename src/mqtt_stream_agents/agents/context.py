"""
Agent context: what the host hands to every agent.

Provides the agent's unique id, the notification sink, the secret decryption
callback and upstream attribute negotiation. Nothing here is global; each
agent gets its own context.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence

from mqtt_stream_agents.codec.payload import FieldType
from mqtt_stream_agents.connection import PahoTransport, TransportFactory


@dataclass(frozen=True, slots=True)
class Attribute:
    """A (name, type) pair exchanged during output attribute negotiation."""

    name: str
    type: FieldType = FieldType.STRING


class NotificationSink(Protocol):
    def __call__(self, records: list[Any], channel: str) -> None: ...


ParentOutputs = Callable[[int, str], Sequence[Attribute]]


def _no_parent_outputs(unique_id: int, endpoint: str) -> Sequence[Attribute]:
    return ()


@dataclass(frozen=True, slots=True)
class AgentContext:
    """
    Rules:
    - unique_id identifies the agent in error records and log names.
    - notify receives (records, channel) with channel "Output" or "Error".
    - decrypt turns stored ciphertext into the secret; called synchronously.
    - remote_from_id, when set, replaces the configured topic.
    """

    unique_id: int
    notify: NotificationSink
    decrypt: Callable[[str], str]
    request_parent_outputs: ParentOutputs = _no_parent_outputs
    remote_from_id: Optional[int] = None
    transport_factory: TransportFactory = PahoTransport.from_parameters

    @property
    def is_remote(self) -> bool:
        return self.remote_from_id is not None

    def logger(self, kind: str) -> logging.Logger:
        """
        Agent-scoped logger name.
        """
        return logging.getLogger(f"mqtt_stream_agents.agent.{kind}.{self.unique_id}")

    @staticmethod
    def create(
        *,
        unique_id: int,
        notify: NotificationSink,
        decrypt: Callable[[str], str],
        **kwargs: Any,
    ) -> "AgentContext":
        if not isinstance(unique_id, int) or isinstance(unique_id, bool) or unique_id < 0:
            raise ValueError("unique_id must be a non-negative integer")
        if not callable(notify) or not callable(decrypt):
            raise ValueError("notify and decrypt must be callable")
        return AgentContext(unique_id=unique_id, notify=notify, decrypt=decrypt, **kwargs)
