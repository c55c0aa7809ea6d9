"""
Publisher agents: records pushed by the host go out to the broker.

ActionAgent publishes every batch as one payload at QoS 2. ActionAgentAdvanced
adds TLS, authentication, selectable QoS, per-record transmission and nested
object composition. Both connect lazily on the first batch.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from mqtt_stream_agents.agents.base import ReceivingAgent
from mqtt_stream_agents.agents.context import Attribute
from mqtt_stream_agents.codec.notification import OUTPUT_CHANNEL
from mqtt_stream_agents.codec.outbound import OutboundCodec
from mqtt_stream_agents.config import (
    PublisherSettings,
    load_publisher_settings,
    nested_object_settings,
    validate_publisher,
)
from mqtt_stream_agents.connection import ConnectionManager


class ActionAgent(ReceivingAgent):
    kind = "action"
    advanced = False

    def __init__(self, context):
        super().__init__(context)
        self.settings: Optional[PublisherSettings] = None
        self.connection: Optional[ConnectionManager] = None
        self.codec: Optional[OutboundCodec] = None

    def validate(self, parameters: Mapping[str, Any]) -> list[str]:
        return validate_publisher(parameters, advanced=self.advanced, remote=self.context.is_remote)

    def create(self, parameters: Mapping[str, Any]) -> None:
        settings = load_publisher_settings(
            parameters, advanced=self.advanced, remote_from_id=self.context.remote_from_id
        )
        self.settings = settings
        self.connection = ConnectionManager(
            settings.connection, self.context.decrypt, factory=self.context.transport_factory
        )
        self.codec = OutboundCodec(
            topic=settings.topic,
            qos=settings.connection.qos,
            is_batch=settings.is_batch,
            nested=settings.nested,
        )
        self.log.info(
            "Created publisher topic=%s qos=%s batch=%s nested=%s",
            settings.topic,
            settings.connection.qos,
            settings.is_batch,
            settings.nested.object_name if settings.nested else None,
        )

    def receive(self, endpoint: str, records: list[Any]) -> None:
        if self.codec is None or self.connection is None:
            raise RuntimeError("receive() called before create()")
        sent = self.codec.transmit(self.connection, records)
        if sent is None:
            return
        # one downstream notification per batch, whatever the wire granularity
        self.context.notify(sent, OUTPUT_CHANNEL)

    def destroy(self) -> None:
        if self.connection is not None:
            self.connection.teardown()

    def get_input_attributes(self, endpoint: str, parameters: Mapping[str, Any]) -> list[Attribute]:
        return []

    def get_output_attributes(self, endpoint: str, parameters: Mapping[str, Any]) -> list[Attribute]:
        return self._parent_outputs()


class ActionAgentAdvanced(ActionAgent):
    kind = "action_advanced"
    advanced = True

    def get_input_attributes(self, endpoint: str, parameters: Mapping[str, Any]) -> list[Attribute]:
        return self._parent_outputs()

    def get_output_attributes(self, endpoint: str, parameters: Mapping[str, Any]) -> list[Attribute]:
        """
        Parent outputs minus the fields moved into the nested object.
        Downstream is not told about the nested object field itself.
        """
        inputs = self._parent_outputs()
        nested = nested_object_settings(parameters)
        if nested is None:
            return inputs
        lifted = nested.aliases.sources()
        return [a for a in inputs if a.name not in lifted]
