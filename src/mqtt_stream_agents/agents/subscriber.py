"""
Subscriber agents: broker messages become host records.

Both variants connect and subscribe at start(). Each received message is
decoded on the transport's network thread and forwarded immediately; decode
failures are forwarded as error records and never stop the subscription.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from mqtt_stream_agents.agents.base import Agent
from mqtt_stream_agents.agents.context import Attribute
from mqtt_stream_agents.codec.inbound import FORMAT_JSON, InboundCodec
from mqtt_stream_agents.codec.payload import FieldType
from mqtt_stream_agents.config import (
    SubscriberSettings,
    load_subscriber_settings,
    payload_definition,
    payload_format,
    validate_subscriber,
)
from mqtt_stream_agents.connection import ConnectionManager


class Listener(Agent):
    kind = "listener"
    advanced = False

    def __init__(self, context):
        super().__init__(context)
        self.settings: Optional[SubscriberSettings] = None
        self.connection: Optional[ConnectionManager] = None
        self.codec: Optional[InboundCodec] = None

    def validate(self, parameters: Mapping[str, Any]) -> list[str]:
        return validate_subscriber(parameters, advanced=self.advanced, remote=self.context.is_remote)

    def create(self, parameters: Mapping[str, Any]) -> None:
        settings = load_subscriber_settings(
            parameters, advanced=self.advanced, remote_from_id=self.context.remote_from_id
        )
        self.settings = settings
        self.codec = InboundCodec(
            agent_id=self.context.unique_id,
            definition=settings.definition,
            format=settings.format,
            specify_path=settings.specify_path,
        )
        self.connection = ConnectionManager(
            settings.connection, self.context.decrypt, factory=self.context.transport_factory
        )
        self.connection.set_message_handler(self.on_message)
        self.log.info(
            "Created subscriber topic=%s format=%s fields=%d",
            settings.topic,
            settings.format,
            len(settings.definition),
        )

    def start(self) -> None:
        if self.connection is None or self.settings is None:
            raise RuntimeError("start() called before create()")
        if self.connection.is_connected():
            return
        self.connection.ensure_connected()
        self.connection.subscribe(self.settings.topic, qos=self.settings.connection.qos)

    def on_message(self, topic: str, payload: bytes) -> None:
        notification = self.codec.decode(payload)
        if notification.is_error:
            self.log.warning("Message on %s could not be decoded", topic)
        self.context.notify(notification.records, notification.channel)

    def destroy(self) -> None:
        if self.connection is not None:
            self.connection.teardown()

    def get_output_attributes(self, endpoint: str, parameters: Mapping[str, Any]) -> list[Attribute]:
        """Declared types in JSON mode; HEX fields are always strings."""
        json_mode = payload_format(parameters) == FORMAT_JSON
        return [
            Attribute(spec.name, spec.type if json_mode else FieldType.STRING)
            for spec in payload_definition(parameters)
        ]


class ListenerAdvanced(Listener):
    kind = "listener_advanced"
    advanced = True
