# mqtt_stream_agents/agents/base.py

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from mqtt_stream_agents.agents.context import AgentContext, Attribute

INPUT_ENDPOINT = "Input"


class Agent(ABC):
    """
    Base class for all MQTT stream agents.

    Agents are instantiated and driven by the host:
    validate -> create -> start -> (messages / receive) -> destroy.
    Each agent owns exactly one broker connection.
    """

    kind: str = "agent"
    advanced: bool = False

    def __init__(self, context: AgentContext):
        self.context = context
        self.log = context.logger(self.kind)

    @abstractmethod
    def validate(self, parameters: Mapping[str, Any]) -> list[str]:
        """Return human-readable configuration problems; empty when valid."""
        raise NotImplementedError

    @abstractmethod
    def create(self, parameters: Mapping[str, Any]) -> None:
        """Freeze configuration and build the transport. Raises ConfigError."""
        raise NotImplementedError

    def start(self) -> None:
        """Begin work. Default: nothing to do until the first call."""

    @abstractmethod
    def destroy(self) -> None:
        """Release the broker connection. Must be safe to call repeatedly."""
        raise NotImplementedError

    @abstractmethod
    def get_output_attributes(self, endpoint: str, parameters: Mapping[str, Any]) -> list[Attribute]:
        raise NotImplementedError

    def _parent_outputs(self) -> list[Attribute]:
        return list(self.context.request_parent_outputs(self.context.unique_id, INPUT_ENDPOINT))


class ReceivingAgent(Agent):
    """An agent the host pushes record batches into."""

    @abstractmethod
    def receive(self, endpoint: str, records: list[Any]) -> None:
        raise NotImplementedError

    def get_input_attributes(self, endpoint: str, parameters: Mapping[str, Any]) -> list[Attribute]:
        return self._parent_outputs()
