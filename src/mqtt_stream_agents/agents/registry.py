from __future__ import annotations

import importlib
import logging

from mqtt_stream_agents.agents.base import Agent
from mqtt_stream_agents.agents.context import AgentContext
from mqtt_stream_agents.agents.publisher import ActionAgent, ActionAgentAdvanced
from mqtt_stream_agents.agents.subscriber import Listener, ListenerAdvanced
from mqtt_stream_agents.config import ConfigError

logger = logging.getLogger(__name__)

AGENT_KINDS: dict[str, type[Agent]] = {
    ActionAgent.kind: ActionAgent,
    ActionAgentAdvanced.kind: ActionAgentAdvanced,
    Listener.kind: Listener,
    ListenerAdvanced.kind: ListenerAdvanced,
}


def _parse_entrypoint(entrypoint: str) -> tuple[str, str]:
    if ":" not in entrypoint:
        raise ValueError("entrypoint must be in format 'module.path:ClassName'")
    module_path, class_name = entrypoint.split(":", 1)
    if not module_path or not class_name:
        raise ValueError("entrypoint must include both module and class")
    return module_path, class_name


def resolve_agent_class(kind: str) -> type[Agent]:
    """
    Look up an agent class by registered kind, or import it from a
    'module.path:ClassName' entrypoint. Raises ConfigError.
    """
    if kind in AGENT_KINDS:
        return AGENT_KINDS[kind]

    try:
        module_path, class_name = _parse_entrypoint(kind)
        module = importlib.import_module(module_path)
        cls = getattr(module, class_name)
    except (ValueError, ImportError, AttributeError) as exc:
        known = ", ".join(sorted(AGENT_KINDS))
        raise ConfigError(f"Unknown agent kind {kind!r} (known: {known}): {exc}") from exc

    if not isinstance(cls, type) or not issubclass(cls, Agent):
        raise ConfigError(f"entrypoint class is not an Agent subclass: {kind}")
    return cls


def create_agent(kind: str, context: AgentContext) -> Agent:
    cls = resolve_agent_class(kind)
    agent = cls(context)
    logger.debug("Instantiated %s agent id=%s", cls.kind, context.unique_id)
    return agent
