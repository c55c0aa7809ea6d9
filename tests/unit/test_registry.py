import pytest

from mqtt_stream_agents.agents.publisher import ActionAgent, ActionAgentAdvanced
from mqtt_stream_agents.agents.registry import AGENT_KINDS, create_agent, resolve_agent_class
from mqtt_stream_agents.agents.subscriber import Listener, ListenerAdvanced
from mqtt_stream_agents.config import ConfigError


def test_registered_kinds():
    assert AGENT_KINDS == {
        "action": ActionAgent,
        "action_advanced": ActionAgentAdvanced,
        "listener": Listener,
        "listener_advanced": ListenerAdvanced,
    }


def test_resolve_entrypoint():
    assert resolve_agent_class("mqtt_stream_agents.agents.subscriber:Listener") is Listener


@pytest.mark.parametrize(
    "kind",
    [
        "sprinkler",
        "mqtt_stream_agents.agents.subscriber:",
        "no_such_module_xyz:Agent",
        "mqtt_stream_agents.agents.subscriber:Missing",
        "builtins:dict",
    ],
)
def test_resolve_rejects(kind):
    with pytest.raises(ConfigError):
        resolve_agent_class(kind)


def test_create_agent_binds_context(make_context):
    ctx = make_context(unique_id=9)
    agent = create_agent("listener_advanced", ctx)
    assert isinstance(agent, ListenerAdvanced)
    assert agent.context is ctx
    assert agent.log.name == "mqtt_stream_agents.agent.listener_advanced.9"
