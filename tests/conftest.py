"""
Pytest configuration and shared fixtures
"""
import os
import sys
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from mqtt_stream_agents.agents.context import AgentContext, Attribute  # noqa: E402


class FakeTransport:
    """In-memory transport double recording every call."""

    def __init__(self, params=None, ssl_context=None):
        self.params = params
        self.ssl_context = ssl_context
        self.on_message = None
        self.connected = False
        self.connect_error = None
        self.connect_calls = []
        self.disconnect_calls = 0
        self.published = []
        self.subscriptions = []

    def is_connected(self):
        return self.connected

    def connect(self, client_id, username, password):
        self.connect_calls.append((client_id, username, password))
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False

    def publish(self, topic, payload, *, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))

    def subscribe(self, topic, *, qos=0):
        self.subscriptions.append((topic, qos))

    def deliver(self, payload, topic="sensors/data"):
        self.on_message(topic, payload)


@pytest.fixture
def transports():
    """Every FakeTransport built through the factory fixture."""
    return []


@pytest.fixture
def transport_factory(transports):
    def _factory(params, ssl_context):
        t = FakeTransport(params, ssl_context)
        transports.append(t)
        return t

    return _factory


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def decrypt_calls():
    return []


@pytest.fixture
def make_context(transport_factory, notifications, decrypt_calls):
    """Build an AgentContext wired to fakes; keyword args override fields."""

    def _decrypt(value):
        decrypt_calls.append(value)
        return f"plain:{value}"

    def _make(**overrides):
        fields = dict(
            unique_id=42,
            notify=lambda records, channel: notifications.append((records, channel)),
            decrypt=_decrypt,
            transport_factory=transport_factory,
            request_parent_outputs=lambda uid, endpoint: [
                Attribute("a"),
                Attribute("b"),
                Attribute("c"),
            ],
        )
        fields.update(overrides)
        return AgentContext.create(**fields)

    return _make


@pytest.fixture
def publisher_params():
    return {
        "Broker": "broker.local",
        "Broker_Port": "1883",
        "Topic": "plant/line1",
        "ClientId": "pub-1",
        "QOS": "AtLeastOnce",
        "IsBatch": "true",
    }


@pytest.fixture
def subscriber_params():
    return {
        "Broker": "broker.local",
        "Topic": "plant/+/telemetry",
        "ClientId": "sub-1",
        "QOS": "ExactlyOnce",
        "Format": "JSON",
        "SpecifyJPath": "true",
        "PayloadDefinition": (
            '[{"Name": "temp", "Path": "$.sensor.temp", "Type": "Double"},'
            ' {"Name": "id", "Path": "id", "Type": "String"}]'
        ),
    }
