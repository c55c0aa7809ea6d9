import json

import pytest

from mqtt_stream_agents.codec.composer import AliasMapping, NestedObjectSettings
from mqtt_stream_agents.codec.outbound import OutboundCodec
from mqtt_stream_agents.connection import BrokerConnectionError


class FakeBroker:
    def __init__(self, connects=True, connect_error=None):
        self.connected = False
        self.connects = connects
        self.connect_error = connect_error
        self.ensure_calls = 0
        self.published = []

    def ensure_connected(self):
        self.ensure_calls += 1
        if self.connect_error:
            raise self.connect_error
        if self.connects:
            self.connected = True

    def is_connected(self):
        return self.connected

    def publish(self, topic, payload, *, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))


RECORDS = [{"a": 1, "b": 2}, {"a": 3, "b": 4}]
NESTED = NestedObjectSettings(object_name="obj", aliases=AliasMapping((("a", "x"),)))


def test_batch_publishes_once():
    broker = FakeBroker()
    sent = OutboundCodec(topic="t", qos=1).transmit(broker, RECORDS)
    assert sent == RECORDS
    assert len(broker.published) == 1
    topic, payload, qos, retain = broker.published[0]
    assert (topic, qos, retain) == ("t", 1, False)
    assert json.loads(payload) == RECORDS


def test_per_record_publishes_each_in_order():
    broker = FakeBroker()
    sent = OutboundCodec(topic="t", qos=0, is_batch=False).transmit(broker, RECORDS)
    assert sent == RECORDS
    assert [json.loads(p[1]) for p in broker.published] == RECORDS


def test_composition_applies_to_wire_and_return_value():
    broker = FakeBroker()
    sent = OutboundCodec(topic="t", qos=2, is_batch=False, nested=NESTED).transmit(broker, RECORDS)
    assert sent == [{"b": 2, "obj": {"x": 1}}, {"b": 4, "obj": {"x": 3}}]
    assert json.loads(broker.published[1][1]) == {"b": 4, "obj": {"x": 3}}


def test_batch_composition():
    broker = FakeBroker()
    OutboundCodec(topic="t", qos=2, nested=NESTED).transmit(broker, RECORDS)
    assert json.loads(broker.published[0][1]) == [{"b": 2, "obj": {"x": 1}}, {"b": 4, "obj": {"x": 3}}]


def test_not_connected_after_connect_publishes_nothing():
    broker = FakeBroker(connects=False)
    assert OutboundCodec(topic="t", qos=0).transmit(broker, RECORDS) is None
    assert broker.published == []


def test_connect_failure_propagates():
    broker = FakeBroker(connect_error=BrokerConnectionError("down"))
    with pytest.raises(BrokerConnectionError):
        OutboundCodec(topic="t", qos=0).transmit(broker, RECORDS)
    assert broker.published == []


def test_payload_is_utf8_json():
    broker = FakeBroker()
    OutboundCodec(topic="t", qos=0).transmit(broker, [{"name": "Zürich"}])
    assert broker.published[0][1].decode("utf-8") == '[{"name": "Zürich"}]'
