import json
import re

import pytest

from mqtt_stream_agents.codec.inbound import InboundCodec, normalize_json_text
from mqtt_stream_agents.codec.notification import ERROR_CHANNEL, OUTPUT_CHANNEL, UNDECODABLE_PLACEHOLDER
from mqtt_stream_agents.codec.outbound import encode_json
from mqtt_stream_agents.codec.payload import PayloadDefinition

PATHS = PayloadDefinition.from_rows(
    [
        {"Name": "temp", "Path": "$.sensor.temp", "Type": "Double"},
        {"Name": "id", "Path": "id"},
        {"Name": "missing", "Path": "nope.nothing"},
    ]
)


@pytest.mark.parametrize(
    "text,expected",
    [
        ('{"a":1}', '[{"a":1}]'),
        ('  [{"a":1}]  ', '[{"a":1}]'),
        ('[{"a":1}', '[{"a":1}]'),
        ('{"a":1}]', '[{"a":1}]'),
    ],
)
def test_normalize_wraps_in_single_array(text, expected):
    assert normalize_json_text(text) == expected


def test_json_without_paths_passes_array_through():
    codec = InboundCodec(agent_id=1, definition=PATHS, specify_path=False)
    n = codec.decode(b'[{"a": 1}, {"b": [1, 2]}]')
    assert n.channel == OUTPUT_CHANNEL
    assert n.records == [{"a": 1}, {"b": [1, 2]}]


def test_json_single_object_is_wrapped():
    codec = InboundCodec(agent_id=1)
    n = codec.decode(b'{"a": 1}')
    assert n.records == [{"a": 1}]


def test_json_paths_build_one_record_per_object():
    codec = InboundCodec(agent_id=1, definition=PATHS, specify_path=True)
    payload = json.dumps(
        [
            {"id": "d1", "sensor": {"temp": 20.5}},
            "not an object",
            {"id": "d2", "sensor": {}},
        ]
    ).encode()
    n = codec.decode(payload)
    assert n.channel == OUTPUT_CHANNEL
    assert n.records == [
        {"temp": 20.5, "id": "d1", "missing": None},
        {"temp": None, "id": "d2", "missing": None},
    ]
    assert list(n.records[0]) == ["temp", "id", "missing"]


def test_truncated_json_becomes_error_record():
    codec = InboundCodec(agent_id=7)
    n = codec.decode(b'{"a":')
    assert n.channel == ERROR_CHANNEL
    assert len(n.records) == 1
    err = n.records[0]
    assert err["AgentId"] == 7
    assert err["Data"] == '{"a":'
    assert err["Error"] == "JSONDecodeError"
    assert err["Source"] == "on_message"
    assert err["Timestamp"]


def test_non_utf8_json_uses_placeholder():
    n = InboundCodec(agent_id=1).decode(b"\xff\xfe\xfd")
    assert n.is_error
    assert n.records[0]["Data"] == UNDECODABLE_PLACEHOLDER


def test_unknown_format_is_error():
    n = InboundCodec(agent_id=1, format="XML").decode(b"<a/>")
    assert n.is_error
    assert "Unknown payload format" in n.records[0]["DetailedError"]


HEX_DEF = PayloadDefinition.from_rows(
    [
        {"Name": "header", "ByteIndexes": "0-1"},
        {"Name": "picked", "ByteIndexes": "3,1"},
        {"Name": "tail", "ByteIndexes": "4-"},
    ]
)


def test_hex_produces_single_record_in_range_order():
    n = InboundCodec(agent_id=1, definition=HEX_DEF, format="HEX").decode(bytes([0x0A, 0xFF, 0x00, 0x7B, 0x01, 0xC8]))
    assert n.channel == OUTPUT_CHANNEL
    assert n.records == [{"header": "0AFF", "picked": "7BFF", "tail": "01C8"}]


def test_hex_values_are_even_length_uppercase():
    payload = bytes(range(0, 256, 7))
    n = InboundCodec(agent_id=1, definition=HEX_DEF, format="HEX").decode(payload)
    for value in n.records[0].values():
        assert len(value) % 2 == 0
        assert re.fullmatch(r"[0-9A-F]*", value)


def test_hex_out_of_range_index_is_error():
    n = InboundCodec(agent_id=1, definition=HEX_DEF, format="HEX").decode(b"\x01\x02")
    assert n.is_error
    assert n.records[0]["Error"] == "IndexError"
    assert n.records[0]["Data"] == UNDECODABLE_PLACEHOLDER


def test_hex_skips_malformed_tokens():
    definition = PayloadDefinition.from_rows([{"Name": "x", "ByteIndexes": "0,bogus,1"}])
    n = InboundCodec(agent_id=1, definition=definition, format="HEX").decode(b"\xab\xcd")
    assert n.records == [{"x": "ABCD"}]


def test_batch_encoding_round_trips_through_decode():
    records = [{"a": 1, "b": "two", "c": None}, {"a": 2.5, "nested": {"k": [1, 2]}}]
    n = InboundCodec(agent_id=1).decode(encode_json(records))
    assert n.records == records
