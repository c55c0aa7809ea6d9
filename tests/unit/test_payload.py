import pytest

from mqtt_stream_agents.codec.payload import FieldSpec, FieldType, PayloadDefinition


def test_rows_keep_order_and_columns():
    d = PayloadDefinition.from_rows(
        [
            {"Name": "b", "Path": "$.b", "Type": "Int"},
            {"Name": "a", "ByteIndexes": "0-1"},
        ]
    )
    assert [f.name for f in d] == ["b", "a"]
    assert d.fields[0] == FieldSpec(name="b", path="$.b", byte_indexes="", type=FieldType.INT)
    assert d.fields[1].byte_indexes == "0-1"
    assert d.fields[1].type is FieldType.STRING


def test_type_lookup_is_case_insensitive():
    assert FieldType.parse("double") is FieldType.DOUBLE
    assert FieldType.parse(" DateTime ") is FieldType.DATETIME
    assert FieldType.parse("") is FieldType.STRING


def test_unknown_type_raises():
    with pytest.raises(ValueError):
        PayloadDefinition.from_rows([{"Name": "x", "Type": "Quaternion"}])


def test_duplicate_names_allowed():
    d = PayloadDefinition.from_rows([{"Name": "x"}, {"Name": "x"}])
    assert len(d) == 2
