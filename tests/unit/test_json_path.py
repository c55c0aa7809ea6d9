import pytest

from mqtt_stream_agents.codec.json_path import ABSENT, compile_path, extract

DOC = {
    "id": "dev-1",
    "sensor": {"temp": 21.5, "ok": True, "none": None},
    "readings": [{"v": 1}, {"v": 2}],
    "odd key": {"x": 3},
}


@pytest.mark.parametrize(
    "path,expected",
    [
        ("id", "dev-1"),
        ("$.id", "dev-1"),
        ("sensor.temp", 21.5),
        ("$.sensor.ok", True),
        ("readings[1].v", 2),
        ("$.readings[0].v", 1),
        ("['odd key'].x", 3),
        ('["sensor"]["temp"]', 21.5),
    ],
)
def test_resolves_scalars(path, expected):
    assert extract(DOC, path) == expected


def test_null_is_a_value_not_absent():
    assert extract(DOC, "sensor.none") is None


@pytest.mark.parametrize("path", ["missing", "sensor.missing", "readings[5].v", "id.deeper", "readings.v"])
def test_missing_segments_are_absent(path):
    assert extract(DOC, path) is ABSENT


def test_containers_are_absent():
    assert extract(DOC, "sensor") is ABSENT
    assert extract(DOC, "readings") is ABSENT


@pytest.mark.parametrize("path", ["", "$", "a..b", "a[", "a[x]"])
def test_unparseable_paths_are_absent(path):
    assert compile_path(path) is None
    assert extract(DOC, path) is ABSENT


def test_absent_is_falsy():
    assert not ABSENT
