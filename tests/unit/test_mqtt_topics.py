import pytest

from mqtt_stream_agents.mqtt_topics import TopicError, resolve_topic, validate_topic_filter, validate_topic_name


@pytest.mark.parametrize("topic", ["a", "a/b/c", "/leading", "trailing/", "sp ace/ok"])
def test_valid_topic_names(topic):
    assert validate_topic_name(topic) == topic


@pytest.mark.parametrize("topic", ["", "a/+/c", "a/#", "nul\x00byte", "x" * 65536])
def test_invalid_topic_names(topic):
    with pytest.raises(TopicError):
        validate_topic_name(topic)


@pytest.mark.parametrize("topic", ["a/b", "a/+/c", "+", "#", "a/#", "+/+/#"])
def test_valid_topic_filters(topic):
    assert validate_topic_filter(topic) == topic


@pytest.mark.parametrize("topic", ["a/#/c", "a#", "a/b+", "+a/b", "#/a"])
def test_invalid_topic_filters(topic):
    with pytest.raises(TopicError):
        validate_topic_filter(topic)


def test_remote_agents_use_paired_id():
    assert resolve_topic("configured", 1234) == "1234"
    assert resolve_topic(" configured ", None) == "configured"
    assert resolve_topic(None, None) == ""
