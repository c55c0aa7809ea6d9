"""
MQTT topic rules for stream agents.

Publishers need a concrete topic name (no wildcards). Subscribers take a topic
filter where ``+`` matches one level and ``#`` matches the remaining levels.
Remote agents ignore the configured topic and use the id of the agent they
are paired with.
"""

from __future__ import annotations

from typing import Optional

MAX_TOPIC_BYTES = 65535


class TopicError(ValueError):
    """Raised when a topic name or filter is not valid MQTT."""


def _validate_common(topic: str) -> str:
    if not isinstance(topic, str) or not topic:
        raise TopicError("topic must be a non-empty string")
    if "\x00" in topic:
        raise TopicError("topic must not contain NUL characters")
    if len(topic.encode("utf-8")) > MAX_TOPIC_BYTES:
        raise TopicError(f"topic exceeds {MAX_TOPIC_BYTES} bytes")
    return topic


def validate_topic_name(topic: str) -> str:
    """A topic that can be published to."""
    _validate_common(topic)
    if "+" in topic or "#" in topic:
        raise TopicError(f"topic '{topic}' must not contain wildcards when publishing")
    return topic


def validate_topic_filter(topic: str) -> str:
    """A topic filter that can be subscribed to."""
    _validate_common(topic)
    levels = topic.split("/")
    for i, level in enumerate(levels):
        if "#" in level and (level != "#" or i != len(levels) - 1):
            raise TopicError(f"topic filter '{topic}': '#' must be the last level on its own")
        if "+" in level and level != "+":
            raise TopicError(f"topic filter '{topic}': '+' must occupy a whole level")
    return topic


def resolve_topic(configured: Optional[str], remote_from_id: Optional[int] = None) -> str:
    """Remote agents talk on the id of their paired agent."""
    if remote_from_id is not None:
        return str(remote_from_id)
    return (configured or "").strip()
