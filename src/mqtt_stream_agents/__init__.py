"""
MQTT Stream Agents: MQTT publisher and subscriber agents for a host stream pipeline.

Subscribers decode broker payloads (JSON or raw bytes) into records; publishers
encode record batches, optionally nesting selected fields, and publish them.
"""
