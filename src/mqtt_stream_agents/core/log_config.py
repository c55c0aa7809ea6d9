"""
Logging setup for the CLI.

One level for the whole package. An explicit ``log_level`` in the config
mapping beats MQTT_AGENTS_LOG_LEVEL; unset or unrecognised values mean INFO.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL_ENV = "MQTT_AGENTS_LOG_LEVEL"


def resolve_level(cfg: Optional[Mapping[str, Any]] = None) -> int:
    raw = (cfg or {}).get("log_level")
    if not isinstance(raw, str):
        raw = os.environ.get(LOG_LEVEL_ENV, "")
    name = raw.strip().upper()
    if name.isdigit():
        return int(name)
    level = logging.getLevelName(name) if name else logging.INFO
    return level if isinstance(level, int) else logging.INFO


def configure_logging(cfg: Optional[Mapping[str, Any]] = None) -> int:
    """Install the default handler and apply the resolved level to the root logger."""
    level = resolve_level(cfg)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
    return level
