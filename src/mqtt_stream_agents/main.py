"""
MQTT Stream Agents entrypoint.

CLI:
  mqtt-stream-agents listen  [--params FILE] [--kind KIND]                 -> subscribe and log records until stopped
  mqtt-stream-agents publish --records FILE [--params FILE] [--kind KIND]  -> publish one batch and exit

Parameters default to the file named by MQTT_AGENT_PARAMS.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from mqtt_stream_agents.agents.base import INPUT_ENDPOINT, Agent
from mqtt_stream_agents.agents.context import AgentContext
from mqtt_stream_agents.agents.registry import create_agent
from mqtt_stream_agents.codec.notification import ERROR_CHANNEL
from mqtt_stream_agents.config import ConfigError, load_parameters_file, load_runtime_config
from mqtt_stream_agents.connection import BrokerConnectionError
from mqtt_stream_agents.core.log_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BROKER_ERROR = 1
EXIT_CONFIG_ERROR = 2


@dataclass
class Runtime:
    shutdown: threading.Event
    agent: Optional[Agent] = None


def _install_signal_handlers(rt: Runtime) -> None:
    def _handler(signum: int, frame) -> None:  # frame is unused, keep signature
        logger.info("Received signal %s; requesting shutdown", signum)
        rt.shutdown.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _plaintext(value: str) -> str:
    # no secret store outside a host; stored values are used as-is
    return value


def _log_notification(records: list[Any], channel: str) -> None:
    log = logger.warning if channel == ERROR_CHANNEL else logger.info
    log("[%s] %d record(s): %s", channel, len(records), json.dumps(records, default=str))


def _build_agent(args: argparse.Namespace, default_kind: str) -> tuple[Agent, dict[str, Any]]:
    runtime_cfg = load_runtime_config()
    params_path = Path(args.params) if args.params else runtime_cfg.params_path
    if params_path is None:
        raise ConfigError("No parameters file given (use --params or MQTT_AGENT_PARAMS)")
    parameters = load_parameters_file(params_path)

    context = AgentContext.create(
        unique_id=runtime_cfg.agent_id,
        notify=_log_notification,
        decrypt=_plaintext,
    )
    kind = args.kind or runtime_cfg.agent_kind or default_kind
    agent = create_agent(kind, context)

    logger.info("============================================================")
    logger.info("MQTT Stream Agents %s", runtime_cfg.version)
    logger.info("Agent kind: %s (id=%s)", kind, runtime_cfg.agent_id)
    logger.info("Parameters: %s", params_path)
    logger.info("============================================================")
    return agent, parameters


def _create(agent: Agent, parameters: dict[str, Any]) -> None:
    errors = agent.validate(parameters)
    if errors:
        raise ConfigError(errors)
    agent.create(parameters)


def run_listen(args: argparse.Namespace) -> int:
    """Subscribe and block until SIGINT/SIGTERM."""
    rt = Runtime(shutdown=threading.Event())
    _install_signal_handlers(rt)

    agent, parameters = _build_agent(args, "listener_advanced")
    rt.agent = agent
    _create(agent, parameters)
    try:
        agent.start()
        logger.info("Listening; press Ctrl+C to stop")
        rt.shutdown.wait()
    finally:
        agent.destroy()
        logger.info("Stopped")
    return EXIT_OK


def run_publish(args: argparse.Namespace) -> int:
    """Publish one batch of records read from a JSON file."""
    try:
        records = json.loads(Path(args.records).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read records file {args.records}: {exc}") from exc
    if isinstance(records, dict):
        records = [records]
    if not isinstance(records, list):
        raise ConfigError("Records file must contain a JSON object or array")

    agent, parameters = _build_agent(args, "action_advanced")
    _create(agent, parameters)
    try:
        agent.start()
        agent.receive(INPUT_ENDPOINT, records)
    finally:
        agent.destroy()
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="mqtt-stream-agents")
    parser.add_argument("--log-level", default=None, help="overrides MQTT_AGENTS_LOG_LEVEL")
    sub = parser.add_subparsers(dest="cmd")

    listen = sub.add_parser("listen", help="Subscribe to a topic and log decoded records")
    listen.add_argument("--params", help="JSON file with agent parameters")
    listen.add_argument("--kind", help="listener | listener_advanced | module:Class")

    publish = sub.add_parser("publish", help="Publish a batch of records once")
    publish.add_argument("--records", required=True, help="JSON file with a record or list of records")
    publish.add_argument("--params", help="JSON file with agent parameters")
    publish.add_argument("--kind", help="action | action_advanced | module:Class")

    args = parser.parse_args(argv)
    configure_logging({"log_level": args.log_level} if args.log_level else None)

    handlers = {"listen": run_listen, "publish": run_publish}
    handler = handlers.get(args.cmd)
    if handler is None:
        parser.print_help()
        return EXIT_CONFIG_ERROR

    try:
        return handler(args)
    except ConfigError as exc:
        for err in exc.errors:
            logger.error("Configuration error: %s", err)
        return EXIT_CONFIG_ERROR
    except BrokerConnectionError as exc:
        logger.error("Broker error: %s", exc)
        return EXIT_BROKER_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
