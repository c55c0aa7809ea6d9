"""
Agent configuration.

Agents are configured by the host with a flat string-keyed parameter mapping;
tabular ("grid") values arrive as JSON arrays of row objects. Everything is
parsed once at create time into immutable settings.

The CLI runtime additionally reads its own settings from environment
variables, optionally loaded from standard env files.

Priority (lowest -> highest):
1) /etc/mqtt-stream-agents/agent.env (system install)
2) ~/.config/mqtt-stream-agents/.env (user install)
3) ./.env (project override)
4) process environment variables (always win)
"""

from __future__ import annotations

import json
import os
import ssl
import sys
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version as _pkg_version
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from dotenv import load_dotenv

from mqtt_stream_agents.codec.composer import AliasMapping, NestedObjectSettings
from mqtt_stream_agents.codec.inbound import FORMAT_HEX, FORMAT_JSON, FORMATS
from mqtt_stream_agents.codec.payload import (
    BYTE_INDEXES_COLUMN,
    NAME_COLUMN,
    PATH_COLUMN,
    TYPE_COLUMN,
    FieldType,
    PayloadDefinition,
)
from mqtt_stream_agents.connection import (
    DEFAULT_PORT,
    ConnectionParameters,
    is_known_tls_protocol,
    load_ca_certificate,
)
from mqtt_stream_agents.mqtt_topics import TopicError, resolve_topic, validate_topic_filter, validate_topic_name

BROKER = "Broker"
BROKER_PORT = "Broker_Port"
TOPIC = "Topic"
CLIENT_ID = "ClientId"
QOS = "QOS"
IS_BATCH = "IsBatch"

SECURE = "Secure"
TLS_PROTOCOL = "Protocol"
CA_CERT = "CACert"
CLIENT_CERT = "ClientCert"
CERT_PASSWORD = "CertPassword"

ANONYMOUS = "Anonymous"
USERNAME = "Username"
PASSWORD = "Password"

FORMAT = "Format"
SPECIFY_JPATH = "SpecifyJPath"
PAYLOAD_DEFINITION = "PayloadDefinition"

USE_NESTED_OBJECT = "UseNestedObject"
OBJECT_NAME = "ObjectName"
OUTPUT_AS_ARRAY = "OutputAsArray"
OBJECT_PROPERTIES = "ObjectProperties"

QOS_NAMES = {"atmostonce": 0, "atleastonce": 1, "exactlyonce": 2}
BASIC_QOS = 2


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid."""

    def __init__(self, errors: Iterable[str] | str) -> None:
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))


# -------------------------
# Parameter parsing
# -------------------------
def _get(parameters: Mapping[str, Any], key: str) -> str:
    value = parameters.get(key)
    return "" if value is None else str(value)


def _blank(parameters: Mapping[str, Any], key: str) -> bool:
    return not _get(parameters, key).strip()


def _parse_bool(raw: Optional[str], default: bool) -> bool:
    text = (raw or "").strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    return default


def _parse_port(raw: Optional[str]) -> int:
    try:
        port = int((raw or "").strip())
    except ValueError:
        return DEFAULT_PORT
    return port if port > 0 else DEFAULT_PORT


def parse_qos(raw: Optional[str]) -> int:
    """QoS by enum name (AtMostOnce/AtLeastOnce/ExactlyOnce) or number 0-2."""
    text = (raw or "").strip()
    if text.isdigit() and int(text) in (0, 1, 2):
        return int(text)
    try:
        return QOS_NAMES[text.lower()]
    except KeyError:
        raise ConfigError(f"Invalid quality of service: {raw!r}") from None


def parse_grid(raw: Any) -> list[dict[str, Any]]:
    """Rows of a grid parameter. Blank means no rows."""
    if raw is None:
        return []
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Grid value is not valid JSON: {exc}") from exc
    if isinstance(raw, Mapping):
        raw = raw.get("Rows", raw.get("rows", []))
    if not isinstance(raw, list) or not all(isinstance(r, Mapping) for r in raw):
        raise ConfigError("Grid value must be a list of row objects")
    return [dict(r) for r in raw]


def _anonymous(parameters: Mapping[str, Any]) -> bool:
    """Anonymous access drops any stored username and password."""
    return _parse_bool(_get(parameters, ANONYMOUS), False)


def payload_format(parameters: Mapping[str, Any]) -> str:
    return _get(parameters, FORMAT).strip() or FORMAT_JSON


def connection_parameters(parameters: Mapping[str, Any], *, advanced: bool = True) -> ConnectionParameters:
    if not advanced:
        return ConnectionParameters(broker=_get(parameters, BROKER).strip(), qos=BASIC_QOS)

    client_id = _get(parameters, CLIENT_ID).strip()
    anonymous = _anonymous(parameters)
    fields: dict[str, Any] = dict(
        broker=_get(parameters, BROKER).strip(),
        port=_parse_port(_get(parameters, BROKER_PORT)),
        qos=parse_qos(_get(parameters, QOS)),
        secure=_parse_bool(_get(parameters, SECURE), False),
        tls_protocol=_get(parameters, TLS_PROTOCOL).strip(),
        ca_cert=_get(parameters, CA_CERT),
        client_cert=_get(parameters, CLIENT_CERT),
        cert_password=_get(parameters, CERT_PASSWORD),
        username="" if anonymous else _get(parameters, USERNAME).strip(),
        password="" if anonymous else _get(parameters, PASSWORD),
    )
    if client_id:
        fields["client_id"] = client_id
    return ConnectionParameters(**fields)


def payload_definition(parameters: Mapping[str, Any]) -> PayloadDefinition:
    try:
        return PayloadDefinition.from_rows(parse_grid(parameters.get(PAYLOAD_DEFINITION)))
    except ValueError as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(str(exc)) from exc


def nested_object_settings(parameters: Mapping[str, Any]) -> Optional[NestedObjectSettings]:
    if not _parse_bool(_get(parameters, USE_NESTED_OBJECT), False):
        return None
    return NestedObjectSettings(
        object_name=_get(parameters, OBJECT_NAME).strip(),
        aliases=AliasMapping.from_rows(parse_grid(parameters.get(OBJECT_PROPERTIES))),
        as_array=_parse_bool(_get(parameters, OUTPUT_AS_ARRAY), False),
    )


# -------------------------
# Validation
# -------------------------
def _validate_connection(parameters: Mapping[str, Any], errors: list[str]) -> None:
    if _parse_bool(_get(parameters, SECURE), False):
        if _blank(parameters, CA_CERT):
            errors.append("Secure channel requested, but no Certificate Authority's certificate has been attached.")
        else:
            try:
                load_ca_certificate(ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT), _get(parameters, CA_CERT))
            except (OSError, ValueError, ssl.SSLError) as exc:
                errors.append(f"Certificate Authority's certificate could not be loaded: {exc}")
        if not is_known_tls_protocol(_get(parameters, TLS_PROTOCOL)):
            errors.append(f"Unknown secure protocol: {_get(parameters, TLS_PROTOCOL)}.")

    if not _anonymous(parameters) and not _blank(parameters, PASSWORD) and _blank(parameters, USERNAME):
        errors.append("Authentication password present, but username is not defined.")

    try:
        parse_qos(_get(parameters, QOS))
    except ConfigError as exc:
        errors.extend(exc.errors)


def _validate_topic(parameters: Mapping[str, Any], errors: list[str], *, remote: bool, subscribe: bool) -> None:
    if remote:
        return
    topic = _get(parameters, TOPIC).strip()
    if not topic:
        errors.append("No broker channel is set.")
        return
    try:
        validate_topic_filter(topic) if subscribe else validate_topic_name(topic)
    except TopicError as exc:
        errors.append(f"Invalid topic: {exc}")


def _validate_payload(parameters: Mapping[str, Any], errors: list[str], numbered: list[int] | None = None) -> None:
    def add(msg: str) -> None:
        if numbered is not None:
            msg = f"Error {numbered[0]}: {msg}"
            numbered[0] += 1
        errors.append(msg)

    fmt = payload_format(parameters)
    if fmt not in FORMATS:
        add(f"Unknown payload format: {fmt}.")

    try:
        rows = parse_grid(parameters.get(PAYLOAD_DEFINITION))
    except ConfigError as exc:
        add(exc.errors[0])
        return
    if not rows:
        add("Payload is not defined." if numbered is None else "Payload Definition is not specified.")
        return

    specify_path = _parse_bool(_get(parameters, SPECIFY_JPATH), False)
    for row_number, row in enumerate(rows, start=1):
        if not str(row.get(NAME_COLUMN) or "").strip():
            errors.append(f"Field name is not specified on row {row_number}")
        if fmt == FORMAT_JSON and specify_path and not str(row.get(PATH_COLUMN) or ""):
            errors.append(f"JSON Path is not specified on row {row_number}")
        if fmt == FORMAT_HEX and not str(row.get(BYTE_INDEXES_COLUMN) or "").strip():
            errors.append(f"Byte indexes are not specified on row {row_number}")
        if fmt == FORMAT_JSON:
            try:
                FieldType.parse(str(row.get(TYPE_COLUMN) or ""))
            except ValueError as exc:
                errors.append(f"{exc} on row {row_number}")


def validate_publisher(parameters: Mapping[str, Any], *, advanced: bool, remote: bool = False) -> list[str]:
    errors: list[str] = []
    if not advanced:
        n = 1
        if _blank(parameters, BROKER):
            errors.append(f"Error {n}: Broker is not specified.")
            n += 1
        if not remote and _blank(parameters, TOPIC):
            errors.append(f"Error {n}: Topic is not specified.")
        return errors

    if _blank(parameters, BROKER):
        errors.append("No broker address is set.")
    _validate_topic(parameters, errors, remote=remote, subscribe=False)
    _validate_connection(parameters, errors)

    if not remote and _parse_bool(_get(parameters, USE_NESTED_OBJECT), False):
        if _blank(parameters, OBJECT_NAME):
            errors.append("Nested object name is not set.")
        try:
            if not parse_grid(parameters.get(OBJECT_PROPERTIES)):
                errors.append("Nested object properties are not defined.")
        except ConfigError as exc:
            errors.extend(exc.errors)
    return errors


def validate_subscriber(parameters: Mapping[str, Any], *, advanced: bool, remote: bool = False) -> list[str]:
    errors: list[str] = []
    if not advanced:
        numbered = [1]
        if _blank(parameters, BROKER):
            errors.append(f"Error {numbered[0]}: Broker is not specified.")
            numbered[0] += 1
        if not remote and _blank(parameters, TOPIC):
            errors.append(f"Error {numbered[0]}: Topic is not specified.")
            numbered[0] += 1
        _validate_payload(parameters, errors, numbered)
        return errors

    if _blank(parameters, BROKER):
        errors.append("No broker address is set.")
    _validate_topic(parameters, errors, remote=remote, subscribe=True)
    _validate_connection(parameters, errors)
    _validate_payload(parameters, errors)
    return errors


# -------------------------
# Settings
# -------------------------
@dataclass(frozen=True, slots=True)
class PublisherSettings:
    connection: ConnectionParameters
    topic: str
    is_batch: bool = True
    nested: Optional[NestedObjectSettings] = None


@dataclass(frozen=True, slots=True)
class SubscriberSettings:
    connection: ConnectionParameters
    topic: str
    format: str = FORMAT_JSON
    specify_path: bool = False
    definition: PayloadDefinition = PayloadDefinition()


def load_publisher_settings(
    parameters: Mapping[str, Any], *, advanced: bool, remote_from_id: Optional[int] = None
) -> PublisherSettings:
    """Validate and freeze publisher parameters. Raises ConfigError."""
    remote = remote_from_id is not None
    errors = validate_publisher(parameters, advanced=advanced, remote=remote)
    if errors:
        raise ConfigError(errors)

    return PublisherSettings(
        connection=connection_parameters(parameters, advanced=advanced),
        topic=resolve_topic(_get(parameters, TOPIC), remote_from_id),
        is_batch=_parse_bool(_get(parameters, IS_BATCH), True) if advanced else True,
        nested=nested_object_settings(parameters) if advanced and not remote else None,
    )


def load_subscriber_settings(
    parameters: Mapping[str, Any], *, advanced: bool, remote_from_id: Optional[int] = None
) -> SubscriberSettings:
    """Validate and freeze subscriber parameters. Raises ConfigError."""
    remote = remote_from_id is not None
    errors = validate_subscriber(parameters, advanced=advanced, remote=remote)
    if errors:
        raise ConfigError(errors)

    return SubscriberSettings(
        connection=connection_parameters(parameters, advanced=advanced),
        topic=resolve_topic(_get(parameters, TOPIC), remote_from_id),
        format=payload_format(parameters),
        specify_path=_parse_bool(_get(parameters, SPECIFY_JPATH), False),
        definition=payload_definition(parameters),
    )


# -------------------------
# CLI runtime
# -------------------------
def package_version() -> str:
    try:
        return _pkg_version("mqtt-stream-agents")
    except PackageNotFoundError:
        return "0.0.0+dev"


def _env_paths() -> Iterable[Path]:
    # 1) system install
    yield Path("/etc/mqtt-stream-agents/agent.env")

    # 2) user config dir
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", str(Path.home())))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
    yield base / "mqtt-stream-agents" / ".env"

    # 3) project override
    yield Path(".env")


def _parse_int(key: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer for {key}: {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    params_path: Optional[Path]
    agent_kind: Optional[str]
    agent_id: int
    version: str


def load_runtime_config(*, dotenv_enabled: bool = True) -> RuntimeConfig:
    """
    Read CLI runtime settings from env files and the process environment.
    Returns an immutable RuntimeConfig. Raises ConfigError on failure.
    """
    if dotenv_enabled:
        for p in _env_paths():
            if p.is_file():
                # do not override existing env vars; later files can fill missing
                load_dotenv(p, override=False)

    raw_path = os.getenv("MQTT_AGENT_PARAMS", "").strip()
    agent_id = _parse_int("MQTT_AGENT_ID", os.getenv("MQTT_AGENT_ID", "0").strip() or "0")
    if agent_id < 0:
        raise ConfigError("MQTT_AGENT_ID must be >= 0")

    return RuntimeConfig(
        params_path=Path(raw_path).expanduser() if raw_path else None,
        agent_kind=os.getenv("MQTT_AGENT_KIND", "").strip() or None,
        agent_id=agent_id,
        version=package_version(),
    )


def load_parameters_file(path: Path) -> dict[str, Any]:
    """Agent parameters stored as a JSON object. Grid values may be inline lists."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read parameters file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Parameters file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Parameters file {path} must contain a JSON object")
    return data
