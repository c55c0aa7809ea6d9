"""
Broker connection lifecycle for MQTT stream agents.

Builds one transport per agent from its connection parameters (TLS materials
and credentials included), connects it once before first use, and tears it
down on destroy. Secrets go through the host's decrypt callback.
"""

from __future__ import annotations

import contextlib
import logging
import os
import ssl
import tempfile
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Protocol

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

DEFAULT_PORT = 1883
DEFAULT_KEEPALIVE_S = 60
DEFAULT_CONNECT_TIMEOUT_S = 10.0

Decrypt = Callable[[str], str]
MessageHandler = Callable[[str, bytes], None]

# Protocol names as offered by the host settings; "None" lets OpenSSL negotiate.
TLS_PROTOCOLS: dict[str, Optional[ssl.TLSVersion]] = {
    "None": None,
    "TLSv1_0": ssl.TLSVersion.TLSv1,
    "TLSv1_1": ssl.TLSVersion.TLSv1_1,
    "TLSv1_2": ssl.TLSVersion.TLSv1_2,
    "TLSv1_3": ssl.TLSVersion.TLSv1_3,
}


class BrokerConnectionError(RuntimeError):
    """Raised when connect, publish or subscribe fails at the transport layer."""


def _new_client_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class ConnectionParameters:
    broker: str
    port: int = DEFAULT_PORT
    client_id: str = field(default_factory=_new_client_id)
    qos: int = 2
    secure: bool = False
    tls_protocol: str = ""
    ca_cert: str = field(default="", repr=False)
    client_cert: str = field(default="", repr=False)
    cert_password: str = field(default="", repr=False)  # ciphertext
    username: str = ""
    password: str = field(default="", repr=False)  # ciphertext
    keepalive: int = DEFAULT_KEEPALIVE_S
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S


# -------------------------
# TLS
# -------------------------
def is_known_tls_protocol(name: Optional[str]) -> bool:
    text = (name or "").strip()
    return not text or text in TLS_PROTOCOLS


def resolve_tls_protocol(name: Optional[str]) -> Optional[ssl.TLSVersion]:
    """Pinned TLS version for a protocol name; None (negotiate) if blank or unknown."""
    text = (name or "").strip()
    if text and text not in TLS_PROTOCOLS:
        logger.warning("Unknown TLS protocol %r; falling back to negotiated version", text)
    return TLS_PROTOCOLS.get(text)


def _is_pem(material: str) -> bool:
    return "-----BEGIN" in material


def read_pem(material: str) -> str:
    """Certificate material is inline PEM text or a path to a PEM file."""
    if _is_pem(material):
        return material
    return Path(material).expanduser().read_text(encoding="utf-8")


@contextlib.contextmanager
def _pem_file(material: str) -> Iterator[str]:
    if not _is_pem(material):
        yield str(Path(material).expanduser())
        return

    # ssl only loads client chains from disk
    fd, tmp = tempfile.mkstemp(suffix=".pem")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(material)
        yield tmp
    finally:
        with contextlib.suppress(OSError):
            os.unlink(tmp)


def load_ca_certificate(ctx: ssl.SSLContext, material: str) -> None:
    ctx.load_verify_locations(cadata=read_pem(material))


def build_ssl_context(params: ConnectionParameters, decrypt: Decrypt) -> ssl.SSLContext:
    """
    CA certificate is always loaded. The client certificate is optional; its
    password is decrypted (once) before loading.
    """
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

    version = resolve_tls_protocol(params.tls_protocol)
    if version is not None:
        ctx.minimum_version = version
        ctx.maximum_version = version

    load_ca_certificate(ctx, params.ca_cert)

    if params.client_cert.strip():
        password = decrypt(params.cert_password) if params.cert_password else None
        with _pem_file(params.client_cert) as path:
            ctx.load_cert_chain(path, password=password or None)
        logger.debug("Loaded client certificate for %s", params.broker)

    return ctx


# -------------------------
# Transport
# -------------------------
class Transport(Protocol):
    """What the agents need from an MQTT client."""

    on_message: Optional[MessageHandler]

    def is_connected(self) -> bool: ...

    def connect(self, client_id: str, username: Optional[str], password: Optional[str]) -> None: ...

    def disconnect(self) -> None: ...

    def publish(self, topic: str, payload: bytes, *, qos: int = 0, retain: bool = False) -> Any: ...

    def subscribe(self, topic: str, *, qos: int = 0) -> Any: ...


TransportFactory = Callable[[ConnectionParameters, Optional[ssl.SSLContext]], Transport]


class PahoTransport:
    """
    Transport over paho-mqtt (MQTT 3.1.1, callback API v2).

    The paho client is created on connect because the client id and
    credentials are only known then. connect() blocks until CONNACK or
    ``connect_timeout_s``.
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        ssl_context: Optional[ssl.SSLContext] = None,
        keepalive: int = DEFAULT_KEEPALIVE_S,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
    ) -> None:
        self.host = host
        self.port = port
        self.keepalive = keepalive
        self.connect_timeout_s = connect_timeout_s
        self.on_message: Optional[MessageHandler] = None

        self._ssl_context = ssl_context
        self._client: Optional[mqtt.Client] = None
        self._connack = threading.Event()
        self._connack_error: Optional[str] = None

    @classmethod
    def from_parameters(
        cls, params: ConnectionParameters, ssl_context: Optional[ssl.SSLContext]
    ) -> "PahoTransport":
        return cls(
            params.broker,
            params.port,
            ssl_context=ssl_context,
            keepalive=params.keepalive,
            connect_timeout_s=params.connect_timeout_s,
        )

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.is_failure:
            logger.error("MQTT connect failed host=%s rc=%s", self.host, reason_code)
            self._connack_error = str(reason_code)
        else:
            logger.info("Connected to MQTT broker %s:%s", self.host, self.port)
            self._connack_error = None
        self._connack.set()

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.is_failure:
            logger.warning("Unexpected disconnect host=%s rc=%s", self.host, reason_code)
        else:
            logger.info("Disconnected from MQTT broker %s:%s", self.host, self.port)

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        handler = self.on_message
        if handler is None:
            logger.warning("Message on %s with no handler attached", msg.topic)
            return
        try:
            handler(msg.topic, msg.payload)
        except Exception:
            logger.exception("Message handler failed topic=%s", msg.topic)

    def is_connected(self) -> bool:
        return bool(self._client and self._client.is_connected())

    def connect(self, client_id: str, username: Optional[str], password: Optional[str]) -> None:
        # a dropped client still runs its loop thread and reconnects under the same id
        self._release()

        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        if self._ssl_context is not None:
            client.tls_set_context(self._ssl_context)
        if username is not None:
            client.username_pw_set(username, password)

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        self._connack.clear()
        self._connack_error = None
        try:
            client.connect(self.host, self.port, keepalive=self.keepalive)
        except (OSError, ValueError) as exc:
            raise BrokerConnectionError(f"cannot reach broker {self.host}:{self.port}: {exc}") from exc
        client.loop_start()
        self._client = client

        if not self._connack.wait(timeout=self.connect_timeout_s):
            self._abandon()
            raise BrokerConnectionError(
                f"no CONNACK from {self.host}:{self.port} within {self.connect_timeout_s}s"
            )
        if self._connack_error is not None:
            self._abandon()
            raise BrokerConnectionError(f"broker {self.host}:{self.port} refused connection: {self._connack_error}")

    def _release(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()

    def _abandon(self) -> None:
        logger.debug("Abandoning connection attempt to %s:%s", self.host, self.port)
        self._release()

    def disconnect(self) -> None:
        self._release()

    def publish(self, topic: str, payload: bytes, *, qos: int = 0, retain: bool = False) -> Any:
        if not self._client:
            raise BrokerConnectionError("MQTT client not connected")
        info = self._client.publish(topic, payload=payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise BrokerConnectionError(f"publish to {topic} failed: {mqtt.error_string(info.rc)}")
        return info

    def subscribe(self, topic: str, *, qos: int = 0) -> Any:
        if not self._client:
            raise BrokerConnectionError("MQTT client not connected")
        rc, mid = self._client.subscribe(topic, qos=qos)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise BrokerConnectionError(f"subscribe to {topic} failed: {mqtt.error_string(rc)}")
        return mid


# -------------------------
# Lifecycle
# -------------------------
def build_transport(
    params: ConnectionParameters,
    decrypt: Decrypt,
    factory: TransportFactory = PahoTransport.from_parameters,
) -> Transport:
    ssl_context = build_ssl_context(params, decrypt) if params.secure else None
    return factory(params, ssl_context)


def connect(transport: Transport, client_id: str, username: Optional[str], password: Optional[str]) -> None:
    """Connect unless already connected. A blank username drops both credentials."""
    if transport.is_connected():
        return
    if not (username or "").strip():
        username = password = None
    transport.connect(client_id, username, password)


def teardown(transport: Optional[Transport]) -> None:
    """Disconnect if connected; safe to call any number of times."""
    if transport is not None and transport.is_connected():
        transport.disconnect()


class ConnectionManager:
    """
    Owns the single transport of one agent.

    The auth password is decrypted on first connect and reused afterwards.
    """

    def __init__(
        self,
        params: ConnectionParameters,
        decrypt: Decrypt,
        *,
        factory: TransportFactory = PahoTransport.from_parameters,
    ) -> None:
        self.params = params
        self._decrypt = decrypt
        self._password: Optional[str] = None
        self._password_resolved = False
        self.transport = build_transport(params, decrypt, factory)

    def _auth_password(self) -> Optional[str]:
        if not self._password_resolved:
            if self.params.password.strip():
                self._password = self._decrypt(self.params.password)
            self._password_resolved = True
        return self._password

    def is_connected(self) -> bool:
        return self.transport.is_connected()

    def ensure_connected(self) -> None:
        if self.transport.is_connected():
            return
        logger.info(
            "Connecting to %s:%s as client_id=%s (secure=%s)",
            self.params.broker,
            self.params.port,
            self.params.client_id,
            self.params.secure,
        )
        connect(self.transport, self.params.client_id, self.params.username, self._auth_password())

    def publish(self, topic: str, payload: bytes, *, qos: int = 0, retain: bool = False) -> Any:
        return self.transport.publish(topic, payload, qos=qos, retain=retain)

    def subscribe(self, topic: str, *, qos: int = 0) -> Any:
        result = self.transport.subscribe(topic, qos=qos)
        logger.info("Subscribed: %s (qos=%s)", topic, qos)
        return result

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        self.transport.on_message = handler

    def teardown(self) -> None:
        teardown(self.transport)
