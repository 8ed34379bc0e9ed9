"""MQTT transport for the bridge, wrapping the threaded paho-mqtt client."""

import logging
import threading
from typing import Callable, Optional
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], None]


class TransportError(RuntimeError):
    """Raised when the broker connection or a broker request fails."""


class MqttTransport:
    """
    paho-mqtt client with automatic reconnect.

    Subscriptions are remembered and re-issued on every (re)connect,
    so the cmd topic survives broker restarts. Message handlers run
    on paho's network thread and must not block.
    """

    def __init__(
        self,
        url: str,
        client_id: str,
        username: str = "",
        password: str = "",
        keepalive: int = 60,
    ):
        parts = urlsplit(url)
        self.host = parts.hostname or "localhost"
        self.port = parts.port or 1883
        self.client_id = client_id
        self.keepalive = keepalive

        self._connected_event = threading.Event()
        self._last_reason: Optional[str] = None
        self._subscriptions: dict[str, tuple[int, MessageHandler]] = {}
        self._lock = threading.Lock()

        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        client.enable_logger(logger)
        if username:
            client.username_pw_set(username, password)
        client.reconnect_delay_set(min_delay=1, max_delay=30)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        self._client = client

    @property
    def is_connected(self) -> bool:
        return self._connected_event.is_set()

    def connect(self, timeout: float = 10.0) -> None:
        """Connect and wait for the broker's acknowledgement."""
        logger.info("Connecting to MQTT broker %s:%s", self.host, self.port)
        self._client.connect_async(self.host, self.port, self.keepalive)
        self._client.loop_start()
        if not self._connected_event.wait(timeout):
            self._client.loop_stop()
            reason = self._last_reason or "timed out"
            raise TransportError(f"MQTT connect to {self.host}:{self.port} failed: {reason}")

    def disconnect(self) -> None:
        self._client.disconnect()
        self._client.loop_stop()
        self._connected_event.clear()

    def publish(self, topic: str, payload: bytes, qos: int = 1, retain: bool = False) -> None:
        info = self._client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Publish to {topic} failed with rc={info.rc}")

    def subscribe(self, topic: str, handler: MessageHandler, qos: int = 1) -> None:
        with self._lock:
            self._subscriptions[topic] = (qos, handler)
        if self.is_connected:
            result, _ = self._client.subscribe(topic, qos=qos)
            if result != mqtt.MQTT_ERR_SUCCESS:
                raise TransportError(f"Subscribe to {topic} failed with rc={result}")

    # ── paho callbacks (network thread) ──────────────────────

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code.is_failure:
            self._last_reason = str(reason_code)
            logger.error("MQTT connection refused: %s", reason_code)
            return
        logger.info("Connected to MQTT broker %s:%s", self.host, self.port)
        with self._lock:
            subscriptions = list(self._subscriptions.items())
        for topic, (qos, _handler) in subscriptions:
            client.subscribe(topic, qos=qos)
        self._connected_event.set()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        self._connected_event.clear()
        logger.warning("Disconnected from MQTT broker (%s)", reason_code)

    def _on_message(self, client, userdata, message) -> None:
        with self._lock:
            entry = self._subscriptions.get(message.topic)
        if entry is None:
            return
        _qos, handler = entry
        try:
            handler(message.topic, message.payload)
        except Exception:
            logger.exception("MQTT handler for %s raised", message.topic)
