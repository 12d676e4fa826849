"""Short-lived MQTT connection with TLS and auth support."""

import logging
import ssl
import threading
from types import TracebackType
from typing import Any

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion, MQTTErrorCode

from mqtt_observations.domain.models import PublishTarget

logger = logging.getLogger(__name__)


class MqttClientError(Exception):
    """Raised when connecting to or publishing through a broker fails."""

    pass


def _is_success(reason_code: Any) -> bool:
    # paho-mqtt 2.0 passes a ReasonCode object; older paths pass ints
    return (
        reason_code == 0
        or (hasattr(reason_code, "value") and reason_code.value == 0)
        or (hasattr(reason_code, "is_failure") and not reason_code.is_failure)
    )


class MqttClient:
    """One broker connection, used for a single delivery attempt.

    A failed attempt usually means a broken or stale connection, so the
    publisher opens a new client per attempt instead of reconnecting.
    Every blocking step is bounded by ``target.timeout_seconds``.

    Usage::

        with MqttClient(target) as client:
            client.publish(topic, payload, retain=True)
    """

    def __init__(self, target: PublishTarget):
        """Initialize the client.

        Args:
            target: Broker destination, credentials, and timeouts.
        """
        self.target = target
        self._connected = threading.Event()
        self._connect_failure: str | None = None

        self._client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=target.client_id,
            protocol=mqtt.MQTTv311,
        )
        self._client.on_connect = self._handle_connect
        self._client.on_disconnect = self._handle_disconnect

        if target.credentials:
            username, password = target.credentials
            self._client.username_pw_set(username, password)

        if target.use_tls:
            self._setup_tls()

    def _setup_tls(self) -> None:
        """Configure TLS/SSL for the connection."""
        context = ssl.create_default_context()
        if self.target.ca_cert:
            context.load_verify_locations(self.target.ca_cert)
        self._client.tls_set_context(context)

    def _handle_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: mqtt.ConnectFlags,
        reason_code: Any,
        properties: Any | None,
    ) -> None:
        """Handle connection callback."""
        if _is_success(reason_code):
            logger.debug("Connected to MQTT broker %s", self.target.endpoint)
        else:
            self._connect_failure = str(reason_code)
            logger.debug("Connection to %s refused: %s", self.target.endpoint, reason_code)
        self._connected.set()

    def _handle_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        disconnect_flags: mqtt.DisconnectFlags,
        reason_code: Any,
        properties: Any | None,
    ) -> None:
        """Handle disconnection callback."""
        self._connected.clear()

    def connect(self) -> None:
        """Connect to the broker and wait for the CONNACK.

        Raises:
            MqttClientError: If the connection fails, is refused, or times out.
        """
        timeout = self.target.timeout_seconds
        try:
            self._client.connect_timeout = timeout
            self._client.connect(
                self.target.host,
                self.target.port,
                keepalive=self.target.keepalive,
            )
            self._client.loop_start()
        except Exception as e:
            self._abort()
            raise MqttClientError(f"Connection to {self.target.endpoint} failed: {e}") from e

        if not self._connected.wait(timeout):
            self._abort()
            raise MqttClientError(
                f"Connection timeout after {timeout}s to {self.target.endpoint}"
            )

        if self._connect_failure is not None:
            self._abort()
            raise MqttClientError(
                f"Connection to {self.target.endpoint} refused: {self._connect_failure}"
            )

    def _abort(self) -> None:
        """Tear down a connection that never completed and close its socket."""
        self.disconnect()
        sock = self._client.socket()
        if sock is not None:
            try:
                sock.close()
            except OSError as e:
                logger.debug("Error closing socket to %s: %s", self.target.endpoint, e)

    def disconnect(self) -> None:
        """Disconnect from the broker; errors here are logged, not raised."""
        try:
            self._client.disconnect()
            self._client.loop_stop()
        except Exception as e:
            logger.debug("Error while disconnecting from %s: %s", self.target.endpoint, e)
        self._connected.clear()

    def is_connected(self) -> bool:
        """Check if the client is currently connected."""
        return self._connected.is_set() and self._connect_failure is None

    def publish(
        self,
        topic: str,
        payload: bytes | str,
        qos: int = 0,
        retain: bool = False,
    ) -> None:
        """Publish a message and wait until it has been handed to the broker.

        Args:
            topic: MQTT topic to publish to.
            payload: Message payload.
            qos: Quality of Service level (0, 1, or 2).
            retain: Whether the broker should retain the message.

        Raises:
            MqttClientError: If not connected, the publish is rejected, or
                it does not complete within the timeout.
        """
        if not self.is_connected():
            raise MqttClientError("Not connected to broker")

        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        try:
            result = self._client.publish(topic, payload, qos=qos, retain=retain)
        except ValueError as e:
            # paho rejects oversized topics and wildcards before sending
            raise MqttClientError(f"Publish rejected: {e}") from e

        if result.rc != MQTTErrorCode.MQTT_ERR_SUCCESS:
            raise MqttClientError(f"Publish failed: {result.rc}")

        try:
            result.wait_for_publish(self.target.timeout_seconds)
        except (RuntimeError, ValueError) as e:
            raise MqttClientError(f"Publish to {topic} failed: {e}") from e

        if not result.is_published():
            raise MqttClientError(
                f"Publish to {topic} not completed after {self.target.timeout_seconds}s"
            )

        logger.debug("Published to %s (qos=%d, retain=%s)", topic, qos, retain)

    def __enter__(self) -> "MqttClient":
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.disconnect()
