"""SyncGateway backed by retained MQTT messages.

Each event is published as a retained JSON message on
``<namespace>/<key>``. The broker keeps the latest value per topic and
replays all of them to new subscribers, which gives the replay-then-follow
behaviour the repository expects. Paho runs its network loop in a thread;
everything it hands over goes through ``call_soon_threadsafe``.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Mapping

import paho.mqtt.client as mqtt

from ..config import MQTTConfig
from .gateway import (
    INITIAL_SYNC_COMPLETE,
    Delivery,
    GatewayNotConnectedError,
    PutResult,
    PutStatus,
    StreamItem,
    SyncGateway,
    validate_flat,
)

logger = logging.getLogger(__name__)


def _is_failure(reason_code: Any) -> bool:
    """Check a paho reason code (ReasonCode object or int)."""
    if hasattr(reason_code, "is_failure"):
        return bool(reason_code.is_failure)
    return reason_code != 0


class MQTTGateway(SyncGateway):
    """Replicated store on top of an MQTT broker."""

    def __init__(self, config: MQTTConfig, put_timeout: float = 10.0):
        self.config = config
        self.put_timeout = put_timeout

        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self._client.on_connect = self._handle_connect
        self._client.on_disconnect = self._handle_disconnect
        self._client.on_message = self._handle_message
        self._client.on_publish = self._handle_publish
        self._client.on_subscribe = self._handle_subscribe

        self._connected = False
        self._loop: asyncio.AbstractEventLoop | None = None

        # topic filter -> queues of active subscriptions
        self._subscriptions: dict[str, list[asyncio.Queue[StreamItem]]] = {}
        # subscribe mid -> topic filter awaiting SUBACK
        self._pending_subacks: dict[int, str] = {}
        # publish mid -> future settled by PUBACK
        self._pending_publishes: dict[int, asyncio.Future] = {}

    @staticmethod
    def topic_filter(namespace: str) -> str:
        return f"{namespace.rstrip('/')}/+"

    @property
    def is_connected(self) -> bool:
        return self._connected

    # ==================== Paho callbacks (network thread) ====================

    def _handle_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        """Handle connection to broker."""
        if _is_failure(reason_code):
            logger.error(f"Failed to connect to MQTT broker: {reason_code}")
            return

        self._connected = True
        logger.info(f"Connected to MQTT broker at {self.config.broker}:{self.config.port}")

        # Re-subscribe after reconnects so retained values are replayed again
        if self._loop:
            for topic in list(self._subscriptions):
                self._loop.call_soon_threadsafe(self._send_subscribe, topic)

    def _handle_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        """Handle disconnection from broker."""
        self._connected = False
        logger.warning(f"Disconnected from MQTT broker: {reason_code}")

    def _handle_message(
        self,
        client: mqtt.Client,
        userdata: Any,
        msg: mqtt.MQTTMessage,
    ) -> None:
        """Handle incoming message."""
        if self._loop:
            self._loop.call_soon_threadsafe(self._dispatch_message, msg.topic, msg.payload)

    def _handle_publish(
        self,
        client: mqtt.Client,
        userdata: Any,
        mid: int,
        reason_code: Any = 0,
        properties: Any = None,
    ) -> None:
        """Handle broker acknowledgement of a publish."""
        if self._loop:
            self._loop.call_soon_threadsafe(self._settle_publish, mid, reason_code)

    def _handle_subscribe(
        self,
        client: mqtt.Client,
        userdata: Any,
        mid: int,
        reason_code_list: Any = None,
        properties: Any = None,
    ) -> None:
        """Handle SUBACK."""
        if self._loop:
            self._loop.call_soon_threadsafe(self._settle_subscribe, mid)

    # ==================== Event loop side ====================

    def _dispatch_message(self, topic: str, raw: bytes) -> None:
        for topic_filter, queues in self._subscriptions.items():
            prefix = topic_filter[:-1]
            if not topic.startswith(prefix) or "/" in topic[len(prefix):]:
                continue

            if not raw:
                # Empty retained payload clears the topic
                logger.debug(f"Skipping cleared topic {topic}")
                return

            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError:
                text = str(raw)
            try:
                value = json.loads(text)
            except json.JSONDecodeError:
                value = text

            delivery = Delivery(topic[len(prefix):], value)
            for queue in queues:
                queue.put_nowait(delivery)
            logger.debug(f"Received {topic}: {text[:100]}")

    def _settle_publish(self, mid: int, reason_code: Any) -> None:
        future = self._pending_publishes.pop(mid, None)
        if future is None or future.done():
            return
        if _is_failure(reason_code):
            future.set_result(f"Broker rejected publish: {reason_code}")
        else:
            future.set_result(None)

    def _settle_subscribe(self, mid: int) -> None:
        topic = self._pending_subacks.pop(mid, None)
        if topic is None:
            return
        # Retained messages may still be in flight after SUBACK; the marker
        # only means the broker accepted the subscription.
        for queue in self._subscriptions.get(topic, []):
            queue.put_nowait(INITIAL_SYNC_COMPLETE)
        logger.debug(f"Subscription to {topic} acknowledged")

    def _send_subscribe(self, topic: str) -> None:
        result, mid = self._client.subscribe(topic, qos=self.config.qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Failed to subscribe to {topic}: {result}")
            return
        self._pending_subacks[mid] = topic
        logger.info(f"Subscribed to topic: {topic}")

    # ==================== Public API ====================

    async def connect(self) -> bool:
        """Connect to the MQTT broker.

        Returns:
            True if connection successful.
        """
        self._loop = asyncio.get_running_loop()

        if self.config.username and self.config.password:
            self._client.username_pw_set(self.config.username, self.config.password)

        try:
            self._client.connect(
                self.config.broker, self.config.port, keepalive=self.config.keepalive
            )
            self._client.loop_start()

            # Wait for connection
            for _ in range(50):  # 5 second timeout
                if self._connected:
                    return True
                await asyncio.sleep(0.1)

            logger.error("Timeout waiting for MQTT connection")
            return False

        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            return False

    async def close(self) -> None:
        """Disconnect from the MQTT broker."""
        self._client.loop_stop()
        self._client.disconnect()
        self._connected = False

        for future in self._pending_publishes.values():
            if not future.done():
                future.set_result("Disconnected before acknowledgement")
        self._pending_publishes.clear()

    async def put(self, namespace: str, key: str, value: Mapping[str, Any]) -> PutResult:
        if not self._connected or self._loop is None:
            logger.error("Cannot put: not connected to broker")
            return PutResult(PutStatus.NOT_INITIALIZED, key, error="Not connected to broker")

        error = validate_flat(value)
        if error:
            return PutResult(PutStatus.FAILED, key, error=error)

        topic = f"{namespace.rstrip('/')}/{key}"
        info = self._client.publish(
            topic, json.dumps(dict(value), ensure_ascii=False), qos=self.config.qos, retain=True
        )
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            return PutResult(PutStatus.FAILED, key, error=f"Publish failed: {mqtt.error_string(info.rc)}")

        if self.config.qos == 0:
            return PutResult(PutStatus.ACK, key)

        # The ack callback is scheduled on this loop, so it cannot run
        # before the future is registered.
        future = self._loop.create_future()
        self._pending_publishes[info.mid] = future
        try:
            error = await asyncio.wait_for(future, timeout=self.put_timeout)
        except asyncio.TimeoutError:
            self._pending_publishes.pop(info.mid, None)
            return PutResult(
                PutStatus.FAILED, key, error=f"No acknowledgement within {self.put_timeout}s"
            )

        if error:
            return PutResult(PutStatus.FAILED, key, error=error)
        return PutResult(PutStatus.ACK, key)

    async def subscribe(self, namespace: str) -> AsyncIterator[StreamItem]:
        if not self._connected:
            raise GatewayNotConnectedError("Not connected to broker")

        topic = self.topic_filter(namespace)
        queue: asyncio.Queue[StreamItem] = asyncio.Queue()
        queues = self._subscriptions.setdefault(topic, [])
        queues.append(queue)
        # Retained values are only replayed on a fresh SUBSCRIBE, so every
        # new stream sends one even if the topic is already subscribed.
        self._send_subscribe(topic)

        try:
            while True:
                yield await queue.get()
        finally:
            queues.remove(queue)
            if not queues:
                del self._subscriptions[topic]
                if self._connected:
                    self._client.unsubscribe(topic)
                    logger.info(f"Unsubscribed from topic: {topic}")

    async def check_connection(self) -> bool:
        """Check if broker is reachable."""
        if self._connected:
            return True

        try:
            test_client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
            test_client.connect(self.config.broker, self.config.port, keepalive=5)
            test_client.disconnect()
            return True
        except Exception:
            return False
