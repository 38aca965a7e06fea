"""Tests for the MQTT-backed store, with paho mocked out."""

import asyncio
import json
import pytest
from unittest.mock import MagicMock, patch

from parkrelief.config import MQTTConfig
from parkrelief.sync import INITIAL_SYNC_COMPLETE, Delivery, GatewayNotConnectedError, PutStatus
from parkrelief.sync.mqtt_gateway import MQTTGateway

NAMESPACE = "ParkRelief/painEvents"


def make_message(topic, payload):
    msg = MagicMock()
    msg.topic = topic
    msg.payload = payload
    return msg


@pytest.fixture
def mock_client():
    with patch("parkrelief.sync.mqtt_gateway.mqtt.Client") as client_cls:
        client = MagicMock()
        client.subscribe.return_value = (0, 3)
        client_cls.return_value = client
        yield client


@pytest.fixture
def gateway(mock_client):
    gw = MQTTGateway(MQTTConfig(broker="broker.local"), put_timeout=0.05)
    mock_client.connect.side_effect = lambda *a, **kw: gw._handle_connect(mock_client, None, {}, 0)
    return gw


class TestConnection:
    """Tests for connecting to the broker."""

    @pytest.mark.asyncio
    async def test_connect(self, gateway, mock_client):
        """Test connect waits for the CONNACK callback."""
        assert await gateway.connect() is True

        assert gateway.is_connected
        mock_client.connect.assert_called_once_with("broker.local", 1883, keepalive=60)
        mock_client.loop_start.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_error(self, gateway, mock_client):
        """Test a socket error reports failure."""
        mock_client.connect.side_effect = OSError("refused")

        assert await gateway.connect() is False
        assert not gateway.is_connected

    @pytest.mark.asyncio
    async def test_credentials(self, mock_client):
        """Test username and password are passed to paho."""
        gw = MQTTGateway(MQTTConfig(username="carer", password="secret"))
        mock_client.connect.side_effect = lambda *a, **kw: gw._handle_connect(mock_client, None, {}, 0)

        await gw.connect()

        mock_client.username_pw_set.assert_called_once_with("carer", "secret")

    @pytest.mark.asyncio
    async def test_disconnect_callback(self, gateway, mock_client):
        """Test a dropped connection is noticed."""
        await gateway.connect()

        gateway._handle_disconnect(mock_client, None, {}, 7)

        assert not gateway.is_connected


class TestPut:
    """Tests for writing events."""

    @pytest.mark.asyncio
    async def test_put_not_connected(self, gateway):
        """Test writes fail fast before connect."""
        result = await gateway.put(NAMESPACE, "e1", {"id": "e1"})
        assert result.status == PutStatus.NOT_INITIALIZED

    @pytest.mark.asyncio
    async def test_put_acknowledged(self, gateway, mock_client):
        """Test a retained publish settles on PUBACK."""
        await gateway.connect()

        def publish(topic, payload, qos, retain):
            gateway._handle_publish(mock_client, None, 7, 0)
            return MagicMock(rc=0, mid=7)

        mock_client.publish.side_effect = publish

        result = await gateway.put(NAMESPACE, "e1", {"id": "e1", "painArea": "腰部"})

        assert result.ok
        topic, payload = mock_client.publish.call_args.args
        assert topic == "ParkRelief/painEvents/e1"
        assert json.loads(payload) == {"id": "e1", "painArea": "腰部"}
        assert mock_client.publish.call_args.kwargs == {"qos": 1, "retain": True}

    @pytest.mark.asyncio
    async def test_put_timeout(self, gateway, mock_client):
        """Test a missing acknowledgement fails the write."""
        await gateway.connect()
        mock_client.publish.return_value = MagicMock(rc=0, mid=8)

        result = await gateway.put(NAMESPACE, "e1", {"id": "e1"})

        assert result.status == PutStatus.FAILED
        assert "acknowledgement" in result.error
        assert gateway._pending_publishes == {}

    @pytest.mark.asyncio
    async def test_put_rejected_by_broker(self, gateway, mock_client):
        """Test a failure reason code fails the write."""
        await gateway.connect()
        reason = MagicMock(is_failure=True)

        def publish(topic, payload, qos, retain):
            gateway._handle_publish(mock_client, None, 9, reason)
            return MagicMock(rc=0, mid=9)

        mock_client.publish.side_effect = publish

        result = await gateway.put(NAMESPACE, "e1", {"id": "e1"})

        assert result.status == PutStatus.FAILED
        assert "rejected" in result.error

    @pytest.mark.asyncio
    async def test_put_publish_error(self, gateway, mock_client):
        """Test a local publish error fails the write."""
        await gateway.connect()
        mock_client.publish.return_value = MagicMock(rc=4, mid=0)

        result = await gateway.put(NAMESPACE, "e1", {"id": "e1"})

        assert result.status == PutStatus.FAILED

    @pytest.mark.asyncio
    async def test_put_rejects_nested(self, gateway, mock_client):
        """Test nested values never reach the broker."""
        await gateway.connect()

        result = await gateway.put(NAMESPACE, "e1", {"id": "e1", "tags": ["a"]})

        assert result.status == PutStatus.FAILED
        mock_client.publish.assert_not_called()


class TestSubscribe:
    """Tests for the subscription stream."""

    @pytest.mark.asyncio
    async def test_subscribe_before_connect(self, gateway):
        """Test iterating requires a connection."""
        with pytest.raises(GatewayNotConnectedError):
            await gateway.subscribe(NAMESPACE).__anext__()

    @pytest.mark.asyncio
    async def test_deliveries_and_marker(self, gateway, mock_client):
        """Test retained messages and the SUBACK marker flow through."""
        await gateway.connect()
        stream = gateway.subscribe(NAMESPACE)
        first = asyncio.create_task(stream.__anext__())
        await asyncio.sleep(0)

        mock_client.subscribe.assert_called_once_with("ParkRelief/painEvents/+", qos=1)

        gateway._handle_message(
            mock_client,
            None,
            make_message("ParkRelief/painEvents/e1", json.dumps({"id": "e1"}).encode()),
        )
        gateway._handle_subscribe(mock_client, None, 3, [0], None)

        assert await first == Delivery("e1", {"id": "e1"})
        assert await stream.__anext__() is INITIAL_SYNC_COMPLETE
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_message_filtering(self, gateway, mock_client):
        """Test foreign topics and cleared topics are skipped, bad JSON passed raw."""
        await gateway.connect()
        stream = gateway.subscribe(NAMESPACE)
        pending = asyncio.create_task(stream.__anext__())
        await asyncio.sleep(0)

        gateway._handle_message(mock_client, None, make_message("Other/e1", b"{}"))
        gateway._handle_message(mock_client, None, make_message("ParkRelief/painEvents/e1/x", b"{}"))
        gateway._handle_message(mock_client, None, make_message("ParkRelief/painEvents/e2", b""))
        gateway._handle_message(mock_client, None, make_message("ParkRelief/painEvents/e3", b"not json"))

        assert await pending == Delivery("e3", "not json")
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, gateway, mock_client):
        """Test closing the last stream unsubscribes from the broker."""
        await gateway.connect()
        stream = gateway.subscribe(NAMESPACE)
        pending = asyncio.create_task(stream.__anext__())
        await asyncio.sleep(0)

        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        mock_client.unsubscribe.assert_called_once_with("ParkRelief/painEvents/+")
        assert gateway._subscriptions == {}

    @pytest.mark.asyncio
    async def test_resubscribe_on_reconnect(self, gateway, mock_client):
        """Test a reconnect subscribes again so retained values replay."""
        await gateway.connect()
        stream = gateway.subscribe(NAMESPACE)
        pending = asyncio.create_task(stream.__anext__())
        await asyncio.sleep(0)

        gateway._handle_connect(mock_client, None, {}, 0)
        await asyncio.sleep(0)

        assert mock_client.subscribe.call_count == 2
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
