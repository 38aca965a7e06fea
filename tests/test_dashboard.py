"""Tests for the web dashboard."""

import asyncio
import pytest

from parkrelief.config import Config, DashboardConfig, NodeConfig
from parkrelief.events import EventFactory
from parkrelief.session import SessionController, TimerEngine
from parkrelief.sync import EventRepository, MemoryGateway


# Only run tests if fastapi is installed
pytest.importorskip("fastapi")


from fastapi.testclient import TestClient
from parkrelief.dashboard import create_app


@pytest.fixture
def config():
    """Create a test configuration."""
    return Config(
        node=NodeConfig(name="test-dashboard-node"),
        dashboard=DashboardConfig(public_url="https://family.example.org/relief"),
    )


@pytest.fixture
def gateway():
    """Create a connected in-memory store."""
    store = MemoryGateway()
    asyncio.run(store.connect())
    return store


@pytest.fixture
def repository(gateway):
    return EventRepository(gateway)


@pytest.fixture
def controller(repository):
    # Ticks never fire on their own during a request
    return SessionController(TimerEngine(tick_interval=3600), EventFactory(), repository)


@pytest.fixture
def client(config, controller, repository):
    """Create a test client sharing one event loop across requests."""
    app = create_app(config, controller, repository)
    with TestClient(app) as test_client:
        yield test_client


def run_session(client, minutes=10):
    client.post("/api/session/start", json={"duration_minutes": minutes})
    client.post("/api/session/stop")


class TestSessionAPI:
    """Tests for the session routes."""

    def test_initial_session(self, client):
        """Test the idle session panel."""
        response = client.get("/api/session")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "未啟動"
        assert data["timer"] == "00:00"
        assert data["can_save"] is False

    def test_start(self, client):
        """Test starting a session."""
        response = client.post("/api/session/start", json={"duration_minutes": 20})

        assert response.status_code == 200
        data = response.json()
        assert data["started"] is True
        assert data["session"]["status"] == "按摩中"
        assert data["session"]["timer"] == "20:00"
        client.post("/api/session/stop")

    def test_start_default_duration(self, client):
        """Test an empty body uses the configured duration."""
        response = client.post("/api/session/start")

        assert response.json()["session"]["selected_duration_minutes"] == 15
        client.post("/api/session/stop")

    def test_double_start(self, client):
        """Test a second start is reported and ignored."""
        client.post("/api/session/start", json={"duration_minutes": 5})

        response = client.post("/api/session/start", json={"duration_minutes": 30})

        assert response.json()["started"] is False
        assert response.json()["session"]["selected_duration_minutes"] == 5
        client.post("/api/session/stop")

    def test_stop(self, client):
        """Test stopping enables saving."""
        client.post("/api/session/start", json={"duration_minutes": 5})

        response = client.post("/api/session/stop")

        data = response.json()
        assert data["stopped"] is True
        assert data["session"]["status"] == "已停止"
        assert data["session"]["can_save"] is True

    def test_stop_when_idle(self, client):
        """Test stop without a session."""
        response = client.post("/api/session/stop")
        assert response.json()["stopped"] is False


class TestEventsAPI:
    """Tests for the event routes."""

    def test_empty_events(self, client):
        """Test the event list before anything is saved."""
        response = client.get("/api/events")

        assert response.status_code == 200
        assert response.json()["count"] == 0
        assert response.json()["events"] == []

    def test_save_requires_stopped(self, client):
        """Test saving while idle is refused."""
        response = client.post("/api/events", json={"area": "腰部", "intensity": 5})

        assert response.status_code == 409
        assert "error" in response.json()

    def test_save_event(self, client):
        """Test a save after stop returns the new event."""
        run_session(client, minutes=20)

        response = client.post(
            "/api/events",
            json={"area": "背部", "intensity": 12, "notes": " test "},
        )

        assert response.status_code == 201
        event = response.json()["event"]
        assert event["painArea"] == "背部"
        assert event["intensity"] == 10
        assert event["duration"] == 20
        assert event["notes"] == "test"
        assert event["syncStatus"] == "成功"
        assert response.json()["session"]["draft"]["notes"] == ""

    def test_saved_events_listed(self, client):
        """Test saved events appear most recent first."""
        run_session(client)
        first = client.post("/api/events", json={"area": "腰部", "intensity": 3}).json()
        second = client.post("/api/events", json={"area": "肩頸", "intensity": 7}).json()

        data = client.get("/api/events").json()

        assert data["count"] == 2
        ids = {e["id"] for e in data["events"]}
        assert ids == {first["event"]["id"], second["event"]["id"]}

    def test_save_failure(self, client, gateway):
        """Test a store failure returns 502 and keeps the draft."""
        run_session(client)
        asyncio.run(gateway.close())

        response = client.post("/api/events", json={"area": "腰部", "intensity": 4, "notes": "keep"})

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "Store not connected"
        assert data["session"]["draft"]["notes"] == "keep"
        assert data["session"]["sync_status"] == "同步失敗"

    def test_invalid_body(self, client):
        """Test a non-JSON body falls back to defaults."""
        run_session(client)

        response = client.post(
            "/api/events",
            content=b"not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 201
        assert response.json()["event"]["intensity"] == 5


class TestMiscAPI:
    """Tests for share link, stats and health routes."""

    def test_share_link_from_config(self, client):
        """Test the configured public URL is used."""
        response = client.get("/api/share-link")

        assert response.json()["link"] == (
            "https://family.example.org/relief?gun-path=ParkRelief/painEvents"
        )

    def test_share_link_page_url(self, client):
        """Test an explicit page URL wins."""
        response = client.get(
            "/api/share-link", params={"page_url": "http://localhost:8080/app?x=1#top"}
        )

        assert response.json()["link"] == (
            "http://localhost:8080/app?gun-path=ParkRelief/painEvents"
        )

    def test_api_stats(self, client):
        """Test the stats API endpoint."""
        response = client.get("/api/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["node_name"] == "test-dashboard-node"
        assert data["store_backend"] == "memory"
        assert data["store_connected"] is True
        assert data["total_events"] == 0
        assert "timestamp" in data

    def test_health(self, client):
        """Test the health check."""
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["components"]["timer"] == "idle"
