"""FastAPI application exposing the session and event log as JSON."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..config import Config
from ..session import SessionController
from ..share import generate_share_link
from ..sync import EventRepository

logger = logging.getLogger(__name__)


async def _read_body(request: Request) -> dict[str, Any]:
    """Read a JSON object body, tolerating empty or invalid bodies."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def create_app(
    config: Config,
    controller: SessionController,
    repository: EventRepository,
) -> FastAPI:
    """Create the dashboard application.

    Args:
        config: Application configuration.
        controller: Session controller handling start/stop/save.
        repository: Event repository backing the event list.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="ParkRelief Dashboard",
        description="Massage session timer and shared pain event log",
        version="0.1.0",
    )

    app.state.config = config
    app.state.controller = controller
    app.state.repository = repository

    # ==================== Session ====================

    @app.get("/api/session")
    async def api_session() -> dict[str, Any]:
        """Current session state."""
        return controller.view()

    @app.post("/api/session/start")
    async def api_session_start(request: Request) -> dict[str, Any]:
        """Start a session with the submitted duration."""
        body = await _read_body(request)
        duration = body.get("duration_minutes", config.session.default_duration_minutes)
        started = controller.handle_start(duration)
        return {"started": started, "session": controller.view()}

    @app.post("/api/session/stop")
    async def api_session_stop() -> dict[str, Any]:
        """Stop the running session."""
        stopped = controller.handle_stop()
        return {"stopped": stopped, "session": controller.view()}

    # ==================== Events ====================

    @app.get("/api/events")
    async def api_events() -> dict[str, Any]:
        """Event list, most recent first.

        ``complete`` is False until the store has replayed its stored
        events; the list may be partial until then.
        """
        events = controller.events_view()
        return {
            "count": len(events),
            "complete": repository.initial_sync_complete,
            "events": events,
        }

    @app.post("/api/events")
    async def api_save_event(request: Request) -> JSONResponse:
        """Record a pain event for the stopped session."""
        body = await _read_body(request)

        if not controller.can_save:
            return JSONResponse(
                status_code=409,
                content={"error": "Stop the session before saving", "session": controller.view()},
            )

        result = await controller.handle_save(
            body.get("area", ""),
            body.get("intensity", 5),
            body.get("notes", ""),
        )

        if result.ok:
            return JSONResponse(
                status_code=201,
                content={"event": result.event.to_view(), "session": controller.view()},
            )

        return JSONResponse(
            status_code=502 if result.event else 409,
            content={"error": result.error, "session": controller.view()},
        )

    # ==================== Misc ====================

    @app.get("/api/share-link")
    async def api_share_link(page_url: str | None = None) -> dict[str, Any]:
        """Link for family members to open the same event log."""
        url = page_url or config.dashboard.page_url
        return {"link": generate_share_link(url, repository.namespace)}

    @app.get("/api/stats")
    async def api_stats() -> dict[str, Any]:
        """Repository and store statistics."""
        stats = {
            "node_name": config.node.name,
            "timestamp": datetime.now().isoformat(),
            "store_backend": config.store.backend,
            "store_connected": repository.gateway.is_connected,
        }
        stats.update(repository.get_stats())
        return stats

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint. Always returns 200."""
        return {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "node_name": config.node.name,
            "components": {
                "store": repository.gateway.is_connected,
                "subscription": repository.is_running,
                "timer": controller.state.phase.value,
            },
        }

    return app
