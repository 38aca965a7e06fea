"""Session orchestration: start, stop and save."""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..events.factory import EventFactory
from ..events.models import PainEvent, clamp_intensity, coerce_duration
from ..sync.repository import EventRepository, SaveResult
from .state import Phase, SessionState, format_remaining
from .timer import StopReason, TimerEngine

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[list[PainEvent]], None]


@dataclass
class FormDraft:
    """Raw form values kept until a save succeeds."""

    area: str = ""
    intensity: Any = 5
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"area": self.area, "intensity": self.intensity, "notes": self.notes}


class SessionController:
    """Ties the timer, the event factory and the repository together.

    Start and stop are synchronous and idempotent; saving suspends on the
    store write and reports failures through the returned SaveResult.
    """

    def __init__(
        self,
        timer: TimerEngine,
        factory: EventFactory,
        repository: EventRepository,
        on_refresh: RefreshCallback | None = None,
    ):
        self.timer = timer
        self.factory = factory
        self.repository = repository
        self._on_refresh = on_refresh

        self.draft = FormDraft()
        self.last_error: str | None = None
        self.sync_status_text = ""
        self._failed_event_id: str | None = None
        self._saving = False

    @property
    def state(self) -> SessionState:
        return self.timer.state

    @property
    def last_stop_reason(self) -> StopReason | None:
        """Whether the last session ended by the user or by time running out."""
        return self.timer.last_stop_reason

    @property
    def can_save(self) -> bool:
        return self.state.phase is Phase.STOPPED and not self._saving

    def handle_start(self, duration_minutes: Any) -> bool:
        """Start a session with the raw duration from the form.

        Returns:
            False if a session is already running.
        """
        if self.timer.is_running:
            logger.warning("Session already running, ignoring start")
            return False

        started = self.timer.start(coerce_duration(duration_minutes))
        if started:
            # A failed save from an earlier session stays listed as failed
            self._failed_event_id = None
        return started

    def handle_stop(self) -> bool:
        """Stop the running session.

        Returns:
            False if no session was running.
        """
        return self.timer.stop()

    async def handle_save(self, area: Any, intensity: Any, notes: Any = "") -> SaveResult:
        """Record a pain event for the stopped session.

        The event duration is the one selected at start, not the time left.
        On failure the draft is kept so the user can retry.
        """
        if not self.can_save:
            error = (
                "A save is already in progress"
                if self._saving
                else "Stop the session before saving"
            )
            logger.warning(f"Ignoring save: {error}")
            return SaveResult(None, error=error)

        self.draft = FormDraft(
            area="" if area is None else str(area),
            intensity=intensity,
            notes="" if notes is None else str(notes),
        )

        # A retry replaces the entry left behind by the failed attempt
        if self._failed_event_id:
            self.repository.discard(self._failed_event_id)
            self._failed_event_id = None

        event = self.factory.create(
            area,
            intensity,
            self.state.selected_duration_minutes,
            notes,
        )
        logger.info(f"Created event {event.id}")

        self._saving = True
        self.sync_status_text = event.sync_status.label
        try:
            result = await self.repository.save(event)
        finally:
            self._saving = False

        self.sync_status_text = event.sync_status.label
        if result.ok:
            self.last_error = None
            self.draft = FormDraft(area=self.draft.area, intensity=self.draft.intensity)
            self.refresh()
        else:
            self.last_error = result.error
            self._failed_event_id = event.id
            logger.error(f"Save failed, keeping input for retry: {result.error}")

        return result

    def refresh(self) -> list[PainEvent]:
        """Read the current event list and hand it to the refresh callback."""
        events = self.repository.snapshot()
        if self._on_refresh:
            self._on_refresh(events)
        return events

    def view(self) -> dict[str, Any]:
        """Display data for the session panel."""
        state = self.state
        return {
            "phase": state.phase.value,
            "status": state.label,
            "timer": format_remaining(state.remaining_seconds),
            "remaining_seconds": state.remaining_seconds,
            "selected_duration_minutes": state.selected_duration_minutes,
            "can_start": not state.is_running,
            "can_stop": state.is_running,
            "can_save": self.can_save,
            "auto_stopped": self.last_stop_reason is StopReason.AUTO,
            "sync_status": self.sync_status_text,
            "last_error": self.last_error,
            "draft": {
                **self.draft.to_dict(),
                "intensity": clamp_intensity(self.draft.intensity),
            },
        }

    def events_view(self) -> list[dict[str, Any]]:
        """Display data for the event list, most recent first."""
        return [event.to_view() for event in self.repository.snapshot()]
