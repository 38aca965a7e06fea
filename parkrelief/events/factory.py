"""Construction of pain events from raw form input."""

import itertools
import time
import uuid
from datetime import datetime
from typing import Any, Callable

from .models import TIMESTAMP_FORMAT, PainEvent, SyncStatus, clamp_intensity, coerce_duration


class EventFactory:
    """Builds PainEvents with process-unique ids.

    Ids combine the creation time with a per-factory tag and a counter, so
    events created within the same millisecond never collide.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        now: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the factory.

        Args:
            clock: Returns the current epoch time in seconds.
            now: Returns the current local datetime, used for display strings.
        """
        self._clock = clock
        self._now = now
        self._tag = uuid.uuid4().hex[:8]
        self._sequence = itertools.count()

    def _next_id(self, created_at: int) -> str:
        return f"painEvent_{created_at}_{self._tag}{next(self._sequence)}"

    def create(
        self,
        area: Any,
        intensity: Any,
        duration_minutes: Any,
        notes: Any = None,
    ) -> PainEvent:
        """Create a new pain event.

        Never raises on out-of-range input: intensity is clamped, duration
        coerced, notes trimmed.

        Args:
            area: Body area, stored as free text.
            intensity: Raw intensity value (number or numeric string).
            duration_minutes: Massage duration in minutes.
            notes: Optional free text notes.

        Returns:
            The new PainEvent with sync status NEW.
        """
        created_at = int(self._clock() * 1000)

        return PainEvent(
            id=self._next_id(created_at),
            created_at=created_at,
            area="" if area is None else str(area).strip(),
            intensity=clamp_intensity(intensity),
            duration_minutes=coerce_duration(duration_minutes),
            notes="" if notes is None else str(notes).strip(),
            timestamp_str=self._now().strftime(TIMESTAMP_FORMAT),
            sync_status=SyncStatus.NEW,
        )
