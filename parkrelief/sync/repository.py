"""Locally cached view of the replicated pain event log.

The repository subscribes to the store once and folds every delivery into a
cache keyed by event id. The last delivery for an id wins: the store gives
no ordering guarantee, so a slow echo of an old write can replace a newer
one. That is accepted rather than corrected here.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any

from ..events.models import PainEvent, SyncStatus
from .gateway import InitialSyncMarker, SyncGateway

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "ParkRelief/painEvents"


@dataclass
class SaveResult:
    """Outcome of saving an event to the store."""

    event: PainEvent | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.event is not None


class EventRepository:
    """Deduplicated cache of pain events fed by a store subscription."""

    def __init__(
        self,
        gateway: SyncGateway,
        namespace: str = DEFAULT_NAMESPACE,
        resubscribe_delay: float = 5.0,
    ):
        """Initialize the repository.

        Args:
            gateway: Store to read from and write to.
            namespace: Namespace holding the pain events.
            resubscribe_delay: Seconds to wait before re-subscribing after
                the stream fails.
        """
        self.gateway = gateway
        self.namespace = namespace
        self._resubscribe_delay = resubscribe_delay
        self._events: dict[str, PainEvent] = {}
        self._initial_sync = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._dropped = 0

    def __len__(self) -> int:
        return len(self._events)

    @property
    def initial_sync_complete(self) -> bool:
        """Whether the store finished replaying its stored values.

        Until then any snapshot may be incomplete.
        """
        return self._initial_sync.is_set()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start consuming the subscription as a background task."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._consume())
        logger.info(f"Event repository subscribed to {self.namespace}")

    async def stop(self) -> None:
        """Cancel the subscription."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Event repository stopped")

    async def wait_until_synced(self, timeout: float | None = None) -> bool:
        """Wait for the initial replay to finish.

        Returns:
            True if it finished, False on timeout.
        """
        try:
            await asyncio.wait_for(self._initial_sync.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _consume(self) -> None:
        """Fold the subscription stream into the cache, forever."""
        while True:
            stream = self.gateway.subscribe(self.namespace)
            try:
                async for item in stream:
                    if isinstance(item, InitialSyncMarker):
                        if not self._initial_sync.is_set():
                            self._initial_sync.set()
                            logger.info(
                                f"Initial sync complete, {len(self._events)} events cached"
                            )
                        continue
                    self.apply(item.key, item.value)
            except Exception as e:
                logger.error(f"Subscription to {self.namespace} failed: {e}", exc_info=True)
            finally:
                await stream.aclose()

            await asyncio.sleep(self._resubscribe_delay)
            logger.info(f"Re-subscribing to {self.namespace}")

    def apply(self, key: str, value: Any) -> bool:
        """Merge one delivery into the cache.

        Malformed values are dropped. Anything delivered by the store has
        been written, so it is marked SYNCED.

        Returns:
            True if the cache was updated.
        """
        try:
            event = PainEvent.from_record(value)
        except ValueError as e:
            self._dropped += 1
            logger.debug(f"Dropping malformed delivery for {key}: {e}")
            return False

        event.sync_status = SyncStatus.SYNCED
        self._events[event.id] = event
        logger.debug(f"Merged event {event.id}")
        return True

    def get(self, event_id: str) -> PainEvent | None:
        return self._events.get(event_id)

    def snapshot(self) -> list[PainEvent]:
        """Cached events, most recent first.

        Events sharing a creation time keep their cache order.
        """
        return sorted(self._events.values(), key=lambda e: e.created_at, reverse=True)

    async def save(self, event: PainEvent) -> SaveResult:
        """Write an event to the store.

        The event is cached immediately as SYNCING and ends up SYNCED or
        FAILED once the write settles. Failures are returned, not raised.
        """
        event.sync_status = SyncStatus.SYNCING
        self._events[event.id] = event
        logger.info(f"Saving event {event.id}")

        result = await self.gateway.put(self.namespace, event.id, event.to_record())

        if result.ok:
            event.sync_status = SyncStatus.SYNCED
            logger.info(f"Event {event.id} saved")
            return SaveResult(event)

        event.sync_status = SyncStatus.FAILED
        logger.error(f"Failed to save event {event.id}: {result.error}")
        return SaveResult(event, error=result.error or result.status.value)

    def discard(self, event_id: str) -> bool:
        """Drop a FAILED event from the cache.

        Returns:
            True if an event was removed.
        """
        event = self._events.get(event_id)
        if event is None or event.sync_status is not SyncStatus.FAILED:
            return False
        del self._events[event_id]
        logger.debug(f"Discarded failed event {event_id}")
        return True

    def get_stats(self) -> dict[str, Any]:
        """Cache statistics."""
        by_status = Counter(e.sync_status.value for e in self._events.values())
        return {
            "namespace": self.namespace,
            "total_events": len(self._events),
            "events_by_status": dict(by_status),
            "dropped_deliveries": self._dropped,
            "initial_sync_complete": self.initial_sync_complete,
        }
