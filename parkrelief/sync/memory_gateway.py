"""In-process store implementing the SyncGateway contract.

Useful for a single device and for tests. All subscribers of one
MemoryGateway share the same data, like clients of one store.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Mapping

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

# Pushed to open subscriptions on close
_CLOSED = object()


class MemoryGateway(SyncGateway):
    """Dictionary-backed store with per-subscriber queues."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscribers: dict[str, list[asyncio.Queue[StreamItem]]] = {}
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        self._connected = True
        logger.info("Memory store ready")
        return True

    async def close(self) -> None:
        """Disconnect and end all open subscriptions."""
        self._connected = False
        for queues in self._subscribers.values():
            for queue in queues:
                queue.put_nowait(_CLOSED)
        self._subscribers.clear()

    async def put(self, namespace: str, key: str, value: Mapping[str, Any]) -> PutResult:
        if not self._connected:
            logger.error("Cannot put: store not connected")
            return PutResult(PutStatus.NOT_INITIALIZED, key, error="Store not connected")

        error = validate_flat(value)
        if error:
            return PutResult(PutStatus.FAILED, key, error=error)

        stored = dict(value)
        self._data.setdefault(namespace, {})[key] = stored
        for queue in self._subscribers.get(namespace, []):
            queue.put_nowait(Delivery(key, dict(stored)))

        logger.debug(f"Stored {namespace}/{key}")
        return PutResult(PutStatus.ACK, key)

    async def subscribe(self, namespace: str) -> AsyncIterator[StreamItem]:
        if not self._connected:
            raise GatewayNotConnectedError("Store not connected")

        queue: asyncio.Queue[StreamItem] = asyncio.Queue()
        # Replay is queued before any later put can land behind it.
        for key, value in self._data.get(namespace, {}).items():
            queue.put_nowait(Delivery(key, dict(value)))
        queue.put_nowait(INITIAL_SYNC_COMPLETE)

        subscribers = self._subscribers.setdefault(namespace, [])
        subscribers.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in subscribers:
                subscribers.remove(queue)

    def get_value(self, namespace: str, key: str) -> dict[str, Any] | None:
        """Return the stored value for a key, if any."""
        value = self._data.get(namespace, {}).get(key)
        return dict(value) if value is not None else None

    def count(self, namespace: str) -> int:
        """Number of keys stored under a namespace."""
        return len(self._data.get(namespace, {}))
