"""Contract for the replicated key/value store holding pain events.

The store is an external, eventually-consistent service. Writes report
their outcome as a PutResult instead of raising. Subscriptions are async
streams of deliveries that replay every stored value, then follow changes,
with an explicit marker once the replay is done.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Mapping

PRIMITIVE_TYPES = (str, int, float, bool, type(None))


class PutStatus(Enum):
    """Outcome of a write to the store."""

    ACK = "ack"
    FAILED = "failed"
    NOT_INITIALIZED = "not_initialized"  # store not connected


@dataclass
class PutResult:
    """Result of a put operation."""

    status: PutStatus
    key: str
    error: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def ok(self) -> bool:
        return self.status is PutStatus.ACK


@dataclass(frozen=True)
class Delivery:
    """A value observed under a key of the subscribed namespace."""

    key: str
    value: Any


class InitialSyncMarker:
    """Yielded once per subscription after the stored values were replayed."""

    def __repr__(self) -> str:
        return "INITIAL_SYNC_COMPLETE"


INITIAL_SYNC_COMPLETE = InitialSyncMarker()

StreamItem = Delivery | InitialSyncMarker


class GatewayNotConnectedError(RuntimeError):
    """Raised when subscribing before the gateway is connected."""


def validate_flat(value: Any) -> str | None:
    """Check that a value is a flat map of primitives.

    Returns:
        An error message, or None if the value can be stored.
    """
    if not isinstance(value, Mapping):
        return f"Value must be a mapping, got {type(value).__name__}"
    for name, item in value.items():
        if not isinstance(name, str):
            return f"Field names must be strings, got {name!r}"
        if not isinstance(item, PRIMITIVE_TYPES):
            return f"Field {name!r} is not a primitive ({type(item).__name__})"
    return None


class SyncGateway(ABC):
    """Abstract replicated store."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the store is ready for reads and writes."""

    @abstractmethod
    async def connect(self) -> bool:
        """Connect to the store.

        Returns:
            True if the connection succeeded.
        """

    @abstractmethod
    async def close(self) -> None:
        """Disconnect and end all subscriptions."""

    @abstractmethod
    async def put(self, namespace: str, key: str, value: Mapping[str, Any]) -> PutResult:
        """Write a value under ``namespace/key``.

        Settles exactly once; the gateway may retry internally.
        """

    @abstractmethod
    def subscribe(self, namespace: str) -> AsyncIterator[StreamItem]:
        """Stream every value under the namespace, then every change.

        Delivery is at-least-once and unordered across keys. Closing the
        iterator unsubscribes.

        Raises:
            GatewayNotConnectedError: If iterated before connect().
        """
