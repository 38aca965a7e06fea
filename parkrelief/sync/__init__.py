"""Synchronization with the replicated pain event store.

Provides the store contract, two store implementations and the
repository that keeps a deduplicated local view of the shared log.
"""

from .gateway import (
    INITIAL_SYNC_COMPLETE,
    Delivery,
    GatewayNotConnectedError,
    PutResult,
    PutStatus,
    SyncGateway,
)
from .memory_gateway import MemoryGateway
from .repository import DEFAULT_NAMESPACE, EventRepository, SaveResult

__all__ = [
    "DEFAULT_NAMESPACE",
    "Delivery",
    "EventRepository",
    "GatewayNotConnectedError",
    "INITIAL_SYNC_COMPLETE",
    "MemoryGateway",
    "PutResult",
    "PutStatus",
    "SaveResult",
    "SyncGateway",
]
