"""Pain event model and construction."""

from .factory import EventFactory
from .models import PAIN_AREAS, PainEvent, SyncStatus, clamp_intensity, coerce_duration

__all__ = [
    "EventFactory",
    "PAIN_AREAS",
    "PainEvent",
    "SyncStatus",
    "clamp_intensity",
    "coerce_duration",
]
