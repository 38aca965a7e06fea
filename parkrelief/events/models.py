"""Pain event model and its flat record codec.

Records stored in the replicated log are flat maps of primitives so that
every field converges independently in the store.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"

# Body areas offered by the input form. Stored as free text.
PAIN_AREAS = ("腰部", "背部", "肩頸")

DEFAULT_LOCATION = "未指定"
DEFAULT_DEVICE_STATUS = "已停止"


class SyncStatus(Enum):
    """Replication progress of a pain event."""

    NEW = "new"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"

    @property
    def label(self) -> str:
        """Display label shown next to an event."""
        return _STATUS_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> "SyncStatus":
        """Parse a wire value, accepting both codes and display labels.

        Unknown values fall back to NEW.
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip() if value is not None else ""
        for status in cls:
            if text == status.value or text == status.label:
                return status
        return cls.NEW


_STATUS_LABELS = {
    SyncStatus.NEW: "新建",
    SyncStatus.SYNCING: "同步中",
    SyncStatus.SYNCED: "成功",
    SyncStatus.FAILED: "同步失敗",
}

# Fields a delivered record must carry to be accepted. painArea may be empty.
REQUIRED_FIELDS = ("id", "timestamp", "painArea", "intensity", "duration")

MIN_INTENSITY = 1
MAX_INTENSITY = 10
MIN_DURATION_MINUTES = 1


def _to_number(value: Any) -> float | None:
    """Parse a raw value as a float, or None if it is not a number."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def clamp_intensity(value: Any) -> int:
    """Coerce a raw intensity into [1, 10], rounding half up."""
    number = _to_number(value)
    if number is None:
        return MIN_INTENSITY
    if math.isinf(number):
        return MAX_INTENSITY if number > 0 else MIN_INTENSITY
    return max(MIN_INTENSITY, min(MAX_INTENSITY, math.floor(number + 0.5)))


def coerce_duration(value: Any) -> int:
    """Coerce a raw duration in minutes to an integer >= 1 via floor."""
    number = _to_number(value)
    if number is None or math.isinf(number):
        return MIN_DURATION_MINUTES
    return max(MIN_DURATION_MINUTES, math.floor(number))


@dataclass
class PainEvent:
    """A single recorded pain event.

    Everything except ``sync_status`` is fixed at creation.
    """

    id: str
    created_at: int  # epoch milliseconds
    area: str
    intensity: int
    duration_minutes: int
    notes: str = ""
    timestamp_str: str = ""
    location: str = DEFAULT_LOCATION
    device_status: str = DEFAULT_DEVICE_STATUS
    sync_status: SyncStatus = SyncStatus.NEW

    def __post_init__(self) -> None:
        if not self.timestamp_str:
            self.timestamp_str = format_timestamp(self.created_at)

    def to_record(self) -> dict[str, Any]:
        """Convert to the flat record written to the store."""
        return {
            "id": self.id,
            "timestamp": self.created_at,
            "timestampStr": self.timestamp_str,
            "location": self.location,
            "painArea": self.area,
            "intensity": self.intensity,
            "duration": self.duration_minutes,
            "notes": self.notes,
            "deviceStatus": self.device_status,
            "syncStatus": self.sync_status.value,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "PainEvent":
        """Create from a record delivered by the store.

        Numeric intensity and duration written by other devices are brought
        back into range the same way form input is.

        Raises:
            ValueError: If the record is missing fields or has the wrong shape.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Expected a mapping, got {type(data).__name__}")

        missing = [name for name in REQUIRED_FIELDS if data.get(name) is None]
        if missing:
            raise ValueError(f"Record missing fields: {', '.join(missing)}")

        event_id = data["id"]
        if not isinstance(event_id, str) or not event_id:
            raise ValueError("Record id must be a non-empty string")

        area = data["painArea"]
        if not isinstance(area, str):
            raise ValueError(f"Record {event_id} painArea must be a string")

        try:
            created_at = int(data["timestamp"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"Record {event_id} has a non-numeric timestamp: {e}") from e

        if created_at <= 0:
            raise ValueError(f"Record {event_id} has invalid timestamp {created_at}")

        for name in ("intensity", "duration"):
            if _to_number(data[name]) is None:
                raise ValueError(f"Record {event_id} has non-numeric {name}: {data[name]!r}")

        return cls(
            id=event_id,
            created_at=created_at,
            area=area,
            intensity=clamp_intensity(data["intensity"]),
            duration_minutes=coerce_duration(data["duration"]),
            notes=str(data.get("notes") or ""),
            timestamp_str=str(data.get("timestampStr") or ""),
            location=str(data.get("location") or DEFAULT_LOCATION),
            device_status=str(data.get("deviceStatus") or DEFAULT_DEVICE_STATUS),
            sync_status=SyncStatus.parse(data.get("syncStatus")),
        )

    def to_view(self) -> dict[str, Any]:
        """Fields handed to the UI for the event list."""
        return {
            "id": self.id,
            "timestampStr": self.timestamp_str,
            "painArea": self.area,
            "intensity": self.intensity,
            "duration": self.duration_minutes,
            "syncStatus": self.sync_status.label,
            "notes": self.notes,
        }


def format_timestamp(created_at_ms: int) -> str:
    """Format epoch milliseconds as local time."""
    return datetime.fromtimestamp(created_at_ms / 1000).strftime(TIMESTAMP_FORMAT)
