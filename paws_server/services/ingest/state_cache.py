"""
Sensor State Cache

Last-observed state per sensor domain, used to detect transitions between
consecutive snapshots. Lives for as long as the service instance that owns
it; history is kept in the event logs, not here.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone


@dataclass
class SensorStateCache:
    """Previous-value cache for edge detection (None = not observed yet)"""
    # Water
    water_level: float | None = None
    water_state: str | None = None  # "low" / "high"

    # Motion / bark
    motion_active: bool | None = None
    bark_alert: bool | None = None

    # Air quality
    poor_air: bool | None = None

    # Activity
    sleeping: bool | None = None
    pet_weight: float | None = None

    # Feeder
    feeder_state: str | None = None  # "feeding" / "idle"
    feeder_weight: float | None = None

    updated_at: datetime | None = None
    snapshots_seen: int = field(default=0)

    def touch(self, now: datetime | None = None) -> None:
        self.updated_at = now or datetime.now(timezone.utc)
        self.snapshots_seen += 1

    def to_dict(self) -> dict:
        data = asdict(self)
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data
