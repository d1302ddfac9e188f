from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any


@dataclass(frozen=True)
class WorkoutSample:
    """Telemetry decoded from a single notification frame.

    Every field is optional because no protocol populates all of them in one
    frame. ``None`` means the field was not present in the frame, which is
    different from a reported zero. Consumers should merge samples over time
    (see :meth:`merge`) instead of treating one sample as the full state.
    """

    speed_kph: float | None = None
    cadence_rpm: float | None = None
    power_w: int | None = None
    resistance_level: float | None = None
    distance_m: int | None = None
    elapsed_s: int | None = None
    energy_kcal: float | None = None
    heart_rate_bpm: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return only the fields present in this sample."""
        return {key: value for key, value in asdict(self).items() if value is not None}

    def is_empty(self) -> bool:
        """Return True when no field is present."""
        return not self.as_dict()

    def merge(self, newer: WorkoutSample) -> WorkoutSample:
        """Overlay the present fields of ``newer`` on top of this sample."""
        return replace(self, **newer.as_dict())
