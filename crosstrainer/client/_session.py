from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import replace

from ..protocols import WorkoutSample

SECONDS_PER_HOUR = 3600
# Rule of thumb for ergometers: 1 kJ of mechanical work ~ 1 kcal burned.
KCAL_PER_JOULE = 1 / 1000


class WorkoutSession:
    """Telemetry sink that merges sparse samples into the running workout state.

    Devices report cumulative distance and energy as lifetime totals or not at
    all, so the session also integrates its own distance (from speed) and
    energy (from positive power) between updates. Device-reported values win
    whenever present.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._state = WorkoutSample()
        self._last_update: float | None = None
        self._distance_m = 0.0
        self._energy_kcal = 0.0
        self.samples_received = 0

    def __call__(self, sample: WorkoutSample) -> None:
        self.update(sample)

    def update(self, sample: WorkoutSample) -> None:
        """Integrate since the previous update, then merge ``sample``."""
        now = self._clock()
        if self._last_update is not None:
            self._integrate(now - self._last_update)
        self._last_update = now
        self._state = self._state.merge(sample)
        self.samples_received += 1

    def _integrate(self, seconds: float) -> None:
        if seconds <= 0:
            return
        if self._state.speed_kph:
            self._distance_m += self._state.speed_kph * 1000 / SECONDS_PER_HOUR * seconds
        if self._state.power_w and self._state.power_w > 0:
            self._energy_kcal += self._state.power_w * seconds * KCAL_PER_JOULE

    @property
    def local_distance_m(self) -> float:
        """Distance integrated from speed since the session started."""
        return self._distance_m

    @property
    def local_energy_kcal(self) -> float:
        """Energy estimated from power since the session started."""
        return self._energy_kcal

    def snapshot(self) -> WorkoutSample:
        """Merged state, filling distance and energy with local estimates."""
        state = self._state
        return replace(
            state,
            distance_m=(
                state.distance_m if state.distance_m is not None else round(self._distance_m)
            ),
            energy_kcal=(
                state.energy_kcal
                if state.energy_kcal is not None
                else round(self._energy_kcal, 1)
            ),
        )
