from __future__ import annotations

import random
from typing import Optional

TANK_DRAIN_PER_READING = 1.5
TANK_IDLE_DRIFT = (-0.2, 0.6)


class SimulatedTankLevel:
    """Reservoir level that drains while the pump runs and slowly refills otherwise."""

    def __init__(self, *, seed: int | None = None, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random(seed)

    def read(self, previous_level: float, *, pump_running: bool) -> float:
        if pump_running:
            level = previous_level - TANK_DRAIN_PER_READING
        else:
            level = previous_level + self._rng.uniform(*TANK_IDLE_DRIFT)
        return round(max(0.0, min(100.0, level)), 2)


__all__ = ["SimulatedTankLevel", "TANK_DRAIN_PER_READING", "TANK_IDLE_DRIFT"]
