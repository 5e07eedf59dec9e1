"""Synthetic detections used when no real detector is available."""

from __future__ import annotations

import random
from datetime import datetime
from typing import Callable, List, Tuple

from .ids import PlateFactory, new_detection_id, utc_now
from .types import BoundingBox, Detection, VehicleCategory

__all__ = ["SIMULATED_CATEGORIES", "SimulationGenerator"]

SIMULATED_CATEGORIES: Tuple[VehicleCategory, ...] = tuple(
    category for category in VehicleCategory if category is not VehicleCategory.UNKNOWN
)


class SimulationGenerator:
    """Produce plausible detections with the same contract as the decoder.

    ``empty_probability`` of the calls report no vehicles; the rest report one
    to ``max_detections`` vehicles drawn uniformly from
    :data:`SIMULATED_CATEGORIES`.  Unlike the decoder this includes ``van``.
    """

    empty_probability = 0.3
    max_detections = 3
    min_confidence = 0.7
    max_position = 300.0
    width_range = (50.0, 150.0)
    height_range = (30.0, 110.0)

    def __init__(
        self,
        rng: random.Random | None = None,
        plate_factory: PlateFactory | None = None,
        id_factory: Callable[[], str] = new_detection_id,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.rng = rng or random.Random()
        self.plate_factory = plate_factory
        self.id_factory = id_factory
        self.clock = clock

    def _uniform(self, low: float, high: float) -> float:
        # random.uniform may return ``high``; keep the upper bound exclusive.
        return low + self.rng.random() * (high - low)

    def _detection(self) -> Detection:
        category = self.rng.choice(SIMULATED_CATEGORIES)
        bbox = BoundingBox(
            x=self._uniform(0.0, self.max_position),
            y=self._uniform(0.0, self.max_position),
            width=self._uniform(*self.width_range),
            height=self._uniform(*self.height_range),
        )
        return Detection(
            id=self.id_factory(),
            category=category,
            confidence=self._uniform(self.min_confidence, 1.0),
            bbox=bbox,
            observed_at=self.clock(),
            plate_guess=self.plate_factory() if self.plate_factory else None,
        )

    def simulate(self) -> List[Detection]:
        if self.rng.random() < self.empty_probability:
            return []
        count = self.rng.randint(1, self.max_detections)
        return [self._detection() for _ in range(count)]

    __call__ = simulate
