"""Detection source backed by the simulation generator."""

from __future__ import annotations

from typing import List, Optional

import numpy as np

from .base import DetectionSource
from ..simulation import SimulationGenerator
from ..types import Detection


class SimulatedSource(DetectionSource):
    """Ignore the frame and return synthetic detections."""

    model_backed = False

    def __init__(self, generator: SimulationGenerator) -> None:
        self.generator = generator

    def detect(self, image: Optional[np.ndarray] = None) -> List[Detection]:
        return self.generator.simulate()
