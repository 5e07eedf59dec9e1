"""High level orchestration of vehicle detection and tallying."""

from __future__ import annotations

import logging
import random
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import numpy as np

from .adapter import ModelAdapter, ModelLoader
from .config import DetectionConfig
from .decoder import DetectionDecoder
from .exporter import Exporter, load_export
from .ids import new_detection_id, placeholder_plate, utc_now
from .imaging import load_image
from .preprocess import Preprocessor
from .simulation import SimulationGenerator
from .sources import DetectionSource, ModelBackedSource, SimulatedSource
from .store import AggregationStore
from .types import CountSnapshot, Detection, TallySummary

logger = logging.getLogger(__name__)


class VehicleDetectionService:
    """Main entry point tying detection sources to the running tally.

    The detection source is chosen once by :meth:`initialize`: the real
    detector when it loads, otherwise simulated detections.  Until then the
    service behaves as if the model were unavailable.
    """

    def __init__(
        self,
        config: DetectionConfig | None = None,
        *,
        loader: ModelLoader | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_detection_id,
    ) -> None:
        self.config = config or DetectionConfig()
        self.config.validate()

        self.rng = rng or random.Random(self.config.simulation_seed)
        self.clock = clock
        plate_factory = self._plate if self.config.placeholder_plates else None

        self.store = AggregationStore(history_limit=self.config.history_limit)
        self.exporter = Exporter(self.store, clock=clock)
        self.adapter = ModelAdapter(self.config, loader=loader)
        self.preprocessor = Preprocessor(self.config.input_size)
        self.decoder = DetectionDecoder(
            input_size=self.config.input_size,
            confidence_threshold=self.config.confidence_threshold,
            plate_factory=plate_factory,
            id_factory=id_factory,
            clock=clock,
        )
        self.generator = SimulationGenerator(
            rng=self.rng,
            plate_factory=plate_factory,
            id_factory=id_factory,
            clock=clock,
        )
        self._simulated = SimulatedSource(self.generator)
        self.source: DetectionSource = self._simulated

    def _plate(self) -> str:
        return placeholder_plate(self.rng)

    def initialize(self) -> bool:
        """Select the detection source, returning ``True`` for the real model."""

        if self.config.mode == "simulation":
            logger.info("Simulation mode requested; detection model will not be loaded")
            self.source = self._simulated
            return False

        self.config.ensure_paths()
        if self.adapter.initialize():
            self.source = ModelBackedSource(self.adapter, self.preprocessor, self.decoder)
        else:
            logger.info("Falling back to simulated detections")
            self.source = self._simulated
        return self.source.model_backed

    def is_real_model_active(self) -> bool:
        return self.source.model_backed

    def detect(self, image: Optional[np.ndarray], *, record: bool = True) -> List[Detection]:
        """Run the active source on ``image`` and, by default, tally the result.

        Nothing is recorded when detection fails; the error propagates.
        """

        detections = self.source.detect(image)
        if record:
            self.store.record(detections)
        return detections

    def detect_path(self, reference: str | Path, *, record: bool = True) -> List[Detection]:
        """Load the image at ``reference`` and detect vehicles in it."""

        return self.detect(load_image(reference), record=record)

    def simulate_frame(self, *, record: bool = True) -> List[Detection]:
        """Produce simulated detections regardless of the active source."""

        detections = self.generator.simulate()
        if record:
            self.store.record(detections)
        return detections

    def record(self, detections: Iterable[Detection]) -> int:
        return self.store.record(detections)

    def snapshot(self) -> CountSnapshot:
        return self.store.snapshot()

    def history(self, limit: Optional[int] = None) -> List[Detection]:
        return self.store.history(limit)

    def recent(self, limit: int = 10) -> List[Detection]:
        return self.store.recent(limit)

    def summary(self, window: int = 10) -> TallySummary:
        """Most common category, per-category shares and recent detection rate."""

        return self.store.summary(self.clock(), window)

    def reset(self) -> None:
        self.store.reset()

    def export(self) -> str:
        return self.exporter.export()

    def export_to(self, directory: str | Path) -> Path:
        return self.exporter.write(directory)

    def restore(self, text: str | bytes) -> None:
        """Replace the session tally with the contents of an export."""

        payload = load_export(text)
        self.store.load(payload.to_snapshot(), payload.to_detections())
        logger.info("Restored %d detections from export", len(payload.detections))

    def close(self) -> None:
        """Release the detection model if one was loaded."""

        self.source.close()
        self.source = self._simulated
