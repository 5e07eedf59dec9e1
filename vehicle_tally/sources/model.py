"""Detection source running the real detector."""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from .base import DetectionSource
from ..adapter import ModelAdapter
from ..decoder import DetectionDecoder
from ..preprocess import Preprocessor
from ..types import Detection

logger = logging.getLogger(__name__)


class ModelBackedSource(DetectionSource):
    """Preprocess a frame, run the model and decode its output.

    Errors are not caught here: :class:`~vehicle_tally.errors.InferenceError`
    and :class:`~vehicle_tally.errors.DecodeError` reach the caller unchanged.
    """

    model_backed = True

    def __init__(
        self,
        adapter: ModelAdapter,
        preprocessor: Preprocessor,
        decoder: DetectionDecoder,
    ) -> None:
        self.adapter = adapter
        self.preprocessor = preprocessor
        self.decoder = decoder

    def detect(self, image: Optional[np.ndarray]) -> List[Detection]:
        if image is None:
            raise ValueError("A frame is required for model-backed detection")
        tensor = self.preprocessor.preprocess(image)
        logger.debug("Running detector on %s tensor", tensor.shape)
        raw = self.adapter.predict(tensor)
        return self.decoder.decode(raw)

    def close(self) -> None:
        self.adapter.unload()
