"""Detection source abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from ..types import Detection


class DetectionSource(ABC):
    """Abstract interface for any component that yields detections for a frame."""

    #: ``True`` when detections come from a real model.
    model_backed: bool = False

    @abstractmethod
    def detect(self, image: Optional[np.ndarray]) -> List[Detection]:
        """Return the detections for ``image`` in the order they were produced."""

    def close(self) -> None:  # pragma: no cover - nothing to release by default
        return None
