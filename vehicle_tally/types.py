"""Core data containers shared by the detection pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Mapping, Optional

import numpy as np


class VehicleCategory(str, Enum):
    """Closed taxonomy of vehicle categories tracked by the tally."""

    CAR = "car"
    BUS = "bus"
    TRUCK = "truck"
    MOTORCYCLE = "motorcycle"
    BICYCLE = "bicycle"
    VAN = "van"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned box in pixel coordinates of the analysis frame."""

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        if self.x < 0 or self.y < 0:
            raise ValueError("bounding box origin must be non-negative")
        if self.width <= 0 or self.height <= 0:
            raise ValueError("bounding box width and height must be positive")

    @property
    def right_edge(self) -> float:
        return self.x + self.width

    @property
    def bottom_edge(self) -> float:
        return self.y + self.height


@dataclass(frozen=True, slots=True)
class Detection:
    """A single classified vehicle observation from one frame.

    Attributes
    ----------
    id:
        Session-unique identifier assigned at creation.
    category:
        Vehicle category the model label was mapped to.
    confidence:
        Model score in ``[0, 1]``.
    bbox:
        Location inside the analysis frame.
    plate_guess:
        Random placeholder string when enabled.  It is never the result of
        plate recognition and carries no meaning.
    observed_at:
        Timezone-aware creation timestamp.
    """

    id: str
    category: VehicleCategory
    confidence: float
    bbox: BoundingBox
    observed_at: datetime
    plate_guess: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


@dataclass(frozen=True, slots=True)
class CountSnapshot:
    """Immutable copy of the running per-category tally."""

    counts: Mapping[VehicleCategory, int]
    total: int

    def __post_init__(self) -> None:
        normalised: Dict[VehicleCategory, int] = {category: 0 for category in VehicleCategory}
        for category, value in self.counts.items():
            normalised[VehicleCategory(category)] = int(value)
        if any(value < 0 for value in normalised.values()):
            raise ValueError("counts must be non-negative")
        if self.total != sum(normalised.values()):
            raise ValueError(
                f"total {self.total} does not match the sum of per-category counts"
            )
        object.__setattr__(self, "counts", normalised)

    @classmethod
    def empty(cls) -> "CountSnapshot":
        return cls(counts={}, total=0)

    def __getitem__(self, category: VehicleCategory | str) -> int:
        return self.counts[VehicleCategory(category)]

    def as_dict(self) -> Dict[str, int]:
        """Return ``{"car": n, ..., "total": n}`` in taxonomy order."""

        data = {category.value: self.counts[category] for category in VehicleCategory}
        data["total"] = self.total
        return data


@dataclass(frozen=True, slots=True)
class TallySummary:
    """Derived statistics over the tally and the recent detections.

    Attributes
    ----------
    most_common:
        Named category with the highest count, ``None`` while every named
        category is still zero.  Ties go to the earlier category.
    percentages:
        Share of ``total`` per category, in percent; all zero when empty.
    rate_per_minute:
        Recent detections divided by the whole minutes (at least one) since
        the oldest of them, ``None`` without recent detections.
    """

    most_common: Optional[VehicleCategory]
    percentages: Mapping[VehicleCategory, float]
    rate_per_minute: Optional[float]


@dataclass(slots=True)
class RawOutputs:
    """Unprocessed detector output laid out as four parallel arrays.

    Attributes
    ----------
    boxes:
        ``N x 4`` normalised boxes ordered ``[y1, x1, y2, x2]``.
    classes:
        ``N`` indices into the 90-entry label table.
    scores:
        ``N`` confidences.
    count:
        Number of valid leading entries ``K <= N``.
    """

    boxes: np.ndarray
    classes: np.ndarray
    scores: np.ndarray
    count: np.ndarray | int = field(default=0)
