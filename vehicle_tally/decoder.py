"""Turn raw detector arrays into vehicle detections."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .errors import DecodeError
from .ids import PlateFactory, new_detection_id, utc_now
from .types import BoundingBox, Detection, RawOutputs, VehicleCategory

logger = logging.getLogger(__name__)

__all__ = ["COCO_LABELS", "VEHICLE_CLASS_MAP", "DetectionDecoder"]

# 90-slot COCO label table; empty strings are unused ids.
COCO_LABELS: Tuple[str, ...] = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat",
    "traffic light", "fire hydrant", "", "stop sign", "parking meter", "bench", "bird",
    "cat", "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra", "giraffe",
    "", "backpack", "umbrella", "", "", "handbag", "tie", "suitcase", "frisbee",
    "skis", "snowboard", "sports ball", "kite", "baseball bat", "baseball glove",
    "skateboard", "surfboard", "tennis racket", "bottle", "", "wine glass", "cup",
    "fork", "knife", "spoon", "bowl", "banana", "apple", "sandwich", "orange",
    "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair", "couch",
    "potted plant", "bed", "", "dining table", "", "", "toilet", "", "tv",
    "laptop", "mouse", "remote", "keyboard", "cell phone", "microwave", "oven",
    "toaster", "sink", "refrigerator", "", "book", "clock", "vase", "scissors",
    "teddy bear", "hair drier", "toothbrush",
)

# No detector label maps to VAN.
VEHICLE_CLASS_MAP: Dict[str, VehicleCategory] = {
    "bicycle": VehicleCategory.BICYCLE,
    "car": VehicleCategory.CAR,
    "motorcycle": VehicleCategory.MOTORCYCLE,
    "bus": VehicleCategory.BUS,
    "truck": VehicleCategory.TRUCK,
}


def _drop_batch_axis(array: np.ndarray, ndim: int) -> np.ndarray:
    if array.ndim == ndim + 1 and array.shape[0] == 1:
        return array[0]
    return array


class DetectionDecoder:
    """Filter and convert raw detector output into :class:`Detection` objects.

    Parameters
    ----------
    input_size:
        Side length of the analysis frame used to scale normalised boxes.
    confidence_threshold:
        Scores must be strictly greater than this value.
    plate_factory:
        Optional callable producing the placeholder plate string.
    id_factory, clock:
        Injectable id and timestamp sources.
    """

    def __init__(
        self,
        input_size: int = 320,
        confidence_threshold: float = 0.3,
        plate_factory: PlateFactory | None = None,
        id_factory: Callable[[], str] = new_detection_id,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.input_size = input_size
        self.confidence_threshold = confidence_threshold
        self.plate_factory = plate_factory
        self.id_factory = id_factory
        self.clock = clock

    @staticmethod
    def category_for(class_index: float) -> Optional[VehicleCategory]:
        """Map a label-table index to a vehicle category, or ``None``."""

        if not float(class_index).is_integer():
            return None
        index = int(class_index)
        if index < 0 or index >= len(COCO_LABELS):
            return None
        return VEHICLE_CLASS_MAP.get(COCO_LABELS[index])

    def _validate(self, raw: RawOutputs) -> Tuple[np.ndarray, np.ndarray, np.ndarray, int]:
        try:
            boxes = np.asarray(raw.boxes, dtype=np.float64)
            classes = np.asarray(raw.classes, dtype=np.float64)
            scores = np.asarray(raw.scores, dtype=np.float64)
            count = np.asarray(raw.count, dtype=np.float64).reshape(-1)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"Raw outputs are not numeric arrays: {exc}") from exc

        if boxes.ndim == 1 and boxes.size % 4 == 0:
            boxes = boxes.reshape(-1, 4)
        boxes = _drop_batch_axis(boxes, 2)
        classes = _drop_batch_axis(classes, 1)
        scores = _drop_batch_axis(scores, 1)

        if boxes.ndim != 2 or boxes.shape[1] != 4:
            raise DecodeError(f"boxes must have shape (N, 4), got {boxes.shape}")
        total = boxes.shape[0]
        if classes.shape != (total,):
            raise DecodeError(f"classes must have shape ({total},), got {classes.shape}")
        if scores.shape != (total,):
            raise DecodeError(f"scores must have shape ({total},), got {scores.shape}")
        if count.size != 1 or not np.isfinite(count[0]) or not float(count[0]).is_integer():
            raise DecodeError(f"detection count must be a single integer, got {raw.count!r}")

        valid = int(count[0])
        if valid < 0 or valid > total:
            raise DecodeError(f"detection count {valid} outside [0, {total}]")
        if not np.isfinite(boxes[:valid]).all() or not np.isfinite(scores[:valid]).all():
            raise DecodeError("boxes and scores must be finite")
        if ((scores[:valid] < 0.0) | (scores[:valid] > 1.0)).any():
            raise DecodeError("scores must lie within [0, 1]")
        return boxes, classes, scores, valid

    def _to_pixels(self, box: np.ndarray) -> Optional[BoundingBox]:
        y1, x1, y2, x2 = np.clip(box, 0.0, 1.0).tolist()
        width = (x2 - x1) * self.input_size
        height = (y2 - y1) * self.input_size
        if width <= 0 or height <= 0:
            return None
        return BoundingBox(
            x=x1 * self.input_size,
            y=y1 * self.input_size,
            width=width,
            height=height,
        )

    def decode(self, raw: RawOutputs) -> List[Detection]:
        """Return detections for the first ``K`` entries, in array order.

        Raises
        ------
        DecodeError
            If any of the arrays has the wrong shape or ``K`` is invalid.
        """

        boxes, classes, scores, valid = self._validate(raw)

        detections: List[Detection] = []
        for index in range(valid):
            score = float(scores[index])
            if not score > self.confidence_threshold:
                continue
            category = self.category_for(classes[index])
            if category is None:
                continue
            bbox = self._to_pixels(boxes[index])
            if bbox is None:
                logger.debug("Dropping degenerate box at index %d", index)
                continue

            detections.append(
                Detection(
                    id=self.id_factory(),
                    category=category,
                    confidence=score,
                    bbox=bbox,
                    observed_at=self.clock(),
                    plate_guess=self.plate_factory() if self.plate_factory else None,
                )
            )

        logger.debug("Decoded %d of %d candidate detections", len(detections), valid)
        return detections

    __call__ = decode
