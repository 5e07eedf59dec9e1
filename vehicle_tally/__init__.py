"""Vehicle detection tally package."""

from .config import DetectionConfig
from .errors import DecodeError, ExportError, InferenceError, ModelLoadError, VehicleTallyError
from .monitor import DetectionMonitor
from .service import VehicleDetectionService
from .types import (
    BoundingBox,
    CountSnapshot,
    Detection,
    RawOutputs,
    TallySummary,
    VehicleCategory,
)

__all__ = [
    "BoundingBox",
    "CountSnapshot",
    "DecodeError",
    "Detection",
    "DetectionConfig",
    "DetectionMonitor",
    "ExportError",
    "InferenceError",
    "ModelLoadError",
    "RawOutputs",
    "TallySummary",
    "VehicleCategory",
    "VehicleDetectionService",
    "VehicleTallyError",
]
