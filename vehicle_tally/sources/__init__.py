"""Interchangeable producers of vehicle detections."""

from .base import DetectionSource
from .model import ModelBackedSource
from .simulated import SimulatedSource

__all__ = ["DetectionSource", "ModelBackedSource", "SimulatedSource"]
