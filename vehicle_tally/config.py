"""Configuration dataclasses for the vehicle tally pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional


ModeLiteral = Literal["auto", "simulation"]


@dataclass(slots=True)
class DetectionConfig:
    """Runtime configuration for :class:`vehicle_tally.service.VehicleDetectionService`.

    Parameters
    ----------
    mode:
        Operating mode. ``"auto"`` tries to load the detector and falls back to
        simulated detections when that fails, while ``"simulation"`` never
        touches the model.
    model_path:
        Local weights file or model name understood by Ultralytics.
    device:
        Inference device passed to the model (``None`` lets the runtime pick).
    input_size:
        Side length in pixels of the square analysis frame.
    confidence_threshold:
        Scores must be strictly greater than this value to be kept.
    history_limit:
        Maximum number of detections retained in the session history. Older
        entries are evicted first; running counts are unaffected.
    load_timeout:
        Upper bound in seconds for model acquisition before falling back.
    placeholder_plates:
        Attach a random placeholder plate string to each detection. This is
        not plate recognition.
    simulation_seed:
        Seed for the simulated detection generator.
    monitor_interval:
        Seconds between detection cycles when monitoring a frame source.
    """

    mode: ModeLiteral = "auto"
    model_path: str | Path = "weights/yolov8n.pt"
    device: Optional[str] = None
    input_size: int = 320
    confidence_threshold: float = 0.3
    history_limit: int = 1000
    load_timeout: float = 60.0
    placeholder_plates: bool = False
    simulation_seed: Optional[int] = None
    monitor_interval: float = 2.0

    def validate(self) -> None:
        """Raise :class:`ValueError` when a field is outside its valid range."""

        if self.mode not in ("auto", "simulation"):
            raise ValueError(f"mode must be 'auto' or 'simulation', got {self.mode!r}")
        if self.input_size <= 0:
            raise ValueError("input_size must be positive")
        if not 0.0 <= self.confidence_threshold < 1.0:
            raise ValueError("confidence_threshold must be within [0, 1)")
        if self.history_limit <= 0:
            raise ValueError("history_limit must be positive")
        if self.load_timeout <= 0:
            raise ValueError("load_timeout must be positive")
        if self.monitor_interval <= 0:
            raise ValueError("monitor_interval must be positive")

    def ensure_paths(self) -> None:
        """Expand a local ``model_path`` to an absolute :class:`~pathlib.Path`.

        Bare model names such as ``"yolov8n.pt"`` that do not exist locally are
        left untouched so the runtime can resolve them itself.
        """

        candidate = Path(self.model_path).expanduser()
        if candidate.exists():
            self.model_path = candidate.resolve()
