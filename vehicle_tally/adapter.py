"""Detector lifecycle management and raw inference."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Mapping, Optional

import numpy as np

from .config import DetectionConfig
from .decoder import COCO_LABELS
from .errors import InferenceError, ModelLoadError
from .types import RawOutputs

logger = logging.getLogger(__name__)

try:  # pragma: no cover - optional runtime dependency
    import torch
except Exception as exc:  # pragma: no cover - gracefully degrade when torch missing
    torch = None  # type: ignore[assignment]
    _TORCH_IMPORT_ERROR = exc
else:  # pragma: no cover - environment dependent
    _TORCH_IMPORT_ERROR = None

try:  # pragma: no cover - optional runtime dependency
    from ultralytics import YOLO
except Exception as exc:  # pragma: no cover - gracefully degrade when YOLO missing
    YOLO = None  # type: ignore[assignment]
    _YOLO_IMPORT_ERROR = exc
else:  # pragma: no cover - environment dependent
    _YOLO_IMPORT_ERROR = None


class AdapterState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FALLBACK = "fallback"


class ModelBackend(ABC):
    """Loaded inference model able to turn an input tensor into raw outputs."""

    @abstractmethod
    def predict(self, tensor: np.ndarray) -> RawOutputs:
        """Run inference on a ``(1, H, W, 3)`` float tensor."""

    def close(self) -> None:  # pragma: no cover - nothing to release by default
        return None


def _to_numpy(value: Any) -> np.ndarray:
    if hasattr(value, "cpu"):
        value = value.cpu()
    return np.asarray(value)


def _label_index(name: str) -> int:
    """Return the label-table slot for ``name`` or ``-1`` when absent."""

    if name and name in COCO_LABELS:
        return COCO_LABELS.index(name)
    return -1


def raw_outputs_from_result(result: Any, names: Mapping[int, str]) -> RawOutputs:
    """Convert an Ultralytics ``Results`` object into :class:`RawOutputs`.

    Boxes are reordered to ``[y1, x1, y2, x2]`` and class ids are translated
    by label name into the 90-entry table.
    """

    boxes = getattr(result, "boxes", None)
    if boxes is None or len(boxes) == 0:
        return RawOutputs(
            boxes=np.zeros((0, 4), dtype=np.float32),
            classes=np.zeros(0, dtype=np.float32),
            scores=np.zeros(0, dtype=np.float32),
            count=0,
        )

    xyxyn = _to_numpy(boxes.xyxyn).reshape(-1, 4)
    scores = _to_numpy(boxes.conf).reshape(-1)
    classes = np.array(
        [_label_index(names.get(int(cls), "")) for cls in _to_numpy(boxes.cls).reshape(-1)],
        dtype=np.float32,
    )
    return RawOutputs(
        boxes=xyxyn[:, [1, 0, 3, 2]],
        classes=classes,
        scores=scores,
        count=len(scores),
    )


class UltralyticsBackend(ModelBackend):
    """Backend wrapping an Ultralytics YOLO model."""

    def __init__(self, model: Any, device: Optional[str] = None) -> None:
        self.model = model
        self.device = device

    @classmethod
    def load(cls, config: DetectionConfig) -> "UltralyticsBackend":
        if torch is None:
            raise ModelLoadError(
                "torch is required for the detection model but could not be imported"
            ) from _TORCH_IMPORT_ERROR
        if YOLO is None:
            raise ModelLoadError(
                "ultralytics is required for the detection model but could not be imported"
            ) from _YOLO_IMPORT_ERROR
        return cls(YOLO(str(config.model_path)), device=config.device)

    def predict(self, tensor: np.ndarray) -> RawOutputs:
        with torch.inference_mode():
            # Ultralytics expects BCHW tensors for already-normalised input.
            batch = torch.from_numpy(
                np.ascontiguousarray(np.asarray(tensor, dtype=np.float32).transpose(0, 3, 1, 2))
            )
            results = self.model.predict(batch, device=self.device, verbose=False)
            return raw_outputs_from_result(results[0], self.model.names)

    def close(self) -> None:
        self.model = None


ModelLoader = Callable[[DetectionConfig], ModelBackend]


class ModelAdapter:
    """Own the detector lifecycle: load, readiness, inference and unload.

    ``initialize`` never raises.  A failed load moves the adapter into the
    ``FALLBACK`` state, which is kept until ``initialize`` is called again.
    """

    def __init__(self, config: DetectionConfig, loader: ModelLoader | None = None) -> None:
        self.config = config
        self.loader: ModelLoader = loader or UltralyticsBackend.load
        self.state = AdapterState.UNINITIALIZED
        self.last_error: Optional[ModelLoadError] = None
        self._backend: Optional[ModelBackend] = None
        self._lock = threading.Lock()

    def _load(self) -> ModelBackend:
        logger.info("Loading detection model from %s", self.config.model_path)
        outcome: dict = {}

        def target() -> None:
            try:
                outcome["backend"] = self.loader(self.config)
            except Exception as exc:
                outcome["error"] = exc

        # A hung loader must not block interpreter exit.
        worker = threading.Thread(target=target, name="model-load", daemon=True)
        worker.start()
        worker.join(self.config.load_timeout)
        if worker.is_alive():
            raise ModelLoadError(
                f"Loading {self.config.model_path} did not finish within {self.config.load_timeout}s"
            )

        error = outcome.get("error")
        if isinstance(error, ModelLoadError):
            raise error
        if error is not None:
            raise ModelLoadError(f"Unable to load model {self.config.model_path}: {error}") from error
        return outcome["backend"]

    def initialize(self) -> bool:
        """Load the model, returning ``True`` when the adapter is ready."""

        with self._lock:
            if self.state is AdapterState.READY:
                return True
            try:
                backend = self._load()
            except ModelLoadError as exc:
                self._backend = None
                self.last_error = exc
                self.state = AdapterState.FALLBACK
                logger.warning("Detection model unavailable, using simulation: %s", exc)
                return False

            self._backend = backend
            self.last_error = None
            self.state = AdapterState.READY
            logger.info("Detection model ready")
            return True

    def is_ready(self) -> bool:
        return self.state is AdapterState.READY

    def predict(self, tensor: np.ndarray) -> RawOutputs:
        """Run inference on a preprocessed tensor.

        Raises
        ------
        InferenceError
            If the adapter is not ready or the runtime fails.
        """

        backend = self._backend
        if self.state is not AdapterState.READY or backend is None:
            raise InferenceError(f"Model is not ready (state: {self.state.value})")
        try:
            return backend.predict(tensor)
        except InferenceError:
            raise
        except Exception as exc:
            raise InferenceError(f"Inference failed: {exc}") from exc

    def unload(self) -> None:
        """Release the model and return to the uninitialised state."""

        with self._lock:
            if self._backend is not None:
                self._backend.close()
                logger.info("Detection model unloaded")
            self._backend = None
            self.state = AdapterState.UNINITIALIZED
