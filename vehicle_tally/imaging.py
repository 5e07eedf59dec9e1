"""Image and video frame loading for the detection service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)

__all__ = ["VideoFrameSource", "load_image"]


def load_image(reference: str | Path) -> np.ndarray:
    """Decode the image at ``reference`` into an RGB array.

    Raises
    ------
    FileNotFoundError
        If the file is missing or cannot be decoded.
    """

    path = Path(reference).expanduser()
    frame = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if frame is None:
        raise FileNotFoundError(f"Unable to read image: {path}")
    return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)


class VideoFrameSource:
    """Callable yielding successive RGB frames from a video file or device.

    Returns ``None`` once the stream is exhausted.
    """

    def __init__(self, source: str | Path | int) -> None:
        self.source = source
        target = source if isinstance(source, int) else str(Path(source).expanduser())
        self.capture = cv2.VideoCapture(target)
        if not self.capture.isOpened():
            raise FileNotFoundError(f"Unable to open video source: {source}")

    def __call__(self) -> Optional[np.ndarray]:
        ok, frame = self.capture.read()
        if not ok:
            logger.warning("End of stream reached for %s", self.source)
            return None
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def close(self) -> None:
        if self.capture is not None:
            self.capture.release()
