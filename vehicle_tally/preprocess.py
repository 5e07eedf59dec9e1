"""Image preprocessing for the detector input tensor."""

from __future__ import annotations

import cv2
import numpy as np

__all__ = ["Preprocessor"]


class Preprocessor:
    """Resize, normalise and batch an RGB image for the detector.

    The output is a ``float32`` array of shape ``(1, size, size, 3)`` with
    values in ``[0, 1]``.
    """

    def __init__(self, input_size: int = 320) -> None:
        if input_size <= 0:
            raise ValueError("input_size must be positive")
        self.input_size = input_size

    def preprocess(self, image: np.ndarray) -> np.ndarray:
        image = np.asarray(image)
        if image.size == 0:
            raise ValueError("Cannot preprocess an empty image")
        image = image.astype(np.float32, copy=False)

        if image.ndim == 2 or (image.ndim == 3 and image.shape[2] == 1):
            image = cv2.cvtColor(image.reshape(image.shape[:2]), cv2.COLOR_GRAY2RGB)
        elif image.ndim == 3 and image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_RGBA2RGB)
        elif image.ndim != 3 or image.shape[2] != 3:
            raise ValueError(f"Unsupported image shape: {image.shape}")

        resized = cv2.resize(
            image,
            (self.input_size, self.input_size),
            interpolation=cv2.INTER_LINEAR,
        )
        return np.expand_dims(resized / np.float32(255.0), axis=0)

    __call__ = preprocess
