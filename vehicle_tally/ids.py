"""Identifier, timestamp and placeholder helpers used when creating detections."""

from __future__ import annotations

import random
import string
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

__all__ = ["PlateFactory", "new_detection_id", "placeholder_plate", "utc_now"]

PlateFactory = Callable[[], Optional[str]]


def new_detection_id() -> str:
    return f"vehicle_{uuid.uuid4().hex}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def placeholder_plate(rng: random.Random | None = None) -> str:
    """Return a random ``AAA0000`` string.

    This is a stand-in value for display purposes only; nothing is read from
    the image.
    """

    rng = rng or random
    letters = "".join(rng.choice(string.ascii_uppercase) for _ in range(3))
    digits = "".join(rng.choice(string.digits) for _ in range(4))
    return letters + digits
