from datetime import datetime, timezone
import itertools
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import numpy as np
import pytest

from vehicle_tally.adapter import ModelBackend
from vehicle_tally.types import BoundingBox, Detection, RawOutputs, VehicleCategory

FIXED_TIME = datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc)


class FakeBackend(ModelBackend):
    def __init__(self, outputs=None, error=None, on_predict=None):
        self.outputs = outputs
        self.error = error
        self.on_predict = on_predict
        self.shapes = []
        self.closed = False

    def predict(self, tensor):
        self.shapes.append(tensor.shape)
        if self.on_predict is not None:
            self.on_predict()
        if self.error is not None:
            raise self.error
        return self.outputs

    def close(self):
        self.closed = True


def _make_raw(boxes, classes, scores, count=None):
    return RawOutputs(
        boxes=np.array(boxes, dtype=np.float64).reshape(-1, 4),
        classes=np.array(classes, dtype=np.float64),
        scores=np.array(scores, dtype=np.float64),
        count=len(scores) if count is None else count,
    )


@pytest.fixture
def make_raw():
    return _make_raw


@pytest.fixture
def fake_backend():
    return FakeBackend


@pytest.fixture
def clock():
    return lambda: FIXED_TIME


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"vehicle_{next(counter)}"


@pytest.fixture
def make_detection(id_factory):
    def factory(category=VehicleCategory.CAR, confidence=0.9):
        return Detection(
            id=id_factory(),
            category=category,
            confidence=confidence,
            bbox=BoundingBox(x=10.0, y=20.0, width=30.0, height=40.0),
            observed_at=FIXED_TIME,
        )

    return factory
