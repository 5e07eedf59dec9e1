"""Portable JSON snapshots of the vehicle tally."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_core import PydanticSerializationError

from .errors import ExportError
from .ids import utc_now
from .store import AggregationStore
from .types import BoundingBox, CountSnapshot, Detection, VehicleCategory

logger = logging.getLogger(__name__)

__all__ = ["ExportPayload", "Exporter", "export_filename", "load_export"]


class BoundingBoxModel(BaseModel):
    x: float = Field(..., ge=0)
    y: float = Field(..., ge=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class DetectionModel(BaseModel):
    """Serialised form of :class:`~vehicle_tally.types.Detection`."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    category: VehicleCategory
    confidence: float = Field(..., ge=0, le=1)
    bbox: BoundingBoxModel
    plate_guess: Optional[str] = Field(None, alias="plateGuess")
    observed_at: datetime = Field(..., alias="observedAt")

    @classmethod
    def from_detection(cls, detection: Detection) -> "DetectionModel":
        box = detection.bbox
        return cls(
            id=detection.id,
            category=detection.category,
            confidence=detection.confidence,
            bbox=BoundingBoxModel(x=box.x, y=box.y, width=box.width, height=box.height),
            plate_guess=detection.plate_guess,
            observed_at=detection.observed_at,
        )

    def to_detection(self) -> Detection:
        return Detection(
            id=self.id,
            category=self.category,
            confidence=self.confidence,
            bbox=BoundingBox(**self.bbox.model_dump()),
            observed_at=self.observed_at,
            plate_guess=self.plate_guess,
        )


class CountsModel(BaseModel):
    car: int = Field(0, ge=0)
    bus: int = Field(0, ge=0)
    truck: int = Field(0, ge=0)
    motorcycle: int = Field(0, ge=0)
    bicycle: int = Field(0, ge=0)
    van: int = Field(0, ge=0)
    unknown: int = Field(0, ge=0)
    total: int = Field(0, ge=0)

    @model_validator(mode="after")
    def check_total(self) -> "CountsModel":
        expected = sum(getattr(self, category.value) for category in VehicleCategory)
        if self.total != expected:
            raise ValueError(f"total {self.total} does not equal category sum {expected}")
        return self


class ExportPayload(BaseModel):
    """Top level export document."""

    model_config = ConfigDict(populate_by_name=True)

    counts: CountsModel
    detections: List[DetectionModel]
    exported_at: datetime = Field(..., alias="exportedAt")

    def to_snapshot(self) -> CountSnapshot:
        data = self.counts.model_dump()
        total = data.pop("total")
        return CountSnapshot(counts=data, total=total)

    def to_detections(self) -> List[Detection]:
        return [model.to_detection() for model in self.detections]


def export_filename(moment: datetime) -> str:
    return f"vehicle_detection_{moment.date().isoformat()}.json"


def load_export(text: str | bytes) -> ExportPayload:
    """Parse and validate an exported document.

    Raises
    ------
    ExportError
        If ``text`` is not a valid export.
    """

    try:
        return ExportPayload.model_validate_json(text)
    except ValidationError as exc:
        raise ExportError(f"Invalid export document: {exc}") from exc


class Exporter:
    """Serialise the current state of an :class:`AggregationStore`."""

    def __init__(
        self,
        store: AggregationStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.clock = clock

    def payload(self) -> ExportPayload:
        snapshot, history = self.store.state()
        return ExportPayload(
            counts=CountsModel(**snapshot.as_dict()),
            detections=[DetectionModel.from_detection(det) for det in history],
            exported_at=self.clock(),
        )

    @staticmethod
    def _serialise(payload: ExportPayload) -> str:
        try:
            return payload.model_dump_json(by_alias=True, indent=2)
        except PydanticSerializationError as exc:
            raise ExportError(f"Unable to serialise export: {exc}") from exc

    def export(self) -> str:
        try:
            payload = self.payload()
        except ValueError as exc:
            raise ExportError(f"Unable to build export: {exc}") from exc
        return self._serialise(payload)

    def write(self, directory: str | Path) -> Path:
        """Write the export to ``directory`` and return the file path."""

        try:
            payload = self.payload()
        except ValueError as exc:
            raise ExportError(f"Unable to build export: {exc}") from exc
        text = self._serialise(payload)

        path = Path(directory).expanduser() / export_filename(payload.exported_at)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ExportError(f"Unable to write export to {path}: {exc}") from exc

        logger.info("Exported %d detections to %s", len(payload.detections), path)
        return path
