"""Exception hierarchy for the vehicle tally pipeline."""

from __future__ import annotations


class VehicleTallyError(Exception):
    """Base class for all pipeline errors."""


class ModelLoadError(VehicleTallyError):
    """The inference model could not be acquired.

    Raised inside :meth:`vehicle_tally.adapter.ModelAdapter.initialize` and
    absorbed there; callers observe it through the adapter state.
    """


class InferenceError(VehicleTallyError):
    """Inference was requested in the wrong state or the runtime failed."""


class DecodeError(VehicleTallyError):
    """Raw model output did not have the expected layout."""


class ExportError(VehicleTallyError):
    """Serialising, parsing or writing an export failed."""
