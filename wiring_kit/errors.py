from __future__ import annotations


class WiringKitError(Exception):
    """Base class for errors raised by the detection engine."""


class DecodeError(WiringKitError):
    """Image bytes could not be decoded (or the annotated copy could not be encoded)."""


class ModelExecutionError(WiringKitError):
    """The model failed to load or the inference call failed."""


class TensorShapeError(ValueError, WiringKitError):
    """A tensor does not have the shape the pipeline expects."""
