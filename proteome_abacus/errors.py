"""Failure taxonomy for the identification and aggregation stages.

Every error here is deterministic (bad data, bad format, missing blob) and is
raised at the point of detection. Nothing is retried.
"""

from __future__ import annotations


class AbacusError(Exception):
    """Base class for all proteome-abacus failures."""


class ParseError(AbacusError, ValueError):
    """An identification file could not be read or is not well-formed."""


class NoRecordsFound(ParseError):
    """A result file parsed cleanly but contained no groups or PSMs."""


class CalibrationUndefined(AbacusError, ValueError):
    """No PSM fell inside the zero mass-difference window."""


class CannotSerialize(AbacusError, OSError):
    """A model could not be written to its persistence blob."""


class CannotRestore(AbacusError, OSError):
    """A persistence blob is missing, unreadable or does not match the model."""


class AggregationPreconditionError(AbacusError, ValueError):
    """The combined analysis cannot start with the datasets it was given."""


class DatasetStageError(AbacusError):
    """A per-dataset pipeline stage failed for one dataset."""

    def __init__(self, dataset: str, message: str):
        super().__init__(f"{dataset}: {message}")
        self.dataset = dataset
