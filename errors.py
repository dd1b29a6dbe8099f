"""
Error taxonomy for the acquisition and analysis pipeline.

Only InputValidationError and PersistenceError ever reach callers of the
analyzer. Acquisition failures and schema violations are absorbed into a
fallback analysis.
"""

from typing import Any


class ViabilityError(Exception):
    """Base class for all pipeline errors."""


class InputValidationError(ViabilityError):
    """Malformed or missing input to an entry point."""


class AcquisitionError(ViabilityError):
    """A fetch against an origin site or the reasoning model failed."""


class ReasoningError(AcquisitionError):
    """The reasoning model call failed (network, non-2xx, timeout, bad envelope)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SchemaViolation(ViabilityError):
    """Model output could not be parsed or did not match the analysis schema."""

    def __init__(self, message: str, violations: list[str] | None = None):
        super().__init__(message)
        self.violations = violations or []


class PersistenceError(ViabilityError):
    """The cache store was unavailable.

    When raised after an analysis was produced, ``record`` holds the result
    that could not be cached so the caller can still use it.
    """

    def __init__(self, message: str, record: Any = None):
        super().__init__(message)
        self.record = record
