"""
Domain exceptions shared across the threshold lab.

ConfigurationError is fatal and raised before any write happens.
DataInsufficiencyError signals that a series is too short for the requested
computation; the estimator never raises it (it returns None instead), the
synthesizer and the experiment harness do.
"""

from typing import Optional


class ConfigurationError(Exception):
    """Raised for unknown farms, missing identifiers or invalid settings."""

    def __init__(self, message: str, farm_id: Optional[str] = None) -> None:
        self.message = message
        self.farm_id = farm_id
        super().__init__(message)


class DataInsufficiencyError(Exception):
    """
    Raised when a reading series is too short for an offline computation.

    Attributes:
        message: Error message.
        available: Number of readings that were available.
        required: Number of readings that were required.
    """

    def __init__(self, message: str, available: int = 0, required: int = 0) -> None:
        self.message = message
        self.available = available
        self.required = required
        super().__init__(message)
