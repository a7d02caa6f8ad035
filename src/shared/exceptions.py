"""
Exception hierarchy for the coaching pipeline.
"""

from typing import Optional


class CoachError(Exception):
    """Base exception for all pipeline errors."""
    pass


class ConfigurationError(CoachError):
    """Raised when required configuration is missing or unusable."""
    pass


class InputShapeError(CoachError):
    """Raised when the student payload cannot be read as a list of records."""
    pass


class StageFailure(CoachError):
    """Raised when a per-student stage fails unexpectedly."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        self.detail = message
        super().__init__(f"{stage}: {message}")


class PersistenceFailure(CoachError):
    """Raised when a persistence failure must stop the batch."""
    pass


class RunInProgressError(CoachError):
    """Raised when a run is requested while another one is active."""

    def __init__(self, run_id: Optional[str]):
        self.run_id = run_id
        super().__init__(f"Run {run_id or 'unknown'} is already in progress")
