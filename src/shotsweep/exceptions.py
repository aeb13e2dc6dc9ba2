"""Custom exceptions for the shotsweep package."""

from pathlib import Path
from typing import List, Optional, Tuple


class ShotsweepError(Exception):
    """Base exception for all shotsweep errors."""
    pass


class SubscriptionError(ShotsweepError):
    """The filesystem watch could not be established."""

    def __init__(self, message: str, target: Optional[Path] = None):
        super().__init__(message)
        self.target = target


class ConversionError(ShotsweepError):
    """Base class for image conversion failures."""

    def __init__(self, message: str, source: Optional[Path] = None, detail: str = ""):
        super().__init__(message)
        self.source = source
        self.detail = detail


class ConverterUnavailableError(ConversionError):
    """The external converter executable is missing or cannot be launched."""
    pass


class ConversionFailedError(ConversionError):
    """The converter ran but reported failure."""

    def __init__(
        self,
        message: str,
        source: Optional[Path] = None,
        detail: str = "",
        returncode: Optional[int] = None,
    ):
        super().__init__(message, source=source, detail=detail)
        self.returncode = returncode


class ConversionOutputMissingError(ConversionError):
    """The converter reported success but the output file is absent."""
    pass


class DeletionError(ShotsweepError):
    """Every delete attempt for a file failed."""

    def __init__(self, message: str, attempts: Optional[List[Tuple[Path, str]]] = None):
        super().__init__(message)
        self.attempts = attempts or []


class SchedulerStoppedError(ShotsweepError):
    """The deletion scheduler is not accepting requests."""
    pass


class SettingsError(ShotsweepError):
    """Invalid settings key or value."""
    pass
