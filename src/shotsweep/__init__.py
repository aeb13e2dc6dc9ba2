"""
Shotsweep Package

Watches a directory for newly created images (typically screenshots) and
lets the user delete each one after a chosen delay.

Features:
- New-image detection from live filesystem events, deduplicated
- Optional HEIC to JPEG conversion through ImageMagick, off the event thread
- Per-file deferred deletion with cancel-and-replace semantics
- Container-path-first deletion with a fallback to the literal path
- Persisted preferences in SQLite
"""

from .models import (
    ChangeFlag,
    RawChangeEvent,
    CandidateImage,
    PendingConversion,
    ScheduledDeletion,
    DeletionOutcome,
)

from .config import ShotsweepConfig, ALLOWED_DELAYS, IMAGE_EXTENSIONS

from .exceptions import (
    ShotsweepError,
    SubscriptionError,
    ConversionError,
    ConverterUnavailableError,
    ConversionFailedError,
    ConversionOutputMissingError,
    DeletionError,
    SchedulerStoppedError,
    SettingsError,
)

from .event_filter import EventFilter, RecentPathCache
from .conversion import ImageConverter, MagickConverter, ConversionPipeline
from .dispatcher import NotificationDispatcher, ShotsweepListener
from .fs_watcher import DirectoryMonitor, FSEventHandler
from .scheduler import DeletionScheduler, delete_file, delete_with_fallback
from .settings import SettingsManager
from .process import ShotsweepService


__all__ = [
    # Models
    "ChangeFlag",
    "RawChangeEvent",
    "CandidateImage",
    "PendingConversion",
    "ScheduledDeletion",
    "DeletionOutcome",
    # Config
    "ShotsweepConfig",
    "ALLOWED_DELAYS",
    "IMAGE_EXTENSIONS",
    # Exceptions
    "ShotsweepError",
    "SubscriptionError",
    "ConversionError",
    "ConverterUnavailableError",
    "ConversionFailedError",
    "ConversionOutputMissingError",
    "DeletionError",
    "SchedulerStoppedError",
    "SettingsError",
    # Components
    "EventFilter",
    "RecentPathCache",
    "ImageConverter",
    "MagickConverter",
    "ConversionPipeline",
    "NotificationDispatcher",
    "ShotsweepListener",
    "DirectoryMonitor",
    "FSEventHandler",
    "DeletionScheduler",
    "delete_file",
    "delete_with_fallback",
    "SettingsManager",
    # Main Service
    "ShotsweepService",
]

__version__ = "0.1.0"
