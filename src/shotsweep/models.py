"""Data models for the shotsweep package."""

from dataclasses import dataclass, field
from enum import Flag
from pathlib import Path
from typing import Optional
import time


class ChangeFlag(Flag):
    """Semantics carried by a raw filesystem change notification."""
    CREATED = 1
    RENAMED = 2
    MODIFIED = 4
    REMOVED = 8
    IS_DIR = 16

    # Creation or rename-completion signal
    CREATION = CREATED | RENAMED


@dataclass(frozen=True)
class RawChangeEvent:
    """
    Change notification as delivered by the OS before filtering.

    Attributes:
        path: Path the event refers to (destination path for renames)
        flags: Event semantics
        sequence_id: Monotonic id assigned in delivery order
        timestamp: Unix timestamp when the event was received
    """
    path: Path
    flags: ChangeFlag
    sequence_id: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def is_creation(self) -> bool:
        return bool(self.flags & ChangeFlag.CREATION)

    @property
    def is_directory(self) -> bool:
        return bool(self.flags & ChangeFlag.IS_DIR)


@dataclass(frozen=True)
class CandidateImage:
    """
    A change event confirmed to reference an existing, recognized image.

    Attributes:
        path: Absolute path to the image
        extension: Lower-cased extension without the leading dot
    """
    path: Path
    extension: str

    @classmethod
    def from_path(cls, path: Path) -> "CandidateImage":
        return cls(path=path, extension=path.suffix.lstrip(".").lower())


@dataclass(frozen=True)
class PendingConversion:
    """An external conversion currently in flight."""
    source_path: Path
    target_path: Path


@dataclass
class ScheduledDeletion:
    """
    A deferred delete armed for one file.

    Attributes:
        file_path: File to delete
        delay_seconds: Delay requested by the user
        fire_at: Monotonic-clock deadline
        timer_handle: Generation token; a replaced entry never matches
            the token of its successor
        scheduled_at: Unix timestamp when the deletion was armed
    """
    file_path: Path
    delay_seconds: float
    fire_at: float
    timer_handle: int
    scheduled_at: float = field(default_factory=time.time)

    def remaining(self, now: Optional[float] = None) -> float:
        """Seconds left before the deletion fires."""
        now = time.monotonic() if now is None else now
        return max(0.0, self.fire_at - now)


@dataclass(frozen=True)
class DeletionOutcome:
    """
    Result of attempting a scheduled delete.

    Attributes:
        file_path: The user-visible path that was scheduled
        success: Whether one of the attempts removed the file
        error_detail: Description of the last failure when unsuccessful
        deleted_path: The path that was actually removed on success
    """
    file_path: Path
    success: bool
    error_detail: Optional[str] = None
    deleted_path: Optional[Path] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "file_path": str(self.file_path),
            "success": self.success,
            "error_detail": self.error_detail,
            "deleted_path": str(self.deleted_path) if self.deleted_path else None,
        }
