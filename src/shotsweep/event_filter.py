"""Classification of raw change events into new-image candidates."""

import logging
import threading
import time
from pathlib import Path
from typing import Dict, Optional

from .config import ShotsweepConfig
from .models import CandidateImage, RawChangeEvent

logger = logging.getLogger(__name__)


class RecentPathCache:
    """
    Remembers recently accepted paths for a short window.

    Used to drop duplicate notifications for a file that was already
    announced, e.g. a create immediately followed by a rename onto the
    same name.
    """

    PRUNE_THRESHOLD = 256

    def __init__(self, window_ms: int = 1000):
        """
        Initialize the cache.

        Args:
            window_ms: How long an accepted path suppresses repeats
        """
        self.window_ms = window_ms
        self._seen: Dict[Path, float] = {}
        self._lock = threading.Lock()

    def check_and_add(self, path: Path, now: float) -> bool:
        """
        Record a path unless it was recorded within the window.

        Args:
            path: Path being accepted
            now: Current monotonic time

        Returns:
            True if the path is new, False if it is a repeat
        """
        window_sec = self.window_ms / 1000.0

        with self._lock:
            last = self._seen.get(path)
            if last is not None and (now - last) < window_sec:
                return False

            self._seen[path] = now
            if len(self._seen) > self.PRUNE_THRESHOLD:
                self._prune(now, window_sec)
            return True

    def _prune(self, now: float, window_sec: float) -> None:
        expired = [p for p, t in self._seen.items() if (now - t) >= window_sec]
        for path in expired:
            del self._seen[path]

    def add(self, path: Path, now: float) -> None:
        """Record a path unconditionally, restarting its window."""
        with self._lock:
            self._seen[path] = now

    def clear(self) -> None:
        """Forget all remembered paths."""
        with self._lock:
            self._seen.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)


class EventFilter:
    """
    Decides whether a raw change event is a newly created image.

    An event qualifies when it carries the creation/rename signal, its
    path still exists as a regular file, its name is not ignored, and its
    extension is in the recognized set.
    """

    def __init__(self, config: Optional[ShotsweepConfig] = None):
        """
        Initialize the filter.

        Args:
            config: Shotsweep configuration
        """
        self.config = config or ShotsweepConfig()
        self._recent = RecentPathCache(self.config.dedupe_window_ms)

    def accept(self, raw_event: RawChangeEvent, now: Optional[float] = None) -> Optional[CandidateImage]:
        """
        Classify a raw event.

        Args:
            raw_event: Event received from the filesystem watcher
            now: Current monotonic time (defaults to time.monotonic())

        Returns:
            A CandidateImage, or None if the event is rejected
        """
        path = raw_event.path

        if not raw_event.is_creation or raw_event.is_directory:
            return None

        if self.config.should_ignore(path):
            logger.debug(f"Ignoring {path}: matches ignore pattern")
            return None

        if not self.config.is_image_extension(path.suffix):
            logger.debug(f"Ignoring {path}: not a recognized image")
            return None

        # The event may be stale; the file can vanish before we get here
        if not path.is_file():
            logger.debug(f"Ignoring {path}: no longer exists")
            return None

        now = time.monotonic() if now is None else now
        if not self._recent.check_and_add(path, now):
            logger.debug(f"Ignoring {path}: duplicate within {self.config.dedupe_window_ms}ms")
            return None

        return CandidateImage.from_path(path)

    def mark_seen(self, path: Path, now: Optional[float] = None) -> None:
        """
        Suppress upcoming events for a path produced by shotsweep itself.

        Args:
            path: Path that was already announced or is about to be
            now: Current monotonic time (defaults to time.monotonic())
        """
        self._recent.add(path, time.monotonic() if now is None else now)

    def clear(self) -> None:
        """Reset deduplication state."""
        self._recent.clear()
