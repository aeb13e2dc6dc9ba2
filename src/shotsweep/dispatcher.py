"""Single-threaded delivery of outward notifications."""

import logging
import queue
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

from .models import DeletionOutcome

logger = logging.getLogger(__name__)

_Call = Optional[Tuple[Callable[..., Any], Tuple[Any, ...]]]


class ShotsweepListener:
    """
    Receiver of shotsweep notifications.

    Subclass and override the hooks of interest. All hooks are invoked
    from the dispatcher thread, one at a time.
    """

    def on_new_image_available(self, path: Path) -> None:
        """A new image is ready (already converted if conversion applied)."""

    def on_deletion_outcome(self, outcome: DeletionOutcome) -> None:
        """A scheduled deletion finished, successfully or not."""

    def on_deletion_notice(self, path: Path) -> None:
        """Informational notice that a file was deleted."""

    def on_monitoring_changed(self, path: Path) -> None:
        """The watched directory changed."""

    def on_monitoring_failed(self, path: Path, error: Exception) -> None:
        """A watch could not be established."""

    def on_conversion_unavailable(self, converter_path: Path) -> None:
        """Conversion was requested but the converter is not installed."""


class NotificationDispatcher:
    """
    Serializes calls to consumers on one dedicated thread.

    Producers on any thread post callables; the dispatcher runs them in
    posting order so consumers never receive concurrent calls.
    """

    def __init__(self, name: str = "NotificationDispatcher"):
        self.name = name
        self._queue: "queue.Queue[_Call]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._accepting = False
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start the delivery thread. Calling start twice is a no-op."""
        with self._lock:
            if self._thread is not None:
                return
            self._accepting = True
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()

    def post(self, fn: Callable[..., Any], *args: Any) -> bool:
        """
        Queue a call for delivery.

        Args:
            fn: Callable to invoke on the dispatcher thread
            *args: Positional arguments for the call

        Returns:
            True if the call was queued, False if the dispatcher is stopped
        """
        with self._lock:
            if not self._accepting:
                logger.debug(f"Dropping {getattr(fn, '__name__', fn)}: dispatcher not running")
                return False
            self._queue.put((fn, args))
            return True

    def _run(self) -> None:
        logger.debug("Dispatcher loop started")

        while True:
            item = self._queue.get()
            if item is None:
                break

            fn, args = item
            try:
                fn(*args)
            except Exception as e:
                logger.error(f"Notification handler {getattr(fn, '__name__', fn)} failed: {e}")

        logger.debug("Dispatcher loop stopped")

    def stop(self, timeout: float = 5.0) -> None:
        """Deliver everything already posted, then stop the thread."""
        with self._lock:
            if self._thread is None:
                return
            self._accepting = False
            thread = self._thread
            self._thread = None
            self._queue.put(None)

        if thread is not threading.current_thread():
            thread.join(timeout=timeout)

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None
