"""Directory monitoring using the watchdog library."""

import itertools
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Set

from watchdog.observers import Observer
from watchdog.events import (
    FileSystemEventHandler,
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    DirMovedEvent,
)

from .config import ShotsweepConfig
from .conversion import ConversionPipeline
from .dispatcher import NotificationDispatcher
from .event_filter import EventFilter
from .exceptions import SubscriptionError
from .models import ChangeFlag, RawChangeEvent

logger = logging.getLogger(__name__)


class FSEventHandler(FileSystemEventHandler):
    """Handler that converts watchdog events to RawChangeEvent."""

    def __init__(self, callback: Callable[[RawChangeEvent], None]):
        super().__init__()
        self.callback = callback
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def _emit(self, path: Path, flags: ChangeFlag, is_directory: bool = False):
        """Emit a RawChangeEvent to the callback."""
        if is_directory:
            flags |= ChangeFlag.IS_DIR

        with self._lock:
            sequence_id = next(self._sequence)

        raw_event = RawChangeEvent(
            path=path,
            flags=flags,
            sequence_id=sequence_id,
            timestamp=time.time(),
        )
        self.callback(raw_event)

    def on_created(self, event):
        is_dir = isinstance(event, DirCreatedEvent)
        self._emit(Path(event.src_path), ChangeFlag.CREATED, is_directory=is_dir)

    def on_deleted(self, event):
        is_dir = isinstance(event, DirDeletedEvent)
        self._emit(Path(event.src_path), ChangeFlag.REMOVED, is_directory=is_dir)

    def on_modified(self, event):
        is_dir = isinstance(event, DirModifiedEvent)
        self._emit(Path(event.src_path), ChangeFlag.MODIFIED, is_directory=is_dir)

    def on_moved(self, event):
        # The interesting side of a rename is where the file ended up
        is_dir = isinstance(event, DirMovedEvent)
        self._emit(Path(event.dest_path), ChangeFlag.RENAMED, is_directory=is_dir)


class DirectoryMonitor:
    """
    Owns the filesystem subscription for one directory tree.

    Raw events are run through the event filter and, where configured,
    the conversion pipeline. Each qualifying file results in exactly one
    call to ``on_new_image``, delivered through the dispatcher when one
    is given.
    """

    def __init__(
        self,
        on_new_image: Callable[[Path], None],
        config: Optional[ShotsweepConfig] = None,
        event_filter: Optional[EventFilter] = None,
        pipeline: Optional[ConversionPipeline] = None,
        conversion_enabled: Optional[Callable[[], bool]] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        """
        Initialize the monitor.

        Args:
            on_new_image: Consumer callback for new images
            config: Shotsweep configuration
            event_filter: Filter for raw events (built from config if omitted)
            pipeline: Conversion pipeline; without one nothing is converted
            conversion_enabled: Queried per event to decide on conversion
            dispatcher: Delivery context for on_new_image calls
        """
        self.on_new_image = on_new_image
        self.config = config or ShotsweepConfig()
        self.event_filter = event_filter or EventFilter(self.config)
        self.pipeline = pipeline
        self.conversion_enabled = conversion_enabled or (lambda: False)
        self.dispatcher = dispatcher

        self._observer: Optional[Observer] = None
        self._watch_target: Optional[Path] = None
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._converting: Set[Path] = set()
        self.events_seen = 0
        self.images_detected = 0

    def start_monitoring(self, target: Path) -> None:
        """
        Start watching a directory, replacing any current watch.

        Args:
            target: Directory to watch

        Raises:
            SubscriptionError: If the watch could not be established
        """
        target = Path(target).expanduser().resolve()

        with self._lock:
            self._stop_locked()

            if not target.exists():
                raise SubscriptionError(f"Watch path does not exist: {target}", target)
            if not target.is_dir():
                raise SubscriptionError(f"Watch path is not a directory: {target}", target)

            observer = Observer()
            handler = FSEventHandler(self.handle_event)

            try:
                observer.schedule(handler, str(target), recursive=self.config.recursive)
                observer.start()
            except Exception as e:
                observer.stop()
                raise SubscriptionError(f"Failed to watch {target}: {e}", target) from e

            self._observer = observer
            self._watch_target = target
            self.event_filter.clear()

        logger.info(f"Monitoring {target}")

    def stop_monitoring(self) -> bool:
        """
        Stop watching. Safe to call when not watching.

        Returns:
            True if a subscription was released, False if there was none
        """
        with self._lock:
            return self._stop_locked()

    def _stop_locked(self) -> bool:
        if self._observer is None:
            return False

        observer = self._observer
        target = self._watch_target
        self._observer = None
        self._watch_target = None

        observer.stop()
        observer.join(timeout=5.0)
        logger.info(f"Stopped monitoring {target}")
        return True

    def handle_event(self, raw_event: RawChangeEvent) -> None:
        """
        Process a raw change event.

        Args:
            raw_event: Event from the filesystem handler
        """
        with self._stats_lock:
            self.events_seen += 1
            own_output = raw_event.path in self._converting

        # The converter writes its output into the watched tree
        if own_output:
            logger.debug(f"Ignoring {raw_event.path}: conversion output in progress")
            return

        candidate = self.event_filter.accept(raw_event)
        if candidate is None:
            return

        with self._stats_lock:
            self.images_detected += 1

        logger.debug(f"New image #{raw_event.sequence_id}: {candidate.path}")

        if self.pipeline is not None and self.pipeline.needs_conversion(candidate, self.conversion_enabled()):
            target = self.pipeline.target_path_for(candidate.path)
            with self._stats_lock:
                self._converting.add(target)
            self.pipeline.submit(candidate, lambda result: self._finish_conversion(target, result))
        else:
            self._publish(candidate.path)

    def _finish_conversion(self, target: Path, result: Path) -> None:
        """Runs on a conversion worker once the job is done."""
        self.event_filter.mark_seen(target)
        with self._stats_lock:
            self._converting.discard(target)
        self._publish(result)

    def _publish(self, path: Path) -> None:
        if self.dispatcher is not None:
            self.dispatcher.post(self.on_new_image, path)
        else:
            self.on_new_image(path)

    @property
    def watch_target(self) -> Optional[Path]:
        """The directory currently watched, if any."""
        with self._lock:
            return self._watch_target

    @property
    def is_monitoring(self) -> bool:
        with self._lock:
            return self._observer is not None
