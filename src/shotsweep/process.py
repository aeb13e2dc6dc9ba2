"""Main shotsweep service orchestrator."""

import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import List, Optional

from .config import ShotsweepConfig
from .conversion import ConversionPipeline, ImageConverter, MagickConverter
from .dispatcher import NotificationDispatcher, ShotsweepListener
from .exceptions import ShotsweepError, SubscriptionError
from .fs_watcher import DirectoryMonitor
from .models import DeletionOutcome, ScheduledDeletion
from .scheduler import DeletionScheduler
from .settings import SettingsManager

logger = logging.getLogger(__name__)


class ShotsweepService:
    """
    Main orchestrator for shotsweep.

    Wires the directory monitor, conversion pipeline, deletion scheduler
    and notification dispatcher together, and exposes the requests a user
    interface makes. Every listener hook is invoked on the dispatcher
    thread.
    """

    def __init__(
        self,
        config: Optional[ShotsweepConfig] = None,
        listener: Optional[ShotsweepListener] = None,
        converter: Optional[ImageConverter] = None,
        settings: Optional[SettingsManager] = None,
        db_path: Optional[Path] = None,
    ):
        """
        Initialize the service.

        Args:
            config: Shotsweep configuration
            listener: Receiver of notifications
            converter: Image converter (ImageMagick at config.converter_path by default)
            settings: Persisted settings (opened from config.db_path by default)
            db_path: Path to the settings database (overrides config.db_path)
        """
        self.config = config or ShotsweepConfig()
        if db_path:
            self.config.db_path = Path(db_path)

        self.listener = listener or ShotsweepListener()
        self.settings = settings or SettingsManager(self.config.db_path)
        self.converter = converter or MagickConverter(
            self.config.converter_path,
            quality=self.config.conversion_quality,
        )

        self._conversion_enabled = self.settings.get_convert_heic_to_jpg()
        self._notify_on_deletion = self.settings.get_notify_on_deletion()

        self._dispatcher = NotificationDispatcher()
        self._pipeline = ConversionPipeline(self.converter, self.config)
        self._monitor = DirectoryMonitor(
            self._deliver_new_image,
            self.config,
            pipeline=self._pipeline,
            conversion_enabled=lambda: self._conversion_enabled,
            dispatcher=self._dispatcher,
        )
        self._scheduler = DeletionScheduler(self._on_deletion_outcome, self.config)

        self._running = False
        self._closed = False
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Start the service (blocking).

        Blocks until stop() is called from another thread or the process
        is interrupted.
        """
        self.start_async()

        try:
            while not self._stop_event.is_set():
                self._stop_event.wait(timeout=0.5)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def start_async(self, restore: bool = True) -> None:
        """
        Start the service in background threads.

        Args:
            restore: Resume watching the last watched directory (or the
                default directory when none is stored)

        Raises:
            ShotsweepError: If the service is running or was closed
        """
        with self._lock:
            if self._closed:
                raise ShotsweepError("Service was stopped and cannot be restarted")
            if self._running:
                raise ShotsweepError("Service is already running")
            self._running = True
            self._stop_event.clear()

        self._dispatcher.start()
        self._scheduler.start()

        if restore:
            self.restore_watch()

    def restore_watch(self) -> Optional[Path]:
        """
        Resume watching the last watched directory, or the default one.

        Failures are logged and reported to the listener.

        Returns:
            The directory being watched, or None if the watch failed
        """
        saved = self.settings.get_last_watched_path()

        if saved is not None and saved.exists():
            target = saved
            logger.info(f"Restoring watch on saved path: {target}")
        else:
            target = self.config.default_watch_path
            logger.info(f"Defaulting to {target}")

        try:
            return self.start_monitoring(target, persist=False)
        except SubscriptionError:
            return None

    def stop(self) -> None:
        """Stop watching, finish in-flight work, and stop all threads."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._closed = True
            self._stop_event.set()

        self._monitor.stop_monitoring()
        # Let running conversions publish before the dispatcher goes away
        self._pipeline.shutdown(wait=True)
        self._scheduler.stop()
        self._dispatcher.stop()
        logger.info("Shotsweep stopped")

    def close(self) -> None:
        """Stop the service and release all resources."""
        self.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    # ------------------------------------------------------------------
    # Requests from the user interface
    # ------------------------------------------------------------------

    def start_monitoring(self, path: Path, persist: bool = True) -> Path:
        """
        Watch a directory, replacing the current watch.

        Args:
            path: Directory to watch
            persist: Remember the directory for the next start

        Returns:
            The resolved directory being watched

        Raises:
            SubscriptionError: If the watch could not be established
        """
        try:
            self._monitor.start_monitoring(Path(path))
        except SubscriptionError as e:
            logger.error(f"Could not start monitoring: {e}")
            self._dispatcher.post(self.listener.on_monitoring_failed, Path(path), e)
            raise

        target = self._monitor.watch_target
        if persist:
            self.settings.set_last_watched_path(target)
        self._dispatcher.post(self.listener.on_monitoring_changed, target)
        return target

    def stop_monitoring(self) -> bool:
        """Stop watching. Safe to call when not watching."""
        return self._monitor.stop_monitoring()

    def request_conversion_toggle(self, enabled: bool) -> bool:
        """
        Enable or disable HEIC to JPEG conversion.

        Enabling requires the converter to be installed.

        Returns:
            The conversion setting now in effect
        """
        if enabled and not self.converter.is_available():
            logger.warning(f"Converter not found at {self.config.converter_path}; conversion stays off")
            self._dispatcher.post(self.listener.on_conversion_unavailable, self.config.converter_path)
            enabled = False

        self._conversion_enabled = enabled
        self.settings.set_convert_heic_to_jpg(enabled)
        logger.info(f"Conversion {'enabled' if enabled else 'disabled'}")
        return enabled

    def request_deletion_schedule(self, path: Path, delay_seconds: float) -> "Future[ScheduledDeletion]":
        """
        Delete a file after a delay, replacing any pending deletion of it.

        Args:
            path: File to delete
            delay_seconds: Positive delay in seconds

        Returns:
            Future resolving to the armed ScheduledDeletion
        """
        return self._scheduler.schedule(Path(path), delay_seconds)

    def cancel_deletion(self, path: Path) -> "Future[bool]":
        """Cancel a pending deletion."""
        return self._scheduler.cancel(Path(path))

    def set_notify_on_deletion(self, enabled: bool) -> None:
        """Turn the informational notice after a deletion on or off."""
        self._notify_on_deletion = enabled
        self.settings.set_notify_on_deletion(enabled)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def watch_target(self) -> Optional[Path]:
        return self._monitor.watch_target

    @property
    def conversion_enabled(self) -> bool:
        return self._conversion_enabled

    @property
    def notify_on_deletion(self) -> bool:
        return self._notify_on_deletion

    def pending_deletions(self) -> List[ScheduledDeletion]:
        """Deletions armed but not yet fired."""
        return self._scheduler.pending()

    # ------------------------------------------------------------------
    # Internal callbacks
    # ------------------------------------------------------------------

    def _deliver_new_image(self, path: Path) -> None:
        """Runs on the dispatcher thread."""
        logger.info(f"New image available: {path}")
        self.listener.on_new_image_available(path)

    def _on_deletion_outcome(self, outcome: DeletionOutcome) -> None:
        """Runs on a deletion worker thread."""
        self._dispatcher.post(self.listener.on_deletion_outcome, outcome)

        if outcome.success and self._notify_on_deletion:
            self._dispatcher.post(self.listener.on_deletion_notice, outcome.file_path)
