"""Deferred deletion of files with cancel-and-replace semantics."""

import dataclasses
import heapq
import itertools
import logging
import math
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .config import ShotsweepConfig
from .exceptions import DeletionError, SchedulerStoppedError
from .models import DeletionOutcome, ScheduledDeletion

logger = logging.getLogger(__name__)


def container_path_for(file_path: Path, container_root: Path) -> Path:
    """Map a file's name into the container root."""
    return Path(container_root) / Path(file_path).name


def delete_file(file_path: Path, container_root: Optional[Path] = None) -> Path:
    """
    Delete a file, trying the container path first and the literal path second.

    Args:
        file_path: User-visible path of the file
        container_root: Alternate root holding the file, if any

    Returns:
        The path that was actually removed

    Raises:
        DeletionError: If every attempt failed
    """
    file_path = Path(file_path)
    targets: List[Path] = []
    if container_root is not None:
        targets.append(container_path_for(file_path, container_root))
    if file_path not in targets:
        targets.append(file_path)

    attempts: List[Tuple[Path, str]] = []
    for target in targets:
        try:
            target.unlink()
            logger.info(f"Deleted {target}")
            return target
        except OSError as e:
            attempts.append((target, str(e)))
            logger.info(f"Delete attempt at {target} failed: {e}")

    raise DeletionError(f"Could not delete {file_path}: {attempts[-1][1]}", attempts)


def delete_with_fallback(file_path: Path, container_root: Optional[Path] = None) -> DeletionOutcome:
    """
    Delete a file and describe the result.

    Args:
        file_path: User-visible path of the file
        container_root: Alternate root holding the file, if any

    Returns:
        DeletionOutcome for the file
    """
    try:
        deleted = delete_file(file_path, container_root)
    except DeletionError as e:
        logger.error(str(e))
        return DeletionOutcome(file_path=Path(file_path), success=False, error_detail=str(e))
    return DeletionOutcome(file_path=Path(file_path), success=True, deleted_path=deleted)


class DeletionScheduler:
    """
    Holds at most one pending delete timer per file path.

    All timer state is owned by a single coordinating thread that
    consumes schedule/cancel/snapshot/stop messages from a queue, so
    replacing a timer and firing it can never interleave. Once a timer
    fires its entry is removed and the delete runs to completion on a
    worker thread; it cannot be cancelled any more.
    """

    def __init__(
        self,
        on_outcome: Optional[Callable[[DeletionOutcome], None]] = None,
        config: Optional[ShotsweepConfig] = None,
        delete_fn: Optional[Callable[[Path, Optional[Path]], DeletionOutcome]] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            on_outcome: Called with the outcome of every fired deletion
            config: Shotsweep configuration
            delete_fn: Replacement for delete_with_fallback
        """
        self.on_outcome = on_outcome
        self.config = config or ShotsweepConfig()
        self.delete_fn = delete_fn or delete_with_fallback

        self._inbox: "queue.Queue[tuple]" = queue.Queue()
        self._entries: Dict[Path, ScheduledDeletion] = {}
        self._deadlines: List[Tuple[float, int, Path]] = []
        self._handles = itertools.count(1)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the coordinating thread. Calling start twice is a no-op."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._executor = ThreadPoolExecutor(
                max_workers=max(1, self.config.deletion_workers),
                thread_name_prefix="Deletion",
            )
            self._thread = threading.Thread(target=self._run, name="DeletionScheduler", daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """
        Cancel all pending timers and stop.

        Deletes that already fired are allowed to finish.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            thread = self._thread
            self._inbox.put(("stop", Future()))

        if thread is not None:
            thread.join(timeout=timeout)

        with self._lock:
            executor = self._executor
            self._thread = None
            self._executor = None
        if executor is not None:
            executor.shutdown(wait=True)

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def schedule(self, file_path: Path, delay_seconds: float) -> "Future[ScheduledDeletion]":
        """
        Arm a deletion, replacing any pending one for the same path.

        Args:
            file_path: File to delete
            delay_seconds: Seconds to wait before deleting

        Returns:
            Future resolving to the armed ScheduledDeletion

        Raises:
            ValueError: If delay_seconds is not a positive finite number
            SchedulerStoppedError: If the scheduler is not running
        """
        if not math.isfinite(delay_seconds) or delay_seconds <= 0:
            raise ValueError(f"delay must be a positive number: {delay_seconds}")

        future: Future = Future()
        self._send(("schedule", Path(file_path), float(delay_seconds), future))
        return future

    def cancel(self, file_path: Path) -> "Future[bool]":
        """
        Cancel a pending deletion.

        Returns:
            Future resolving to True if a pending deletion was cancelled
        """
        future: Future = Future()
        self._send(("cancel", Path(file_path), future))
        return future

    def pending(self, timeout: float = 5.0) -> List[ScheduledDeletion]:
        """Snapshot of the pending deletions."""
        future: Future = Future()
        self._send(("snapshot", future))
        return future.result(timeout=timeout)

    def is_scheduled(self, file_path: Path, timeout: float = 5.0) -> bool:
        """Check whether a deletion is pending for a path."""
        file_path = Path(file_path)
        return any(entry.file_path == file_path for entry in self.pending(timeout))

    def _send(self, message: tuple) -> None:
        with self._lock:
            if not self._running:
                raise SchedulerStoppedError("Deletion scheduler is not running")
            self._inbox.put(message)

    # ------------------------------------------------------------------
    # Coordinating thread
    # ------------------------------------------------------------------

    def _run(self) -> None:
        logger.debug("Deletion scheduler loop started")

        while True:
            try:
                message = self._inbox.get(timeout=self._next_timeout())
            except queue.Empty:
                message = None

            try:
                self._fire_due()
            except Exception as e:
                logger.error(f"Deletion scheduler error firing timers: {e}")

            if message is None:
                continue
            try:
                if not self._handle(message):
                    break
            except Exception as e:
                logger.error(f"Deletion scheduler error handling {message[0]}: {e}")

        logger.debug("Deletion scheduler loop stopped")

    def _handle(self, message: tuple) -> bool:
        kind = message[0]

        if kind == "schedule":
            _, path, delay, future = message
            future.set_result(self._arm(path, delay))
        elif kind == "cancel":
            _, path, future = message
            entry = self._entries.pop(path, None)
            if entry is not None:
                logger.info(f"Cancelled deletion of {path}")
            future.set_result(entry is not None)
        elif kind == "snapshot":
            _, future = message
            future.set_result([dataclasses.replace(e) for e in self._entries.values()])
        elif kind == "stop":
            _, future = message
            if self._entries:
                logger.info(f"Discarding {len(self._entries)} pending deletion(s)")
            self._entries.clear()
            self._deadlines.clear()
            future.set_result(None)
            return False

        return True

    def _arm(self, path: Path, delay: float) -> ScheduledDeletion:
        previous = self._entries.pop(path, None)
        if previous is not None:
            logger.info(f"Replacing pending deletion of {path} ({previous.delay_seconds:g}s)")

        entry = ScheduledDeletion(
            file_path=path,
            delay_seconds=delay,
            fire_at=time.monotonic() + delay,
            timer_handle=next(self._handles),
        )
        self._entries[path] = entry
        heapq.heappush(self._deadlines, (entry.fire_at, entry.timer_handle, path))
        logger.info(f"Scheduled deletion of {path} in {delay:g}s")
        return dataclasses.replace(entry)

    def _is_live(self, handle: int, path: Path) -> bool:
        entry = self._entries.get(path)
        return entry is not None and entry.timer_handle == handle

    def _next_timeout(self) -> Optional[float]:
        # Drop deadlines whose entry was cancelled or replaced
        while self._deadlines and not self._is_live(self._deadlines[0][1], self._deadlines[0][2]):
            heapq.heappop(self._deadlines)

        if not self._deadlines:
            return None
        # Queue.get rejects waits beyond the platform limit
        return min(max(0.0, self._deadlines[0][0] - time.monotonic()), threading.TIMEOUT_MAX)

    def _fire_due(self) -> None:
        now = time.monotonic()

        while self._deadlines and self._deadlines[0][0] <= now:
            _, handle, path = heapq.heappop(self._deadlines)
            if not self._is_live(handle, path):
                continue

            entry = self._entries.pop(path)
            logger.debug(f"Deletion timer fired for {path}")
            self._executor.submit(self._execute, entry)

    def _execute(self, entry: ScheduledDeletion) -> DeletionOutcome:
        outcome = self.delete_fn(entry.file_path, self.config.container_root)

        if self.on_outcome is not None:
            try:
                self.on_outcome(outcome)
            except Exception as e:
                logger.error(f"Deletion outcome handler failed for {entry.file_path}: {e}")

        return outcome
