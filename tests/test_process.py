"""Tests for the shotsweep service orchestrator."""

import threading
import time
import pytest
from pathlib import Path

from src.shotsweep.conversion import ImageConverter
from src.shotsweep.dispatcher import ShotsweepListener
from src.shotsweep.exceptions import ShotsweepError, SubscriptionError
from src.shotsweep.process import ShotsweepService
from src.shotsweep.settings import SettingsManager


class RecordingListener(ShotsweepListener):
    """Listener that records every hook call and the thread it ran on."""

    def __init__(self):
        self.calls = []
        self.threads = set()
        self.lock = threading.Lock()

    def _record(self, hook, *args):
        with self.lock:
            self.calls.append((hook, args))
            self.threads.add(threading.current_thread().name)

    def of(self, hook):
        with self.lock:
            return [args for name, args in self.calls if name == hook]

    def wait_for(self, hook, count=1, timeout=5.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if len(self.of(hook)) >= count:
                return True
            time.sleep(0.02)
        return False

    def on_new_image_available(self, path):
        self._record("new_image", path)

    def on_deletion_outcome(self, outcome):
        self._record("outcome", outcome)

    def on_deletion_notice(self, path):
        self._record("notice", path)

    def on_monitoring_changed(self, path):
        self._record("monitoring_changed", path)

    def on_monitoring_failed(self, path, error):
        self._record("monitoring_failed", path, error)

    def on_conversion_unavailable(self, converter_path):
        self._record("conversion_unavailable", converter_path)


class CopyConverter(ImageConverter):
    def convert(self, source: Path, target: Path) -> Path:
        target.write_bytes(source.read_bytes())
        return target


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def service(config, listener):
    svc = ShotsweepService(config=config, listener=listener)
    yield svc
    svc.stop()


class TestServiceLifecycle:
    """Tests for starting, restoring and stopping the service."""

    def test_start_watches_default_path(self, service, config, listener):
        service.start_async()

        assert service.is_running is True
        assert service.watch_target == config.default_watch_path.resolve()
        assert listener.wait_for("monitoring_changed")
        assert listener.of("monitoring_changed")[0] == (config.default_watch_path.resolve(),)

    def test_default_path_not_persisted(self, service, config):
        service.start_async()
        assert SettingsManager(config.db_path).get_last_watched_path() is None

    def test_restores_saved_path(self, config, listener, tmp_path):
        saved = tmp_path / "Screenshots"
        saved.mkdir()
        SettingsManager(config.db_path).set_last_watched_path(saved)

        with ShotsweepService(config=config, listener=listener) as service:
            service.start_async()
            assert service.watch_target == saved.resolve()

    def test_missing_saved_path_falls_back_to_default(self, config, listener, tmp_path):
        SettingsManager(config.db_path).set_last_watched_path(tmp_path / "deleted")

        with ShotsweepService(config=config, listener=listener) as service:
            service.start_async()
            assert service.watch_target == config.default_watch_path.resolve()

    def test_missing_default_path_reports_failure(self, config, listener, tmp_path):
        config.default_watch_path = tmp_path / "no-desktop"

        with ShotsweepService(config=config, listener=listener) as service:
            service.start_async()

            assert service.watch_target is None
            assert listener.wait_for("monitoring_failed")
            path, error = listener.of("monitoring_failed")[0]
            assert path == tmp_path / "no-desktop"
            assert isinstance(error, SubscriptionError)

    def test_start_without_restore(self, service):
        service.start_async(restore=False)
        assert service.is_running is True
        assert service.watch_target is None

    def test_start_twice(self, service):
        service.start_async()
        with pytest.raises(ShotsweepError):
            service.start_async()

    def test_cannot_restart_after_stop(self, service):
        service.start_async()
        service.stop()

        assert service.is_running is False
        assert service.watch_target is None
        with pytest.raises(ShotsweepError):
            service.start_async()

    def test_stop_is_idempotent(self, service):
        service.start_async()
        service.stop()
        service.stop()

    def test_blocking_start_returns_after_stop(self, service):
        thread = threading.Thread(target=service.start)
        thread.start()

        deadline = time.monotonic() + 5.0
        while not service.is_running and time.monotonic() < deadline:
            time.sleep(0.02)
        service.stop()
        thread.join(timeout=5.0)

        assert not thread.is_alive()


class TestServiceMonitoring:
    """Tests for watch requests."""

    def test_start_monitoring_persists_path(self, service, config, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        service.start_async()

        target = service.start_monitoring(other)

        assert target == other.resolve()
        assert service.watch_target == other.resolve()
        assert SettingsManager(config.db_path).get_last_watched_path() == other.resolve()

    def test_start_monitoring_missing_path(self, service, listener, tmp_path):
        service.start_async(restore=False)

        with pytest.raises(SubscriptionError):
            service.start_monitoring(tmp_path / "nope")

        assert listener.wait_for("monitoring_failed")

    def test_stop_monitoring_twice(self, service):
        service.start_async()
        assert service.stop_monitoring() is True
        assert service.stop_monitoring() is False
        assert service.watch_target is None

    def test_new_image_reported_once(self, service, listener):
        service.start_async()
        time.sleep(0.2)
        shot = service.watch_target / "Screenshot 2024-01-01 at 10.00.00.png"
        shot.write_bytes(b"png")

        assert listener.wait_for("new_image")
        time.sleep(0.5)

        assert listener.of("new_image") == [(shot,)]

    def test_non_image_not_reported(self, service, listener):
        service.start_async()
        time.sleep(0.2)
        (service.watch_target / "notes.txt").write_text("x")
        time.sleep(0.5)

        assert listener.of("new_image") == []

    def test_listener_runs_on_dispatcher_thread(self, service, listener):
        service.start_async()
        time.sleep(0.2)
        (service.watch_target / "shot.png").write_bytes(b"png")
        assert listener.wait_for("new_image")

        assert listener.threads == {"NotificationDispatcher"}


class TestServiceConversion:
    """Tests for the conversion toggle."""

    def test_toggle_with_missing_converter(self, service, config, listener):
        service.start_async(restore=False)

        assert service.request_conversion_toggle(True) is False
        assert service.conversion_enabled is False
        assert SettingsManager(config.db_path).get_convert_heic_to_jpg() is False
        assert listener.wait_for("conversion_unavailable")
        assert listener.of("conversion_unavailable")[0] == (config.converter_path,)

    def test_toggle_with_available_converter(self, config, listener):
        with ShotsweepService(config=config, listener=listener, converter=CopyConverter()) as service:
            service.start_async(restore=False)

            assert service.request_conversion_toggle(True) is True
            assert SettingsManager(config.db_path).get_convert_heic_to_jpg() is True

            assert service.request_conversion_toggle(False) is False
            assert SettingsManager(config.db_path).get_convert_heic_to_jpg() is False

    def test_heic_converted_before_announcement(self, config, listener):
        with ShotsweepService(config=config, listener=listener, converter=CopyConverter()) as service:
            service.start_async()
            service.request_conversion_toggle(True)
            time.sleep(0.2)
            shot = service.watch_target / "IMG_0001.heic"
            shot.write_bytes(b"heic")

            assert listener.wait_for("new_image")
            time.sleep(0.3)

            assert listener.of("new_image") == [(service.watch_target / "IMG_0001.jpg",)]

    def test_heic_announced_when_converter_missing(self, config, listener, caplog):
        # Conversion was enabled in a previous run, converter since removed
        SettingsManager(config.db_path).set_convert_heic_to_jpg(True)

        with ShotsweepService(config=config, listener=listener) as service:
            service.start_async()
            time.sleep(0.2)
            shot = service.watch_target / "IMG_0002.heic"
            shot.write_bytes(b"heic")

            assert listener.wait_for("new_image")
            time.sleep(0.3)

            assert listener.of("new_image") == [(shot,)]
        assert "IMG_0002.heic" in caplog.text


class TestServiceDeletion:
    """Tests for deletion requests."""

    def test_deletion_reports_outcome_and_notice(self, service, listener):
        service.start_async()
        shot = service.watch_target / "shot.png"
        shot.write_bytes(b"png")

        entry = service.request_deletion_schedule(shot, 0.1).result(timeout=5.0)
        assert entry.file_path == shot

        assert listener.wait_for("outcome")
        assert listener.wait_for("notice")
        outcome = listener.of("outcome")[0][0]
        assert outcome.success is True
        assert outcome.deleted_path == shot
        assert listener.of("notice") == [(shot,)]
        assert not shot.exists()

    def test_no_notice_when_disabled(self, service, listener, config):
        service.start_async()
        service.set_notify_on_deletion(False)
        shot = service.watch_target / "shot.png"
        shot.write_bytes(b"png")

        service.request_deletion_schedule(shot, 0.05)

        assert listener.wait_for("outcome")
        time.sleep(0.2)
        assert listener.of("notice") == []
        assert service.notify_on_deletion is False
        assert SettingsManager(config.db_path).get_notify_on_deletion() is False

    def test_failed_deletion_has_no_notice(self, service, listener):
        service.start_async()

        service.request_deletion_schedule(service.watch_target / "gone.png", 0.05)

        assert listener.wait_for("outcome")
        time.sleep(0.2)
        outcome = listener.of("outcome")[0][0]
        assert outcome.success is False
        assert outcome.error_detail
        assert listener.of("notice") == []

    def test_reschedule_replaces(self, service, listener):
        service.start_async()
        shot = service.watch_target / "shot.png"
        shot.write_bytes(b"png")

        service.request_deletion_schedule(shot, 0.6)
        service.request_deletion_schedule(shot, 0.1)

        assert len(service.pending_deletions()) == 1
        assert listener.wait_for("outcome")
        time.sleep(0.8)
        assert len(listener.of("outcome")) == 1

    def test_cancel_deletion(self, service, listener):
        service.start_async()
        shot = service.watch_target / "shot.png"
        shot.write_bytes(b"png")

        service.request_deletion_schedule(shot, 0.2)
        assert service.cancel_deletion(shot).result(timeout=5.0) is True
        time.sleep(0.4)

        assert shot.exists()
        assert listener.of("outcome") == []
