"""Tests for the command-line interface."""

import pytest
from pathlib import Path

from src.cli import ConsoleListener, main
from src.shotsweep.models import DeletionOutcome
from src.shotsweep.settings import SettingsManager


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SHOTSWEEP_DB", "SHOTSWEEP_CONTAINER_ROOT", "SHOTSWEEP_CONVERTER"):
        monkeypatch.delenv(name, raising=False)


class TestSettingsCommand:
    """Tests for the settings command."""

    def test_show_defaults(self, tmp_path, capsys):
        main(["settings", "--db", str(tmp_path / "s.db")])

        out = capsys.readouterr().out
        assert "notify_on_deletion: 1" in out
        assert "convert_heic_to_jpg: 0" in out
        assert "last_watched_path: -" in out

    def test_set_values(self, tmp_path, capsys):
        db = tmp_path / "s.db"
        main([
            "settings", "--db", str(db),
            "--set", "notify_on_deletion=off",
            "--set", f"last_watched_path={tmp_path}",
        ])

        settings = SettingsManager(db)
        assert settings.get_notify_on_deletion() is False
        assert settings.get_last_watched_path() == tmp_path
        assert "notify_on_deletion: 0" in capsys.readouterr().out

    def test_unknown_key(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["settings", "--db", str(tmp_path / "s.db"), "--set", "theme=dark"])
        assert exc_info.value.code == 2

    def test_missing_equals(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["settings", "--db", str(tmp_path / "s.db"), "--set", "notify_on_deletion"])
        assert exc_info.value.code == 2


class TestDeleteCommand:
    """Tests for the delete command."""

    def test_deletes_file(self, tmp_path, capsys):
        shot = tmp_path / "shot.png"
        shot.write_bytes(b"png")

        main(["delete", str(shot), "--after", "0.1", "--container-root", ""])

        assert not shot.exists()
        assert f"Deleted {shot}" in capsys.readouterr().out

    def test_deletes_container_copy(self, tmp_path, capsys):
        container = tmp_path / "container"
        container.mkdir()
        boxed = container / "shot.png"
        boxed.write_bytes(b"png")
        shot = tmp_path / "shot.png"
        shot.write_bytes(b"png")

        main(["delete", str(shot), "--after", "0.1", "--container-root", str(container)])

        assert not boxed.exists()
        assert shot.exists()

    def test_missing_file_fails(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["delete", str(tmp_path / "gone.png"), "--after", "0.1", "--container-root", ""])
        assert exc_info.value.code == 1

    def test_non_positive_delay_rejected(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["delete", str(tmp_path / "a.png"), "--after", "0"])
        assert exc_info.value.code == 2


    def test_infinite_delay_rejected(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["delete", str(tmp_path / "a.png"), "--after", "inf"])
        assert exc_info.value.code == 2


class TestWatchArguments:
    """Tests for watch argument validation."""

    def test_delay_must_be_preset(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["watch", "--db", str(tmp_path / "s.db"), "--delete-after", "15"])
        assert exc_info.value.code == 2


class TestConsoleListener:
    """Tests for ConsoleListener output."""

    def test_prints_new_image(self, capsys):
        ConsoleListener().on_new_image_available(Path("/d/shot.png"))
        assert "New image: /d/shot.png" in capsys.readouterr().out

    def test_schedules_deletion(self):
        scheduled = []

        class FakeService:
            def request_deletion_schedule(self, path, delay):
                scheduled.append((path, delay))

        listener = ConsoleListener(delete_after=30)
        listener.service = FakeService()
        listener.on_new_image_available(Path("/d/shot.png"))

        assert scheduled == [(Path("/d/shot.png"), 30)]

    def test_prints_deletion_failure(self, capsys):
        outcome = DeletionOutcome(file_path=Path("/d/shot.png"), success=False, error_detail="denied")
        ConsoleListener().on_deletion_outcome(outcome)
        assert "Error deleting /d/shot.png: denied" in capsys.readouterr().out

    def test_prints_notice(self, capsys):
        ConsoleListener().on_deletion_notice(Path("/d/shot.png"))
        assert "Deleted 'shot.png'" in capsys.readouterr().out
