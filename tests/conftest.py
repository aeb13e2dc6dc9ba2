"""Shared fixtures for shotsweep tests."""

import pytest

from src.shotsweep.config import ShotsweepConfig


@pytest.fixture
def config(tmp_path):
    """Config that keeps every path inside tmp_path."""
    desktop = tmp_path / "Desktop"
    desktop.mkdir()
    container = tmp_path / "container"
    container.mkdir()
    return ShotsweepConfig(
        db_path=tmp_path / "shotsweep.db",
        default_watch_path=desktop,
        container_root=container,
        converter_path=tmp_path / "bin" / "magick",
    )
