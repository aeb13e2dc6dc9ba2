"""Configuration for the shotsweep package."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple


# Delay presets offered to the user, in seconds
ALLOWED_DELAYS: Tuple[int, ...] = (10, 30, 60, 90)

IMAGE_EXTENSIONS: Tuple[str, ...] = ("jpg", "jpeg", "png", "gif", "heic", "webp")


def _desktop() -> Path:
    return Path.home() / "Desktop"


@dataclass
class ShotsweepConfig:
    """
    Configuration options for shotsweep.

    Attributes:
        db_path: Path to the SQLite database holding persisted settings
        default_watch_path: Directory watched when no previous path is stored
        container_root: Alternate root tried first when deleting a file
            (None disables the container attempt)
        converter_path: Install location of the external image converter
        conversion_quality: Quality passed to the converter
        conversion_source_ext: Format that triggers conversion
        conversion_target_ext: Format conversions produce
        image_extensions: Closed allowlist of recognized image extensions
        dedupe_window_ms: Window in which a repeated event for the same path
            is dropped
        recursive: Whether to watch the directory tree recursively
        conversion_workers: Threads available for running the converter
        deletion_workers: Threads available for executing deletes
        ignore_patterns: Glob patterns for file names to ignore
    """
    db_path: Path = field(default_factory=lambda: Path("shotsweep.db"))
    default_watch_path: Path = field(default_factory=_desktop)
    container_root: Optional[Path] = field(default_factory=_desktop)
    converter_path: Path = field(default_factory=lambda: Path("/opt/homebrew/bin/magick"))
    conversion_quality: int = 80
    conversion_source_ext: str = "heic"
    conversion_target_ext: str = "jpg"
    image_extensions: Tuple[str, ...] = IMAGE_EXTENSIONS
    dedupe_window_ms: int = 1000
    recursive: bool = True
    conversion_workers: int = 2
    deletion_workers: int = 2
    ignore_patterns: List[str] = field(default_factory=lambda: [
        ".*",
        "*~",
    ])

    def __post_init__(self):
        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path)
        if isinstance(self.default_watch_path, str):
            self.default_watch_path = Path(self.default_watch_path)
        if isinstance(self.container_root, str):
            self.container_root = Path(self.container_root)
        if isinstance(self.converter_path, str):
            self.converter_path = Path(self.converter_path)
        self.conversion_source_ext = self.conversion_source_ext.lstrip(".").lower()
        self.conversion_target_ext = self.conversion_target_ext.lstrip(".").lower()
        self.image_extensions = tuple(e.lstrip(".").lower() for e in self.image_extensions)

    @classmethod
    def from_env(cls, **overrides) -> "ShotsweepConfig":
        """
        Build a config from SHOTSWEEP_* environment variables.

        Args:
            **overrides: Explicit values that take precedence over the environment

        Returns:
            A new configuration
        """
        values = {}

        if os.environ.get("SHOTSWEEP_DB"):
            values["db_path"] = Path(os.environ["SHOTSWEEP_DB"])
        if os.environ.get("SHOTSWEEP_WATCH_PATH"):
            values["default_watch_path"] = Path(os.environ["SHOTSWEEP_WATCH_PATH"]).expanduser()
        if "SHOTSWEEP_CONTAINER_ROOT" in os.environ:
            raw = os.environ["SHOTSWEEP_CONTAINER_ROOT"]
            values["container_root"] = Path(raw).expanduser() if raw else None
        if os.environ.get("SHOTSWEEP_CONVERTER"):
            values["converter_path"] = Path(os.environ["SHOTSWEEP_CONVERTER"])
        if os.environ.get("SHOTSWEEP_DEDUPE_MS"):
            values["dedupe_window_ms"] = int(os.environ["SHOTSWEEP_DEDUPE_MS"])

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def is_image_extension(self, extension: str) -> bool:
        """Check an extension (with or without dot) against the allowlist."""
        return extension.lstrip(".").lower() in self.image_extensions

    def should_ignore(self, path: Path) -> bool:
        """
        Check if a path should be ignored based on ignore patterns.

        Args:
            path: Path to check

        Returns:
            True if the path should be ignored
        """
        import fnmatch

        name = path.name

        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(name, pattern):
                return True

        return False
