"""
Persisted user preferences via a SQLite key-value table.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Dict, Optional

from .exceptions import SettingsError

logger = logging.getLogger(__name__)

NOTIFY_ON_DELETION = "notify_on_deletion"
CONVERT_HEIC_TO_JPG = "convert_heic_to_jpg"
LAST_WATCHED_PATH = "last_watched_path"

# key -> default value; None means "unset"
DEFAULTS: Dict[str, Optional[str]] = {
    NOTIFY_ON_DELETION: "1",
    CONVERT_HEIC_TO_JPG: "0",
    LAST_WATCHED_PATH: None,
}

BOOLEAN_KEYS = (NOTIFY_ON_DELETION, CONVERT_HEIC_TO_JPG)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_bool(value: str) -> bool:
    """Parse a boolean setting value."""
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise SettingsError(f"Not a boolean value: {value!r}")


class SettingsManager:
    """Manages user preferences stored in the shotsweep database."""

    def __init__(self, db_path: Path):
        self._db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_table(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a setting value by key."""
        conn = self._connect()
        try:
            with conn:
                self._ensure_table(conn)
                row = conn.execute(
                    "SELECT value FROM settings WHERE key = ?", (key,)
                ).fetchone()
                return row["value"] if row else default
        finally:
            conn.close()

    def set(self, key: str, value: Optional[str]) -> None:
        """Set a setting value."""
        conn = self._connect()
        try:
            with conn:
                self._ensure_table(conn)
                if value is None:
                    conn.execute("DELETE FROM settings WHERE key = ?", (key,))
                else:
                    conn.execute(
                        "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                        (key, value),
                    )
        finally:
            conn.close()

    def get_all(self) -> Dict[str, Optional[str]]:
        """Get all known settings, with defaults filled in."""
        conn = self._connect()
        try:
            with conn:
                self._ensure_table(conn)
                rows = conn.execute("SELECT key, value FROM settings").fetchall()
        finally:
            conn.close()

        values = dict(DEFAULTS)
        values.update({row["key"]: row["value"] for row in rows})
        return values

    def update(self, key: str, raw_value: str) -> None:
        """
        Validate and store a user-supplied value.

        Args:
            key: One of the known setting keys
            raw_value: Value as typed by the user; empty clears the setting

        Raises:
            SettingsError: If the key is unknown or the value invalid
        """
        if key not in DEFAULTS:
            raise SettingsError(f"Unknown setting: {key}")

        if key in BOOLEAN_KEYS:
            self.set(key, "1" if parse_bool(raw_value) else "0")
        elif key == LAST_WATCHED_PATH:
            self.set_last_watched_path(Path(raw_value).expanduser() if raw_value else None)

    # --- Typed accessors ---

    def _get_bool(self, key: str) -> bool:
        value = self.get(key, DEFAULTS[key])
        try:
            return parse_bool(value)
        except SettingsError:
            logger.warning(f"Invalid value {value!r} for {key}, using default")
            return parse_bool(DEFAULTS[key])

    def get_notify_on_deletion(self) -> bool:
        return self._get_bool(NOTIFY_ON_DELETION)

    def set_notify_on_deletion(self, enabled: bool) -> None:
        self.set(NOTIFY_ON_DELETION, "1" if enabled else "0")

    def get_convert_heic_to_jpg(self) -> bool:
        return self._get_bool(CONVERT_HEIC_TO_JPG)

    def set_convert_heic_to_jpg(self, enabled: bool) -> None:
        self.set(CONVERT_HEIC_TO_JPG, "1" if enabled else "0")

    def get_last_watched_path(self) -> Optional[Path]:
        value = self.get(LAST_WATCHED_PATH)
        return Path(value) if value else None

    def set_last_watched_path(self, path: Optional[Path]) -> None:
        self.set(LAST_WATCHED_PATH, str(path) if path is not None else None)
