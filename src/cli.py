#!/usr/bin/env python3
"""
CLI for the shotsweep screenshot watcher.

Usage:
    python -m src.cli watch --path ~/Desktop --delete-after 30
    python -m src.cli delete ~/Desktop/shot.png --after 10
    python -m src.cli settings --set convert_heic_to_jpg=on
"""

import argparse
import logging
import math
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load .env from project root
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    load_dotenv()

from src.shotsweep import (
    ALLOWED_DELAYS,
    DeletionOutcome,
    DeletionScheduler,
    SettingsError,
    SettingsManager,
    ShotsweepConfig,
    ShotsweepListener,
    ShotsweepService,
    SubscriptionError,
)


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cli")


def add_file_logging(log_file: Path, console_level: int = logging.INFO) -> None:
    """Mirror all log records, including DEBUG, into a file."""
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers:
        if handler.level == logging.NOTSET:
            handler.setLevel(console_level)
    root_logger.addHandler(file_handler)


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


class ConsoleListener(ShotsweepListener):
    """Prints notifications and optionally schedules every new image for deletion."""

    def __init__(self, delete_after: Optional[int] = None):
        self.delete_after = delete_after
        self.service: Optional[ShotsweepService] = None

    def on_new_image_available(self, path: Path) -> None:
        print(f"New image: {path}")
        if self.delete_after and self.service is not None:
            self.service.request_deletion_schedule(path, self.delete_after)
            print(f"  will be deleted in {self.delete_after}s")

    def on_deletion_outcome(self, outcome: DeletionOutcome) -> None:
        if not outcome.success:
            print(f"Error deleting {outcome.file_path}: {outcome.error_detail}")

    def on_deletion_notice(self, path: Path) -> None:
        print(f"Deleted '{path.name}'")

    def on_monitoring_changed(self, path: Path) -> None:
        print(f"Monitoring: {'/'.join(path.parts[-2:])}")

    def on_monitoring_failed(self, path: Path, error: Exception) -> None:
        print(f"Cannot monitor {path}: {error}")

    def on_conversion_unavailable(self, converter_path: Path) -> None:
        print(f"Conversion unavailable: install ImageMagick at {converter_path}")


def _build_config(args) -> ShotsweepConfig:
    return ShotsweepConfig.from_env(
        db_path=Path(args.db).resolve() if getattr(args, "db", None) else None,
        converter_path=Path(args.converter) if getattr(args, "converter", None) else None,
    )


def cmd_watch(args):
    """Run the screenshot watcher."""
    config = _build_config(args)
    config.db_path.parent.mkdir(parents=True, exist_ok=True)

    listener = ConsoleListener(delete_after=args.delete_after)
    shutdown = GracefulShutdown()

    with ShotsweepService(config=config, listener=listener) as service:
        listener.service = service

        service.start_async(restore=False)

        if args.convert is not None:
            service.request_conversion_toggle(args.convert)
        if args.notify is not None:
            service.set_notify_on_deletion(args.notify)

        if args.path is None:
            service.restore_watch()
        else:
            try:
                service.start_monitoring(Path(args.path))
            except SubscriptionError:
                sys.exit(1)

        if service.watch_target is None:
            logger.error("Nothing to monitor")
            sys.exit(1)

        logger.info(f"Conversion: {'on' if service.conversion_enabled else 'off'}")
        logger.info(f"Database: {config.db_path}")
        logger.info("Press Ctrl+C to stop")

        while not shutdown.should_exit:
            time.sleep(1)

    logger.info("Watcher stopped")


def cmd_delete(args):
    """Delete a single file after a delay."""
    config = _build_config(args)
    if args.container_root is not None:
        config.container_root = Path(args.container_root).expanduser() if args.container_root else None

    path = Path(args.file).expanduser().absolute()
    done = threading.Event()
    outcomes: List[DeletionOutcome] = []

    def on_outcome(outcome: DeletionOutcome) -> None:
        outcomes.append(outcome)
        done.set()

    scheduler = DeletionScheduler(on_outcome, config)
    scheduler.start()
    try:
        scheduler.schedule(path, args.after).result(timeout=5.0)
        print(f"Deleting {path} in {args.after:g}s (Ctrl+C to cancel)")
        while not done.wait(timeout=0.5):
            pass
    except KeyboardInterrupt:
        scheduler.cancel(path).result(timeout=5.0)
        print("Cancelled")
        sys.exit(130)
    finally:
        scheduler.stop()

    outcome = outcomes[0]
    if not outcome.success:
        logger.error(outcome.error_detail)
        sys.exit(1)
    print(f"Deleted {outcome.deleted_path}")


def cmd_settings(args):
    """Show or change persisted settings."""
    config = _build_config(args)
    settings = SettingsManager(config.db_path)

    for assignment in args.set or []:
        key, sep, value = assignment.partition("=")
        if not sep:
            logger.error(f"Expected KEY=VALUE, got: {assignment}")
            sys.exit(2)
        try:
            settings.update(key.strip(), value.strip())
        except SettingsError as e:
            logger.error(str(e))
            sys.exit(2)

    print(f"\n=== Settings ({config.db_path}) ===")
    for key, value in sorted(settings.get_all().items()):
        print(f"{key}: {value if value is not None else '-'}")
    print()


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Watch a folder for new screenshots and delete them on request",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Watch the Desktop and delete every new screenshot after 30 seconds
  python -m src.cli watch --path ~/Desktop --delete-after 30

  # Convert HEIC screenshots to JPEG before announcing them
  python -m src.cli watch --convert

  # Delete one file in 10 seconds
  python -m src.cli delete ~/Desktop/shot.png --after 10

  # Show or change settings
  python -m src.cli settings --set notify_on_deletion=off
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", default=None, help="Also write debug logs to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Watch a folder for new images")
    watch_parser.add_argument("--path", default=None, help="Folder to watch (default: last watched folder, then Desktop)")
    watch_parser.add_argument("--db", default=None, help="Settings database path")
    watch_parser.add_argument("--converter", default=None, help="Path to the ImageMagick executable")
    watch_parser.add_argument("--delete-after", type=int, choices=ALLOWED_DELAYS, default=None,
                              help="Schedule every new image for deletion after this many seconds")
    watch_parser.add_argument("--convert", dest="convert", action="store_const", const=True, default=None,
                              help="Convert HEIC images to JPEG")
    watch_parser.add_argument("--no-convert", dest="convert", action="store_const", const=False,
                              help="Do not convert HEIC images")
    watch_parser.add_argument("--notify", dest="notify", action="store_const", const=True, default=None,
                              help="Show a notice after each deletion")
    watch_parser.add_argument("--no-notify", dest="notify", action="store_const", const=False,
                              help="Do not show a notice after deletions")
    watch_parser.set_defaults(func=cmd_watch)

    # Delete command
    delete_parser = subparsers.add_parser("delete", help="Delete a file after a delay")
    delete_parser.add_argument("file", help="File to delete")
    delete_parser.add_argument("--after", type=float, required=True, help="Delay in seconds")
    delete_parser.add_argument("--container-root", default=None,
                               help="Alternate root tried first (empty string disables)")
    delete_parser.add_argument("--db", default=None, help="Settings database path")
    delete_parser.set_defaults(func=cmd_delete)

    # Settings command
    settings_parser = subparsers.add_parser("settings", help="Show or change persisted settings")
    settings_parser.add_argument("--set", action="append", metavar="KEY=VALUE", help="Change a setting")
    settings_parser.add_argument("--db", default=None, help="Settings database path")
    settings_parser.set_defaults(func=cmd_settings)

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.log_file:
        add_file_logging(
            Path(args.log_file).expanduser(),
            console_level=logging.DEBUG if args.verbose else logging.INFO,
        )

    if getattr(args, "after", None) is not None and (args.after <= 0 or not math.isfinite(args.after)):
        parser.error("--after must be a positive number")

    args.func(args)


if __name__ == "__main__":
    main()
