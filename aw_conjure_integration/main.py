"""aw-conjure-integration - Main entry point."""

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from . import __version__
from .auth import KeychainManager
from .config import (
    DEFAULT_AW_HOST,
    DEFAULT_AW_PORT,
    TICK_INTERVAL_SECONDS,
    AWSettings,
    Config,
    ConfigError,
    GroupBy,
    Settings,
    load_pat,
    load_settings,
    read_json,
    setup_logging,
    validate_bin_size,
    validate_pat,
)
from .sync import AWClient, ConjureClient, ConjureClientError, DecodeError, SyncEngine
from .sync.category import Category, decode_categories
from .sync.sync_engine import NO_MEASURES_ERROR

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Owns the scheduler that ticks the sync engine.

    Kept apart from the app class so the app focuses on lifecycle only.
    """

    def __init__(self, sync_engine: SyncEngine, interval_seconds: int = TICK_INTERVAL_SECONDS):
        self.sync_engine = sync_engine
        self.interval_seconds = interval_seconds
        self.scheduler = BackgroundScheduler()

    def start(self) -> None:
        """Start the periodic tick."""
        self.scheduler.add_job(
            self._do_tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="tick_job",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.debug(f"Tick scheduler started (interval: {self.interval_seconds}s)")

    def stop(self) -> None:
        """Shut down the scheduler if running."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def _do_tick(self) -> None:
        try:
            self.sync_engine.tick()
        except Exception as e:
            logger.exception(f"Tick error: {e}")


class AWConjureApp:
    """Main application orchestrator.

    Wires the clients and engine together and handles start and shutdown.
    """

    def __init__(
        self,
        config: Config,
        settings: Settings,
        categories: list[Category],
        raw_links: Any,
    ):
        self.config = config
        self.aw = AWClient(host=config.aw.host, port=config.aw.port)
        self.conjure = ConjureClient(token=settings.pat, api_url=config.api_url)
        self.sync_engine = SyncEngine(
            aw=self.aw,
            conjure=self.conjure,
            categories=categories,
            settings=settings,
            raw_links=raw_links,
        )
        self.coordinator = SyncCoordinator(self.sync_engine)

        self._exit_code = 1
        self._shutdown_done = False

    def run(self) -> int:
        """Run until a fatal error or a shutdown signal. Returns the exit code."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        if not self.aw.is_running():
            logger.warning(
                f"ActivityWatch is not responding at {self.config.aw.base_url}; "
                "queries will fail until it is started"
            )

        engine_thread = threading.Thread(
            target=self._run_engine, name="sync-engine", daemon=True
        )
        try:
            self.coordinator.start()
            engine_thread.start()
            # Joining with a timeout keeps the main thread responsive to signals
            while engine_thread.is_alive():
                engine_thread.join(timeout=0.5)
        finally:
            self._shutdown()
        return self._exit_code

    def _run_engine(self) -> None:
        self._exit_code = self.sync_engine.run()

    def _signal_handler(self, signum, frame) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}")
        self.sync_engine.stop()

    def _shutdown(self) -> None:
        """Shutdown the application. Safe to call multiple times."""
        if self._shutdown_done:
            return
        self._shutdown_done = True
        logger.info("Shutting down...")

        self.coordinator.stop()
        self.aw.close()
        self.conjure.close()

    def __enter__(self) -> "AWConjureApp":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._shutdown()


def _lock_file(handle) -> None:
    """Take a non-blocking exclusive lock on ``handle``; OSError if it is held."""
    if sys.platform == "win32":
        import msvcrt
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
    else:
        import fcntl
        fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)


def _unlock_file(handle) -> None:
    if sys.platform == "win32":
        import msvcrt
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        import fcntl
        fcntl.flock(handle, fcntl.LOCK_UN)


class SingleInstanceLock:
    """Advisory lock file that keeps two agents from syncing at once.

    The holder writes its PID into the file so a refused start can name it.
    """

    LOCK_NAME = ".aw-conjure-integration.lock"

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else Config.get_config_dir() / self.LOCK_NAME
        self._handle = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def holder_pid(self) -> Optional[int]:
        """PID recorded by the current holder, or None if unreadable."""
        try:
            return int(self.path.read_text().strip())
        except (OSError, ValueError):
            return None

    def acquire(self) -> bool:
        """Try to take the lock without blocking. Returns True on success."""
        if self.held:
            return True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a+")  # noqa: SIM115
        try:
            _lock_file(handle)
        except OSError:
            handle.close()
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        self._handle = handle
        return True

    def release(self) -> None:
        """Release the lock and remove the lock file. Safe to call twice."""
        if not self.held:
            return
        handle, self._handle = self._handle, None
        try:
            _unlock_file(handle)
        except OSError as e:
            logger.debug(f"Could not unlock {self.path}: {e}")
        finally:
            handle.close()
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not remove lock file {self.path}: {e}")

    def __enter__(self) -> "SingleInstanceLock":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.release()
        return False


def _bin_size(value: str) -> int:
    try:
        return validate_bin_size(int(value))
    except (ValueError, ConfigError) as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser() -> argparse.ArgumentParser:
    config_dir = Config.get_config_dir()
    parser = argparse.ArgumentParser(
        prog="aw-conjure-integration",
        description="Sync ActivityWatch time tracking into conjure.so time entry measures.",
        epilog=f"Input files are read from {config_dir} unless given explicitly.",
    )
    parser.add_argument(
        "-c", "--categories", type=Path, metavar="PATH",
        help="ActivityWatch category export (default: aw-category-export.json)",
    )
    parser.add_argument(
        "-s", "--settings", type=Path, metavar="PATH",
        help="Settings file (default: settings.json)",
    )
    parser.add_argument("-p", "--pat", help="conjure.so personal access token")
    parser.add_argument(
        "-b", "--bin-size", type=_bin_size, metavar="MINUTES",
        help="Width of each uploaded period; 5-60 and a divisor of 60",
    )
    parser.add_argument(
        "-g", "--group-by", choices=[g.value for g in GroupBy],
        help="Merge events by category or by app and window title",
    )
    parser.add_argument(
        "-u", "--report-unmatched", action="store_true", default=None,
        help="Log events that no link sends anywhere",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-l", "--links", type=Path, metavar="PATH",
        help="Links file (default: links.json)",
    )
    mode.add_argument(
        "--list-measures", action="store_true",
        help="Print your time entry measures and their IDs, then exit",
    )
    parser.add_argument(
        "--save-pat", action="store_true",
        help="Store the token given with --pat in the system keychain, then exit",
    )
    parser.add_argument(
        "--forget-pat", action="store_true",
        help="Remove the token stored in the system keychain, then exit",
    )

    parser.add_argument("--aw-host", default=DEFAULT_AW_HOST, help="ActivityWatch host")
    parser.add_argument("--aw-port", type=int, default=DEFAULT_AW_PORT, help="ActivityWatch port")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _config_from_args(args: argparse.Namespace) -> Config:
    config = Config(aw=AWSettings(host=args.aw_host, port=args.aw_port), debug_mode=args.debug)
    if args.categories:
        config.categories_path = args.categories
    if args.settings:
        config.settings_path = args.settings
    if args.links:
        config.links_path = args.links
    return config


def load_categories(path: Path) -> list[Category]:
    try:
        return decode_categories(read_json(path))
    except ConfigError as e:
        raise ConfigError(
            f"{e}\n\nPlease export your categories from the ActivityWatch web interface "
            f"and save them to: {path}"
        ) from e
    except DecodeError as e:
        raise ConfigError(
            f"Categories failed to decode:\n{e}\n\nPlease re-export them from the "
            "ActivityWatch web interface."
        ) from e


def list_measures(config: Config, pat: str) -> int:
    """Print each time-entry measure as ``name -- id``."""
    with ConjureClient(token=pat, api_url=config.api_url) as conjure:
        try:
            measures = conjure.get_measures()
        except (ConjureClientError, DecodeError) as e:
            logger.error(f"Fetching known measures from Conjure failed with the following error:\n{e}")
            return 1

    if not measures:
        logger.error(NO_MEASURES_ERROR)
        return 1

    for measure in measures:
        print(measure.view())
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    config = _config_from_args(args)
    keychain = KeychainManager()

    try:
        if args.save_pat:
            if args.pat is None:
                raise ConfigError("--save-pat needs a token given with --pat")
            if not keychain.store_pat(validate_pat(args.pat)):
                return 1
            print("Personal access token saved to the system keychain.")
            return 0

        if args.forget_pat:
            return 0 if keychain.delete_pat() else 1

        if args.list_measures:
            return list_measures(config, load_pat(config.settings_path, args.pat, keychain))

        categories = load_categories(config.categories_path)
        settings = load_settings(
            config.settings_path,
            overrides={
                "binSize": args.bin_size,
                "groupBy": args.group_by,
                "pat": args.pat,
                "reportUnmatched": args.report_unmatched,
            },
            keychain=keychain,
        )
        raw_links = read_json(config.links_path)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    instance_lock = SingleInstanceLock()
    if not instance_lock.acquire():
        pid = instance_lock.holder_pid()
        holder = f" (pid {pid})" if pid else ""
        logger.error(f"aw-conjure-integration is already running{holder}.")
        return 1

    logger.info(f"aw-conjure-integration {__version__} starting...")
    try:
        with AWConjureApp(config, settings, categories, raw_links) as app:
            return app.run()
    finally:
        instance_lock.release()


if __name__ == "__main__":
    sys.exit(main())
