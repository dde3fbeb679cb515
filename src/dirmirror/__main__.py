"""Command-line entry point for the directory mirror."""
from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import List, Optional

from .config import ConfigError, build_config
from .logging_setup import configure_logging
from .monitor import DirectoryMirror

logger = logging.getLogger(__name__)

_JOIN_POLL_SECONDS = 0.5


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dirmirror",
        description="Periodically mirror a source folder into a replica folder",
    )
    parser.add_argument("source", help="Source folder path")
    parser.add_argument("replica", help="Replica folder path")
    parser.add_argument("interval", type=int, help="Synchronization interval in whole seconds")
    parser.add_argument("log_file", help="Log file path and log filename")
    parser.add_argument("--config", default=None, help="Optional YAML settings file")
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Emit DEBUG messages (overrides logging.debug in the settings file)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Log the changes without touching the replica",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        app_config = build_config(
            args.source,
            args.replica,
            args.interval,
            args.log_file,
            settings_path=args.config,
            debug=args.debug,
            dry_run=args.dry_run,
        )
    except ConfigError as exc:
        logging.error("%s", exc)
        raise SystemExit(2) from exc

    sinks = configure_logging(app_config.logging)
    try:
        stop_event = threading.Event()
        _install_signal_handlers(stop_event)
        with DirectoryMirror(app_config.mirror, stop_event=stop_event) as mirror:
            mirror.start()
            while mirror.is_alive():
                mirror.join(_JOIN_POLL_SECONDS)
    finally:
        sinks.close()
    return 0


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _request_stop(signum, _frame) -> None:
        logger.info("Received %s; stopping mirror", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _request_stop)


if __name__ == "__main__":
    raise SystemExit(main())
