#!/usr/bin/env python
"""Main entry point for the Groundwave Zettelkasten cache."""
import argparse
import atexit
import json
import logging
import os
import sys
import threading

from groundwave_zk import __version__
from groundwave_zk.config import config
from groundwave_zk.exceptions import BuildError, ConfigurationError
from groundwave_zk.observability import configure_logging, metrics
from groundwave_zk.services.cache_coordinator import ZKCacheCoordinator


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Groundwave Zettelkasten cache")
    parser.add_argument(
        "--zk-path",
        help="Full WebDAV URL of the index note (.org)",
        type=str,
        default=os.environ.get("WEBDAV_ZK_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("GROUNDWAVE_ZK_LOG_LEVEL", "INFO")
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=os.environ.get("GROUNDWAVE_ZK_LOG_DIR")
    )
    parser.add_argument(
        "--once",
        help="Run a single refresh, print the cache status as JSON and exit",
        action="store_true"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.zk_path:
        config.zk_path = args.zk_path


def _log_metrics_on_exit():
    """Log the metrics summary on shutdown."""
    summary = metrics.get_summary()
    logging.getLogger(__name__).info(
        f"Shutting down after {summary['total_operations']} operations "
        f"({summary['total_errors']} errors)"
    )


def main(argv=None):
    """Run the cache refresher, or a single refresh with ``--once``."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=args.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    atexit.register(_log_metrics_on_exit)

    try:
        coordinator = ZKCacheCoordinator(config)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    if args.once:
        exit_code = 0
        try:
            coordinator.refresh_all()
        except BuildError as e:
            logger.error(f"Refresh failed: {e}")
            exit_code = 1
        print(json.dumps(coordinator.get_status(), indent=2))
        sys.exit(exit_code)

    logger.info(f"Starting Groundwave Zettelkasten cache {__version__}")
    coordinator.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping refresher")
    finally:
        coordinator.stop(timeout=config.request_timeout * 2)


if __name__ == "__main__":
    main()
