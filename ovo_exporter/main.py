"""Main entry point for the OVO Energy exporter.

This module handles:
- Parsing command line flags
- Loading configuration from the JSON config file and environment
- Scheduling periodic scans with APScheduler
- Serving the Prometheus metrics endpoint
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger
from dotenv import load_dotenv

from ovo_exporter import __url__, __version__
from ovo_exporter.client import OVOClient, OVOError
from ovo_exporter.config import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_INTERVAL,
    ConfigError,
    load_config,
    parse_interval,
)
from ovo_exporter.exporter import OVOExporter
from ovo_exporter.readings import ReadingTimeError
from ovo_exporter.scanner import Scanner

# Configure module logger
logger = logging.getLogger(__name__)

USAGE = """ovo-exporter is a small web server that continuously connects to OVO Energy
to fetch the latest gas and electricity readings. These are presented on
/metrics for Prometheus to scrape as gauges."""


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser.

    Flags use a single dash (-config, -interval) and no positional
    arguments are accepted.
    """
    parser = argparse.ArgumentParser(prog="ovo-exporter", description=USAGE)
    parser.add_argument("-version", action="store_true", help="Show version information")
    parser.add_argument("-debug", action="store_true", help="Show debug logs")
    parser.add_argument("-config", default=DEFAULT_CONFIG_PATH,
                        help=f"JSON account config file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("-interval", default=DEFAULT_INTERVAL,
                        help=f"Interval to scan OVO, e.g. 45s, 30m, 1h (default: {DEFAULT_INTERVAL}, minimum 10s)")
    parser.add_argument("-port", type=int, default=8080, help="Metrics server port (default: 8080)")
    return parser


def setup_logging(debug: bool = False) -> None:
    """Configure root logging to stdout.

    Args:
        debug: Log at DEBUG instead of INFO, including APScheduler internals
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    if not debug:
        logging.getLogger("apscheduler").setLevel(logging.WARNING)


def run_scan(scanner: Scanner, exporter: OVOExporter) -> bool:
    """Execute one scan and record the outcome.

    Errors are logged and never raised, so a failing scan does not stop
    the scheduler.

    Returns:
        True if the scan succeeded, False otherwise
    """
    logger.info("Starting scan")
    start_time = time.time()

    try:
        scanner.scan()
        exporter.record_scan(True, time.time() - start_time, scanner.points)
        logger.info("Scan completed successfully")
        return True

    except OVOError as e:
        logger.error(f"Scan failed (OVO error): {e}")

    except ReadingTimeError as e:
        logger.error(f"Scan failed (reading time error): {e}")

    except Exception as e:
        logger.exception(f"Scan failed (unexpected error): {e}")

    exporter.record_scan(False, time.time() - start_time, scanner.points)
    return False


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    1. Parse flags and validate the scan interval
    2. Load .env file and the account config
    3. Start Prometheus HTTP server
    4. Run an initial scan, then schedule scans on the interval
    5. Keep running (block on scheduler)

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = build_parser().parse_args(argv)

    if args.version:
        print(f"Version:     {__version__}")
        print(f"URL:         {__url__}")
        return 0

    setup_logging(args.debug)

    try:
        interval = parse_interval(args.interval)
    except ConfigError as e:
        logger.error(f"Invalid interval: {e}")
        return 1

    load_dotenv()

    try:
        account = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Configuration failed, exiting: {e}")
        return 1

    logger.info(f"Configuration loaded: account={account.account_number}, interval={interval}s")

    exporter = OVOExporter(port=args.port)
    scanner = Scanner(OVOClient(account), exporter.cache)

    exporter.start()
    logger.info(f"Prometheus metrics available at http://localhost:{args.port}/metrics")

    scheduler = BlockingScheduler()
    scheduler.add_job(
        run_scan,
        trigger=IntervalTrigger(seconds=interval),
        args=[scanner, exporter],
        id="scan",
        name=f"Scan every {args.interval}",
        max_instances=1,
        coalesce=True,
    )

    logger.info("Running initial scan at startup")
    run_scan(scanner, exporter)

    logger.info("Starting scheduler, press Ctrl+C to exit")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Received interrupt, shutting down")
        scheduler.shutdown(wait=False)

    return 0


if __name__ == "__main__":
    sys.exit(main())
