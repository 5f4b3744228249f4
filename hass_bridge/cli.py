"""
Command line entry point for the bridge.
"""

import argparse
import asyncio
import logging
import signal
import sys

from .bridge import BridgeService
from .core.config import load_settings
from .core.exceptions import BindFailure

logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Home Assistant API bridge for wall displays")

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML configuration file (default: environment and .env only)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host for the server to listen on (default: 0.0.0.0)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the server to listen on (default: 8123)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--no-mdns",
        action="store_true",
        help="Do not announce the bridge via Avahi",
    )

    return parser.parse_args(argv)


async def run_bridge(service: BridgeService) -> int:
    """Run until SIGINT/SIGTERM. Returns the process exit code."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Cannot install handler for {sig.name}")

    try:
        await service.start()
    except Exception as e:
        if not isinstance(e, BindFailure):
            logger.exception("Bridge startup failed")
        await service.stop()
        return 1

    try:
        await stop_event.wait()
    finally:
        await service.stop()
    return 0


def main(argv=None) -> int:
    """Run the bridge"""
    args = parse_arguments(argv)

    settings = load_settings(
        args.config,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        mdns_enabled=False if args.no_mdns else None,
    )
    settings.configure_logging()

    logger.info(f"Starting Home Assistant bridge on {settings.host}:{settings.port}")

    try:
        return asyncio.run(run_bridge(BridgeService(settings)))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
