"""Entry point for the Smart Monitor Bluetooth audio service."""

import asyncio
import logging
import signal
import sys

from . import __version__
from .config import AppConfig
from .manager import BluetoothAudioManager
from .monitor import ServiceMonitor
from .web.server import WebServer

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level_name: str) -> None:
    """Configure logging to stdout (captured by systemd/journald)."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    # Quiet noisy libraries
    logging.getLogger("dbus_next").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


async def main() -> None:
    """Start all services and run until signalled to stop."""
    config = AppConfig.load()
    setup_logging(config.log_level)

    logger = logging.getLogger(__name__)
    logger.info("Smart Monitor Bluetooth audio v%s starting...", __version__)

    manager = BluetoothAudioManager.from_config(config)
    web_server = WebServer(manager)
    monitor = ServiceMonitor(manager, config.status_check_interval_seconds)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _signal_handler)

    try:
        await web_server.start()
        await monitor.start()
        logger.info("All services running. Waiting for shutdown signal...")
        await shutdown_event.wait()
    except Exception as e:
        logger.error("Fatal error: %s", e, exc_info=True)
    finally:
        await monitor.stop()
        await web_server.stop()
        logger.info("Goodbye.")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
