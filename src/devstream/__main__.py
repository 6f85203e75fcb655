"""Entry point for the DevStream monitor."""

import asyncio
import contextlib
import signal
import sys

import structlog

from devstream.app import running
from devstream.config import ConfigStore, Settings
from devstream.errors import ConfigError
from devstream.lifecycle import GracefulShutdown
from devstream.logging import configure_logging

logger = structlog.get_logger()


async def serve(settings: Settings) -> None:
    """Run every DevStream component until SIGTERM/SIGINT.

    Args:
        settings: Process settings.
    """
    store = ConfigStore(settings.config_file)
    config = await asyncio.to_thread(store.load)
    shutdown = GracefulShutdown(timeout=settings.shutdown_timeout)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.trigger)

    async with running(settings, config, config_store=store, shutdown=shutdown):
        await shutdown.wait_for_trigger()


def main() -> None:
    """Entry point for python -m devstream."""
    settings = Settings()
    configure_logging(debug=settings.debug)

    try:
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(serve(settings))
    except ConfigError as e:
        logger.error("config_invalid", path=e.path, error=str(e))
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
