"""
Relay application.

Wires the command bus, the session dispatcher and the public connection
manager together and runs them until the process is stopped.
"""

import asyncio

from revlink.models.commands import Address
from revlink.relay.bus import CommandBus
from revlink.relay.config import RelayConfig, config as default_config
from revlink.relay.dispatcher import SessionDispatcher
from revlink.relay.public_link import PublicConnectionManager
from revlink.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


async def serve(config: RelayConfig, public_address: Address | None = None) -> None:
    """
    Run the relay until cancelled.

    Args:
        config: Relay configuration
        public_address: Pre-parsed public address; parsed from config if None

    Raises:
        AddressError: if the configured public address is invalid
    """
    if public_address is None:
        public_address = config.get_public_address()

    bus = CommandBus(config.BUS_CAPACITY)
    dispatcher = SessionDispatcher(
        bus,
        connect_timeout=config.DATA_CONNECT_TIMEOUT_SECONDS,
        read_limit=config.READ_LIMIT,
        exclusive_dialing=config.EXCLUSIVE_DIALING,
    )
    public_link = PublicConnectionManager(
        public_address,
        bus,
        reconnect_interval=config.RECONNECT_INTERVAL_SECONDS,
        session_probe=dispatcher.session_active,
        read_limit=config.READ_LIMIT,
    )

    background_tasks: set[asyncio.Task] = {
        asyncio.create_task(dispatcher.run(), name="dispatcher"),
        asyncio.create_task(public_link.run(), name="public-link"),
    }
    logger.info(f"Relay started, public endpoint {public_address}")

    try:
        done, _ = await asyncio.wait(
            background_tasks, return_when=asyncio.FIRST_EXCEPTION
        )
        for task in done:
            task.result()
    finally:
        logger.info("Relay shutting down.")
        for task in background_tasks:
            task.cancel()
        await asyncio.gather(*background_tasks, return_exceptions=True)
        await dispatcher.shutdown()


def run(config: RelayConfig = default_config) -> None:
    """Run the relay in a fresh event loop."""
    configure_logging(config.LOG_LEVEL)
    public_address = config.get_public_address()

    try:
        asyncio.run(serve(config, public_address))
    except KeyboardInterrupt:
        logger.info("Interrupted, relay stopped.")
