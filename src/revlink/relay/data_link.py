"""
Data connection handler.

One handler per data session. It makes a single connect attempt to the
address named by the public side, announces the session on the bus, and
relays lines between its socket and the bus until its socket ends.
"""

from revlink.models.commands import Address, Connected, Data, Disconnect
from revlink.relay.bus import CommandBus, Subscription
from revlink.relay.exceptions import LinkError
from revlink.relay.streams import (
    DEFAULT_READ_LIMIT,
    Endpoint,
    EventSelector,
    open_endpoint,
)
from revlink.utils.logger import get_logger

logger = get_logger(__name__)


class DataConnectionHandler:
    """Owns one outbound data connection for the lifetime of one session."""

    def __init__(
        self,
        address: Address,
        bus: CommandBus,
        connect_timeout: float | None = None,
        read_limit: int = DEFAULT_READ_LIMIT,
    ):
        """
        Initialize data connection handler.

        Args:
            address: Data endpoint to connect to
            bus: Shared command bus
            connect_timeout: Seconds to wait for the connect, None for no limit
            read_limit: Longest accepted line
        """
        self.address = address
        self.bus = bus
        self.connect_timeout = connect_timeout
        self.read_limit = read_limit
        self.log_prefix = f"[DataLink {address}]"

    async def run(self) -> bool:
        """
        Run the session to completion.

        Returns:
            True if the connection was established (and ``Disconnect`` has
            since been published), False if the connect attempt failed
        """
        try:
            endpoint = await open_endpoint(
                self.address, timeout=self.connect_timeout, limit=self.read_limit
            )
        except LinkError as e:
            logger.warning(f"{self.log_prefix} Failed to connect: {e}")
            return False

        logger.info(f"{self.log_prefix} Connected to data server.")

        with self.bus.subscribe(f"data:{self.address}") as subscription:
            self.bus.publish(Connected(self.address))
            try:
                await self._forward(endpoint, subscription)
            except LinkError as e:
                logger.warning(f"{self.log_prefix} Session failed: {e}")
            finally:
                await endpoint.close()
                self.bus.publish(Disconnect(self.address))
                logger.info(f"{self.log_prefix} Session ended.")

        return True

    async def _forward(self, endpoint: Endpoint, subscription: Subscription) -> None:
        """Relay lines until the data server closes the connection."""
        async with EventSelector(endpoint, subscription) as selector:
            while True:
                event = await selector.next()
                match event:
                    case b"":
                        logger.info(
                            f"{self.log_prefix} Data server closed connection."
                        )
                        return
                    case bytes() as line:
                        logger.trace(f"{self.log_prefix} -> bus {len(line)} bytes")
                        self.bus.publish(Data(line, self.address))
                    case Data(payload=payload, origin=origin) if origin != self.address:
                        logger.trace(
                            f"{self.log_prefix} <- {origin} {len(payload)} bytes"
                        )
                        await endpoint.send(payload)
                    case _:
                        pass
