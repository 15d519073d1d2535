"""
Public connection manager.

Keeps the outbound link to the public rendezvous endpoint alive forever.
While no data session is active, lines from the public peer are parsed as
handshake directives; once the session is established they are relayed
verbatim.
"""

import asyncio
from typing import Awaitable, Callable

from revlink.models.commands import Address, Connect, Connected, Data, Disconnect
from revlink.models.enums import LinkState
from revlink.relay.bus import CommandBus, Subscription
from revlink.relay.exceptions import AddressError, LinkError
from revlink.relay.protocol import (
    CONNECT_OK,
    is_connect_request,
    parse_connect_request,
)
from revlink.relay.streams import (
    DEFAULT_READ_LIMIT,
    Endpoint,
    EventSelector,
    open_endpoint,
)
from revlink.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_RECONNECT_INTERVAL = 5.0

SessionProbe = Callable[[], Awaitable[bool]]


class PublicConnectionManager:
    """
    Owns the link to the public endpoint.

    CONNECTING -> HANDSHAKE -> FORWARDING -> CONNECTING (on any failure)
    """

    def __init__(
        self,
        address: Address,
        bus: CommandBus,
        reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL,
        session_probe: SessionProbe | None = None,
        read_limit: int = DEFAULT_READ_LIMIT,
    ):
        """
        Initialize public connection manager.

        Args:
            address: Public endpoint address
            bus: Shared command bus
            reconnect_interval: Seconds between failed connect attempts
            session_probe: Async callable telling whether a data session is
                already active when the link (re)connects
            read_limit: Longest accepted line
        """
        self.address = address
        self.bus = bus
        self.reconnect_interval = reconnect_interval
        self.session_probe = session_probe
        self.read_limit = read_limit
        self.state = LinkState.CONNECTING
        self.log_prefix = f"[PublicLink {address}]"

    async def run(self) -> None:
        """Connect, serve, reconnect. Never returns on its own."""
        while True:
            self.state = LinkState.CONNECTING
            try:
                endpoint = await open_endpoint(self.address, limit=self.read_limit)
            except LinkError as e:
                logger.warning(
                    f"{self.log_prefix} {e}. "
                    f"Reconnect in {self.reconnect_interval:g} seconds"
                )
                await asyncio.sleep(self.reconnect_interval)
                continue

            logger.info(f"{self.log_prefix} Connected to public server.")
            try:
                await self.serve(endpoint)
            finally:
                await endpoint.close()

    async def serve(self, endpoint: Endpoint) -> None:
        """Run one connected link until it ends. I/O errors end it quietly."""
        with self.bus.subscribe("public") as subscription:
            forwarding = False
            if self.session_probe is not None:
                forwarding = await self.session_probe()
            self.state = LinkState.FORWARDING if forwarding else LinkState.HANDSHAKE
            logger.debug(f"{self.log_prefix} Link in {self.state.value} mode.")

            try:
                await self._relay(endpoint, subscription)
            except LinkError as e:
                logger.warning(f"{self.log_prefix} Link failed: {e}")

    async def _relay(self, endpoint: Endpoint, subscription: Subscription) -> None:
        async with EventSelector(endpoint, subscription) as selector:
            while True:
                event = await selector.next()
                match event:
                    case b"":
                        logger.info(
                            f"{self.log_prefix} Public server closed connection."
                        )
                        return

                    case bytes() as line if self.state == LinkState.HANDSHAKE:
                        self._handle_handshake_line(line)

                    case bytes() as line:
                        logger.trace(f"{self.log_prefix} -> bus {len(line)} bytes")
                        self.bus.publish(Data(line, self.address))

                    case Connected(address=address):
                        if self.state == LinkState.FORWARDING:
                            continue
                        self.state = LinkState.FORWARDING
                        logger.info(
                            f"{self.log_prefix} Data session with {address} ready."
                        )
                        await endpoint.send(CONNECT_OK)

                    case Data(payload=payload, origin=origin) if origin != self.address:
                        logger.trace(
                            f"{self.log_prefix} <- {origin} {len(payload)} bytes"
                        )
                        await endpoint.send(payload)

                    case Disconnect(address=address):
                        logger.info(
                            f"{self.log_prefix} Disconnect ({address} ended)."
                        )
                        return

                    case _:
                        pass

    def _handle_handshake_line(self, line: bytes) -> None:
        if not is_connect_request(line):
            logger.debug(f"{self.log_prefix} Discarding non-handshake line {line!r}")
            return

        try:
            target = parse_connect_request(line)
        except AddressError as e:
            logger.warning(f"{self.log_prefix} Invalid data server address: {e}")
            return

        logger.info(f"{self.log_prefix} CONNECT {target}")
        self.bus.publish(Connect(target))
