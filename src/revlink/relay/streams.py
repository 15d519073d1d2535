"""
Stream utilities shared by the public and data links.

``Endpoint`` wraps one outbound asyncio stream pair. Every socket operation
either succeeds or raises ``LinkError``; nothing else leaks out of here.

``EventSelector`` waits on an endpoint and a bus subscription at once and
hands back whichever is ready first.
"""

import asyncio
from dataclasses import dataclass

from revlink.models.commands import Address, Command
from revlink.relay.bus import Subscription
from revlink.relay.exceptions import LinkError
from revlink.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_READ_LIMIT = 64 * 1024


@dataclass
class Endpoint:
    """An open outbound connection and the address it was opened to."""

    address: Address
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter

    async def read_line(self) -> bytes:
        """
        Read one line, terminator included.

        Returns:
            The line, a final unterminated fragment, or b"" at end-of-stream

        Raises:
            LinkError: on socket errors or a line longer than the read limit
        """
        try:
            return await self.reader.readline()
        except ValueError as e:
            raise LinkError(self.address, f"line exceeds read limit ({e})") from e
        except OSError as e:
            raise LinkError(self.address, f"read failed: {e}") from e

    async def send(self, data: bytes) -> None:
        """
        Write ``data`` and wait for the transport to drain.

        Raises:
            LinkError: on socket errors
        """
        try:
            self.writer.write(data)
            await self.writer.drain()
        except OSError as e:
            raise LinkError(self.address, f"write failed: {e}") from e

    async def close(self) -> None:
        """Close the connection, ignoring errors from an already dead socket."""
        logger.debug(f"Closing connection to {self.address}")
        self.writer.close()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=1.0)
        except (OSError, asyncio.TimeoutError):
            pass


async def open_endpoint(
    address: Address,
    timeout: float | None = None,
    limit: int = DEFAULT_READ_LIMIT,
) -> Endpoint:
    """
    Open an outbound connection.

    Args:
        address: Where to connect
        timeout: Seconds to wait for the connection, None for no limit
        limit: Stream buffer limit, i.e. the longest accepted line

    Raises:
        LinkError: if the connection could not be established
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(address.host, address.port, limit=limit),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise LinkError(address, f"connect timed out after {timeout}s") from e
    except OSError as e:
        raise LinkError(address, f"connect failed: {e}") from e

    return Endpoint(address=address, reader=reader, writer=writer)


class EventSelector:
    """
    Wait for the next line from an endpoint or the next bus command.

    Each source has at most one outstanding wait, and a wait is only
    replaced once it has produced a result, so a partially read line is
    never lost between calls. ``next()`` returns ``bytes`` for a line
    (``b""`` at end-of-stream) and a ``Command`` for a bus message.
    """

    def __init__(self, endpoint: Endpoint, subscription: Subscription):
        self.endpoint = endpoint
        self.subscription = subscription
        self._read_task: asyncio.Task | None = None
        self._bus_task: asyncio.Task | None = None
        self._last_was_line = False

    async def next(self) -> bytes | Command:
        """
        Wait for whichever source is ready first.

        Raises:
            LinkError: if reading the endpoint failed
        """
        if self._read_task is None:
            self._read_task = asyncio.create_task(self.endpoint.read_line())
        if self._bus_task is None:
            self._bus_task = asyncio.create_task(self.subscription.get())

        await asyncio.wait(
            {self._read_task, self._bus_task},
            return_when=asyncio.FIRST_COMPLETED,
        )

        # Alternate when both are ready so neither source starves the other
        line_ready = self._read_task.done()
        if line_ready and not (self._last_was_line and self._bus_task.done()):
            self._last_was_line = True
            read_task, self._read_task = self._read_task, None
            return read_task.result()

        self._last_was_line = False
        bus_task, self._bus_task = self._bus_task, None
        return bus_task.result()

    async def close(self) -> None:
        """Cancel outstanding waits."""
        pending = [t for t in (self._read_task, self._bus_task) if t is not None]
        self._read_task = None
        self._bus_task = None
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    async def __aenter__(self) -> "EventSelector":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
