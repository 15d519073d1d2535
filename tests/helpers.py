"""
Shared test infrastructure.

PeerServer stands in for the public rendezvous endpoint and for data
endpoints: a loopback TCP server whose accepted connections are handed to
the test to drive by hand.
"""

import asyncio
import socket
from typing import Callable

from revlink.models.commands import Address, Command
from revlink.relay.bus import Subscription

TIMEOUT = 3.0


class PeerServer:
    """Loopback TCP server that queues accepted connections."""

    def __init__(self):
        self.server: asyncio.Server | None = None
        self.accepted = 0
        self._connections: asyncio.Queue = asyncio.Queue()
        self._writers: list[asyncio.StreamWriter] = []

    @property
    def address(self) -> Address:
        port = self.server.sockets[0].getsockname()[1]
        return Address("127.0.0.1", port)

    async def start(self) -> "PeerServer":
        self.server = await asyncio.start_server(self._on_connect, "127.0.0.1", 0)
        return self

    async def _on_connect(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.accepted += 1
        self._writers.append(writer)
        await self._connections.put((reader, writer))

    async def accept(
        self, timeout: float = TIMEOUT
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """Wait for the next inbound connection."""
        return await asyncio.wait_for(self._connections.get(), timeout)

    async def stop(self) -> None:
        for writer in self._writers:
            writer.close()
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()


async def read_line(reader: asyncio.StreamReader, timeout: float = TIMEOUT) -> bytes:
    return await asyncio.wait_for(reader.readline(), timeout)


async def send_line(writer: asyncio.StreamWriter, line: bytes) -> None:
    writer.write(line)
    await writer.drain()


async def next_command(
    subscription: Subscription, timeout: float = TIMEOUT
) -> Command:
    return await asyncio.wait_for(subscription.get(), timeout)


async def wait_until(
    condition: Callable[[], bool], timeout: float = TIMEOUT, interval: float = 0.01
) -> None:
    """Poll until ``condition()`` holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)


async def settle(delay: float = 0.05) -> None:
    """Give background tasks a chance to process queued work."""
    await asyncio.sleep(delay)


async def stop_task(task: asyncio.Task) -> None:
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


def unused_address() -> Address:
    """An address nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return Address("127.0.0.1", port)
