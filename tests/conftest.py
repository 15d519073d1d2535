"""
Pytest configuration.

Async tests are marked with ``@pytest.mark.asyncio`` (pytest-asyncio).
"""

import pytest
import pytest_asyncio

from revlink.relay.bus import CommandBus
from tests.helpers import PeerServer


@pytest.fixture
def bus() -> CommandBus:
    return CommandBus(capacity=32)


@pytest_asyncio.fixture
async def public_server():
    server = await PeerServer().start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def data_server():
    server = await PeerServer().start()
    yield server
    await server.stop()
