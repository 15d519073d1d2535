#!/usr/bin/env python3
"""
Smoke test for the revlink relay process.

This script sets up:
1. A mock echo server (simulates the service being exposed)
2. A mock public server (simulates the rendezvous endpoint)
3. Runs ``revlink`` as a subprocess pointed at the mock public server

Then checks that:
- The relay connects to the public server
- A CONNECT directive is acknowledged with HTTP/1.1 200 OK
- Lines travel through the tunnel in both directions
- The relay returns to handshake mode after the data side closes

Usage:
    python scripts/smoke_relay.py [--relay "revlink"]
"""

import argparse
import asyncio
import os
import shlex
import subprocess
import sys
from pathlib import Path

# Add project to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from revlink.models.commands import Address
from revlink.relay.protocol import CONNECT_OK, build_connect_request

# =============================================================================
# Configuration
# =============================================================================

ECHO_SERVER_PORT = 19876
PUBLIC_SERVER_PORT = 19877
TIMEOUT = 10.0

# Colors for output
GREEN = "\033[92m"
RED = "\033[91m"
CYAN = "\033[96m"
RESET = "\033[0m"


def log_info(msg: str) -> None:
    print(f"{CYAN}[INFO]{RESET} {msg}")


def log_ok(msg: str) -> None:
    print(f"{GREEN}[PASS]{RESET} {msg}")


def log_fail(msg: str) -> None:
    print(f"{RED}[FAIL]{RESET} {msg}")


# =============================================================================
# Mock Servers
# =============================================================================


class EchoServer:
    """Line echo server; upper-cases what it echoes so echoes are visible."""

    def __init__(self, port: int):
        self.port = port
        self.server = None
        self.connections: list[asyncio.StreamWriter] = []

    @property
    def address(self) -> Address:
        return Address("127.0.0.1", self.port)

    async def start(self) -> None:
        self.server = await asyncio.start_server(
            self._handle_client, "127.0.0.1", self.port
        )
        log_info(f"Echo server listening on {self.address}")

    async def stop(self) -> None:
        for writer in self.connections:
            writer.close()
        if self.server:
            self.server.close()
            await self.server.wait_closed()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.connections.append(writer)
        log_info(f"Echo: relay connected from {writer.get_extra_info('peername')}")
        try:
            while line := await reader.readline():
                writer.write(line.upper())
                await writer.drain()
        except OSError as e:
            log_info(f"Echo: connection error: {e}")


class PublicServer:
    """Accepts relay links and hands them to the test sequence."""

    def __init__(self, port: int):
        self.port = port
        self.server = None
        self.links: asyncio.Queue = asyncio.Queue()

    async def start(self) -> None:
        self.server = await asyncio.start_server(
            self._handle_relay, "127.0.0.1", self.port
        )
        log_info(f"Public server listening on 127.0.0.1:{self.port}")

    async def stop(self) -> None:
        if self.server:
            self.server.close()
            await self.server.wait_closed()

    async def _handle_relay(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        await self.links.put((reader, writer))

    async def next_link(self):
        return await asyncio.wait_for(self.links.get(), TIMEOUT)


# =============================================================================
# Test Sequence
# =============================================================================


async def exchange(reader, writer, echo: EchoServer, label: str) -> bool:
    writer.write(build_connect_request(echo.address))
    await writer.drain()

    ack = await asyncio.wait_for(reader.readline(), TIMEOUT)
    if ack != CONNECT_OK:
        log_fail(f"{label}: expected acknowledgment, got {ack!r}")
        return False
    log_ok(f"{label}: handshake acknowledged")

    writer.write(b"hello\r\n")
    await writer.drain()
    reply = await asyncio.wait_for(reader.readline(), TIMEOUT)
    if reply != b"HELLO\r\n":
        log_fail(f"{label}: expected b'HELLO\\r\\n', got {reply!r}")
        return False
    log_ok(f"{label}: payload relayed both ways")
    return True


async def run_tests(relay_command: list[str]) -> bool:
    echo_server = EchoServer(ECHO_SERVER_PORT)
    public_server = PublicServer(PUBLIC_SERVER_PORT)
    await echo_server.start()
    await public_server.start()

    relay_process = subprocess.Popen(
        [
            *relay_command,
            f"127.0.0.1:{PUBLIC_SERVER_PORT}",
            "--reconnect-interval",
            "0.5",
        ],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        env={**os.environ, "PYTHONPATH": str(PROJECT_ROOT / "src")},
    )

    all_passed = True
    try:
        log_info("Test 1: first session")
        reader, writer = await public_server.next_link()
        all_passed &= await exchange(reader, writer, echo_server, "Test 1")

        log_info("Test 2: data side closes, relay re-dials public server")
        for data_writer in echo_server.connections:
            data_writer.close()
        if await asyncio.wait_for(reader.readline(), TIMEOUT) != b"":
            log_fail("Test 2: public link was not closed")
            all_passed = False

        reader, writer = await public_server.next_link()
        all_passed &= await exchange(reader, writer, echo_server, "Test 2")

    except asyncio.TimeoutError:
        log_fail("Timed out waiting for the relay")
        all_passed = False
    finally:
        relay_process.terminate()
        try:
            relay_process.wait(timeout=3)
        except subprocess.TimeoutExpired:
            relay_process.kill()

        await echo_server.stop()
        await public_server.stop()

    return all_passed


async def main() -> int:
    parser = argparse.ArgumentParser(description="Smoke test the revlink relay")
    parser.add_argument(
        "--relay",
        default=f"{shlex.quote(sys.executable)} -m revlink.cli.main",
        help="Command that starts the relay",
    )
    args = parser.parse_args()

    success = await run_tests(shlex.split(args.relay))

    print()
    if success:
        log_ok("All tests passed!")
        return 0
    log_fail("Some tests failed!")
    return 1


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)
