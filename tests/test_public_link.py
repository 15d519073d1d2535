"""Tests for the public connection manager against a loopback public server."""

import asyncio

import pytest

from revlink.models.commands import Address, Connect, Connected, Data, Disconnect
from revlink.models.enums import LinkState
from revlink.relay import public_link as public_link_module
from revlink.relay.exceptions import LinkError
from revlink.relay.public_link import (
    DEFAULT_RECONNECT_INTERVAL,
    PublicConnectionManager,
)
from tests.helpers import (
    next_command,
    read_line,
    send_line,
    settle,
    stop_task,
    unused_address,
    wait_until,
)

DATA = Address("10.0.0.5", 9000)
OK = b"HTTP/1.1 200 OK\r\n"


def start_manager(bus, address, **kwargs):
    manager = PublicConnectionManager(address, bus, **kwargs)
    return manager, asyncio.create_task(manager.run())


class TestHandshake:
    @pytest.mark.asyncio
    async def test_connect_directive_is_published(self, bus, public_server):
        observer = bus.subscribe("observer")
        manager, task = start_manager(bus, public_server.address)
        try:
            _, writer = await public_server.accept()
            await wait_until(lambda: manager.state == LinkState.HANDSHAKE)

            await send_line(writer, b"CONNECT 10.0.0.5:9000 HTTP/1.1\r\n")

            assert await next_command(observer) == Connect(DATA)
        finally:
            await stop_task(task)

    @pytest.mark.asyncio
    async def test_invalid_directive_is_discarded(self, bus, public_server):
        observer = bus.subscribe("observer")
        manager, task = start_manager(bus, public_server.address)
        try:
            _, writer = await public_server.accept()

            await send_line(writer, b"CONNECT not-an-address HTTP/1.1\r\n")
            await send_line(writer, b"some chatter\r\n")
            await send_line(writer, b"CONNECT 10.0.0.5:9000 HTTP/1.1\r\n")

            # Only the well-formed directive produces a command
            assert await next_command(observer) == Connect(DATA)
            assert observer.pending() == 0
            assert manager.state == LinkState.HANDSHAKE
        finally:
            await stop_task(task)

    @pytest.mark.asyncio
    async def test_connected_acknowledges_once(self, bus, public_server):
        manager, task = start_manager(bus, public_server.address)
        try:
            reader, _ = await public_server.accept()
            await wait_until(lambda: manager.state == LinkState.HANDSHAKE)

            bus.publish(Connected(DATA))
            assert await read_line(reader) == OK
            assert manager.state == LinkState.FORWARDING

            bus.publish(Connected(DATA))
            bus.publish(Data(b"payload\r\n", DATA))
            assert await read_line(reader) == b"payload\r\n"
        finally:
            await stop_task(task)


class TestForwarding:
    @pytest.mark.asyncio
    async def test_lines_relayed_without_echo(self, bus, public_server):
        observer = bus.subscribe("observer")
        public = public_server.address
        manager, task = start_manager(bus, public)
        try:
            reader, writer = await public_server.accept()
            await wait_until(lambda: manager.state == LinkState.HANDSHAKE)
            bus.publish(Connected(DATA))
            assert await read_line(reader) == OK
            assert await next_command(observer) == Connected(DATA)

            # In forwarding mode even a directive is opaque payload
            await send_line(writer, b"CONNECT 10.0.0.6:1 HTTP/1.1\r\n")
            await send_line(writer, b"hello\r\n")
            assert await next_command(observer) == Data(
                b"CONNECT 10.0.0.6:1 HTTP/1.1\r\n", public
            )
            assert await next_command(observer) == Data(b"hello\r\n", public)

            bus.publish(Data(b"mine\r\n", public))
            bus.publish(Data(b"world\r\n", DATA))
            assert await read_line(reader) == b"world\r\n"
        finally:
            await stop_task(task)

    @pytest.mark.asyncio
    async def test_resumes_forwarding_when_session_active(self, bus, public_server):
        observer = bus.subscribe("observer")
        public = public_server.address

        async def session_active():
            return True

        manager, task = start_manager(bus, public, session_probe=session_active)
        try:
            _, writer = await public_server.accept()
            await wait_until(lambda: manager.state == LinkState.FORWARDING)

            await send_line(writer, b"CONNECT 10.0.0.5:9000 HTTP/1.1\r\n")
            assert await next_command(observer) == Data(
                b"CONNECT 10.0.0.5:9000 HTTP/1.1\r\n", public
            )
        finally:
            await stop_task(task)


class TestReconnect:
    @pytest.mark.asyncio
    async def test_disconnect_drops_link_and_reconnects(self, bus, public_server):
        manager, task = start_manager(bus, public_server.address)
        try:
            reader, _ = await public_server.accept()
            await wait_until(lambda: manager.state == LinkState.HANDSHAKE)
            bus.publish(Connected(DATA))
            assert await read_line(reader) == OK

            bus.publish(Disconnect(DATA))

            assert await read_line(reader) == b""
            await public_server.accept()
            await wait_until(lambda: manager.state == LinkState.HANDSHAKE)
            assert public_server.accepted == 2
        finally:
            await stop_task(task)

    @pytest.mark.asyncio
    async def test_peer_eof_reconnects(self, bus, public_server):
        manager, task = start_manager(bus, public_server.address)
        try:
            _, writer = await public_server.accept()
            writer.close()

            await public_server.accept()
            assert public_server.accepted == 2
        finally:
            await stop_task(task)

    @pytest.mark.asyncio
    async def test_read_error_reconnects(self, bus, public_server):
        manager, task = start_manager(bus, public_server.address, read_limit=16)
        try:
            _, writer = await public_server.accept()
            await send_line(writer, b"y" * 256)

            await public_server.accept()
            assert not task.done()
        finally:
            await stop_task(task)

    @pytest.mark.asyncio
    async def test_failed_connect_retries_after_interval(self, bus, monkeypatch):
        interval = 0.1
        attempts: list[float] = []
        loop = asyncio.get_running_loop()

        async def refuse(address, timeout=None, limit=None):
            attempts.append(loop.time())
            raise LinkError(address, "connect failed: refused")

        monkeypatch.setattr(public_link_module, "open_endpoint", refuse)
        manager, task = start_manager(
            bus, unused_address(), reconnect_interval=interval
        )
        try:
            await wait_until(lambda: len(attempts) >= 4)
            assert not task.done()
            assert manager.state == LinkState.CONNECTING

            gaps = [later - earlier for earlier, later in zip(attempts, attempts[1:])]
            assert all(gap >= interval * 0.95 for gap in gaps)
        finally:
            await stop_task(task)

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_keeps_retrying(self, bus):
        manager, task = start_manager(bus, unused_address(), reconnect_interval=0.01)
        await settle(0.1)

        assert not task.done()
        assert manager.state == LinkState.CONNECTING
        await stop_task(task)

    def test_default_interval_is_five_seconds(self):
        assert DEFAULT_RECONNECT_INTERVAL == 5.0
