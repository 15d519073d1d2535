"""
Session dispatcher.

Consumes the bus for the lifetime of the process, spawns a data connection
handler for each accepted ``Connect`` and keeps a handle on every handler it
spawned. The session state lives here and only the dispatcher task changes
it; other tasks ask for it with ``session_state()``.
"""

import asyncio
from dataclasses import dataclass

from revlink.models.commands import (
    Address,
    Command,
    Connect,
    Connected,
    Data,
    Disconnect,
)
from revlink.models.enums import SessionState
from revlink.relay.bus import CommandBus
from revlink.relay.data_link import DataConnectionHandler
from revlink.relay.streams import DEFAULT_READ_LIMIT
from revlink.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Dispatcher Requests
# =============================================================================


@dataclass
class _StateQuery:
    reply: asyncio.Future


@dataclass
class _HandlerFinished:
    task: asyncio.Task


# =============================================================================
# Session Dispatcher
# =============================================================================


class SessionDispatcher:
    """
    Owns the session state and supervises data connection handlers.

    State transitions happen only inside ``run()``:
        Connect     IDLE -> DIALING (spawn handler)
        Connected   -> ACTIVE
        Disconnect  -> IDLE
        last handler finished -> IDLE
    """

    def __init__(
        self,
        bus: CommandBus,
        connect_timeout: float | None = None,
        read_limit: int = DEFAULT_READ_LIMIT,
        exclusive_dialing: bool = False,
    ):
        """
        Initialize session dispatcher.

        Subscribes to the bus immediately so no command published after
        construction is missed, even before ``run()`` starts.

        Args:
            bus: Shared command bus
            connect_timeout: Connect timeout passed to each data handler
            read_limit: Longest accepted line on data connections
            exclusive_dialing: Ignore ``Connect`` while a handler is still
                dialing, not only while a session is active
        """
        self.bus = bus
        self.connect_timeout = connect_timeout
        self.read_limit = read_limit
        self.exclusive_dialing = exclusive_dialing

        self._state = SessionState.IDLE
        self._handlers: dict[asyncio.Task, Address] = {}
        self._requests: asyncio.Queue = asyncio.Queue()
        self._subscription = bus.subscribe("dispatcher")
        self._running = False

    @property
    def state(self) -> SessionState:
        """Last known session state (read-only snapshot)."""
        return self._state

    @property
    def handlers(self) -> list[asyncio.Task]:
        """Handler tasks that have not finished yet."""
        return list(self._handlers)

    async def session_state(self) -> SessionState:
        """Ask the dispatcher task for the current session state."""
        if not self._running:
            return self._state
        reply = asyncio.get_running_loop().create_future()
        self._requests.put_nowait(_StateQuery(reply))
        return await reply

    async def session_active(self) -> bool:
        """Whether a data session is currently established."""
        return await self.session_state() == SessionState.ACTIVE

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Process bus commands and requests until cancelled."""
        self._running = True
        logger.info("[Dispatcher] Started.")

        bus_task: asyncio.Task | None = None
        request_task: asyncio.Task | None = None
        try:
            while True:
                if bus_task is None:
                    bus_task = asyncio.create_task(self._subscription.get())
                if request_task is None:
                    request_task = asyncio.create_task(self._requests.get())

                done, _ = await asyncio.wait(
                    {bus_task, request_task}, return_when=asyncio.FIRST_COMPLETED
                )

                if bus_task in done:
                    command, bus_task = bus_task.result(), None
                    self._handle_command(command)
                if request_task in done:
                    request, request_task = request_task.result(), None
                    self._handle_request(request)
        finally:
            self._running = False
            pending = [t for t in (bus_task, request_task) if t is not None]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self._subscription.close()
            self._drain_requests()
            logger.info("[Dispatcher] Stopped.")

    def _handle_command(self, command: Command) -> None:
        match command:
            case Connect(address=address):
                logger.info(f"[Dispatcher] Recv Connect: {address}")
                if self._state == SessionState.ACTIVE or (
                    self.exclusive_dialing and self._state == SessionState.DIALING
                ):
                    logger.info(
                        f"[Dispatcher] Session {self._state.value}, "
                        f"ignoring Connect to {address}"
                    )
                    return
                self._spawn(address)

            case Connected(address=address):
                if address not in self._handlers.values():
                    logger.debug(
                        f"[Dispatcher] Ignoring stale Connected from {address}"
                    )
                    return
                logger.info(f"[Dispatcher] Session established with {address}")
                self._state = SessionState.ACTIVE

            case Data(payload=payload, origin=origin):
                logger.trace(f"[Dispatcher] Recv Data: {payload!r} | {origin}")

            case Disconnect(address=address):
                if self._handlers and address not in self._handlers.values():
                    logger.debug(
                        f"[Dispatcher] Ignoring stale Disconnect from {address}"
                    )
                    return
                logger.info(f"[Dispatcher] Disconnect {address}")
                self._state = SessionState.IDLE

    def _handle_request(self, request: _StateQuery | _HandlerFinished) -> None:
        match request:
            case _StateQuery(reply=reply):
                if not reply.done():
                    reply.set_result(self._state)
            case _HandlerFinished(task=task):
                self._on_handler_finished(task)

    def _drain_requests(self) -> None:
        while not self._requests.empty():
            self._handle_request(self._requests.get_nowait())

    # -------------------------------------------------------------------------
    # Handler supervision
    # -------------------------------------------------------------------------

    def _spawn(self, address: Address) -> None:
        handler = DataConnectionHandler(
            address,
            self.bus,
            connect_timeout=self.connect_timeout,
            read_limit=self.read_limit,
        )
        task = asyncio.create_task(handler.run(), name=f"data-link {address}")
        self._handlers[task] = address
        self._state = SessionState.DIALING
        task.add_done_callback(
            lambda t: self._requests.put_nowait(_HandlerFinished(t))
        )
        logger.info(f"[Dispatcher] Dispatched data link to {address}")

    def _on_handler_finished(self, task: asyncio.Task) -> None:
        address = self._handlers.pop(task, None)
        if address is None:
            return

        if task.cancelled():
            logger.info(f"[Dispatcher] Data link to {address} cancelled")
        elif task.exception() is not None:
            logger.opt(exception=task.exception()).error(
                f"[Dispatcher] Data link to {address} crashed"
            )
        elif not task.result():
            logger.info(f"[Dispatcher] Data link to {address} never connected")

        if not self._handlers and self._state != SessionState.IDLE:
            logger.info("[Dispatcher] No data link left, session cleared")
            self._state = SessionState.IDLE

    async def wait_handlers(self) -> None:
        """Wait for every spawned handler to finish."""
        if self._handlers:
            await asyncio.gather(*self._handlers, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every live handler and wait for them to finish."""
        tasks = list(self._handlers)
        if not tasks:
            return
        logger.info(f"[Dispatcher] Cancelling {len(tasks)} data link(s)")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
