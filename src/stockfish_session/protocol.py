"""
Command/response framing for the UCI conversation.

The worker answers each command with a free-text batch of lines whose end
is only recognisable by a command-specific terminal line. This module maps
command families to terminal predicates and runs commands one at a time
through a FIFO queue, collecting each response batch.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

from .exceptions import ReadTimeoutError
from .transport import BaseTransport

logger = logging.getLogger(__name__)

TerminalPredicate = Callable[[str], bool]

READY_TOKEN = "readyok"
HANDSHAKE_TOKEN = "uciok"
BEST_MOVE_TOKEN = "bestmove"
BOARD_SENTINEL = "Checkers"  # Last line of the `d` dump
STATIC_EVAL_PREFIXES = ("Final evaluation", "Total Evaluation")
STOP_COMMAND = "stop"


class CommandFamily(enum.Enum):
    """Kinds of commands that produce a multi-line response."""

    HANDSHAKE = "uci"
    READY = "isready"
    SEARCH = "go"
    BOARD = "d"
    STATIC_EVAL = "eval"
    PERFT = "perft"
    BENCHMARK = "bench"


TERMINAL_CONDITIONS: dict[CommandFamily, TerminalPredicate] = {
    CommandFamily.HANDSHAKE: lambda line: line == HANDSHAKE_TOKEN,
    CommandFamily.READY: lambda line: line == READY_TOKEN,
    CommandFamily.SEARCH: lambda line: line.startswith(BEST_MOVE_TOKEN),
    CommandFamily.BOARD: lambda line: BOARD_SENTINEL in line,
    CommandFamily.STATIC_EVAL: lambda line: line.startswith(STATIC_EVAL_PREFIXES),
    CommandFamily.PERFT: lambda line: "searched" in line,
    CommandFamily.BENCHMARK: lambda line: line.startswith("Nodes/second"),
}


class CommandState(enum.Enum):
    QUEUED = "queued"
    IN_FLIGHT = "in flight"
    COMPLETED = "completed"
    TIMED_OUT = "timed out"


@dataclass
class PendingCommand:
    """A command waiting for, or receiving, its response."""

    command: str
    is_terminal: TerminalPredicate
    lines: list[str] = field(default_factory=list)
    state: CommandState = CommandState.QUEUED


class CommandQueue:
    """
    FIFO admission gate allowing one logical operation at a time.

    Re-entrant for the task that currently holds it, so an operation that
    issues several commands keeps exclusive use of the worker throughout.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task | None = None
        self._depth = 0

    def locked(self) -> bool:
        return self._lock.locked()

    @contextlib.asynccontextmanager
    async def admit(self) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if self._owner is not None and self._owner is task:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        async with self._lock:
            self._owner = task
            self._depth = 1
            try:
                yield
            finally:
                self._owner = None
                self._depth = 0


class ProtocolEngine:
    """
    Sends commands to the worker and collects their responses.

    A command whose response timed out is remembered as owed. The next
    command drains that late response first (stopping it if it is a search),
    so responses never shift onto the wrong command.

    Usage:
        protocol = ProtocolEngine(transport)
        lines = await protocol.run("go depth 10", CommandFamily.SEARCH)
        await protocol.await_ready()
    """

    def __init__(self, transport: BaseTransport, read_timeout: float | None = None) -> None:
        self._transport = transport
        self._read_timeout = read_timeout
        self._queue = CommandQueue()
        self._pending: PendingCommand | None = None
        self._owed: PendingCommand | None = None
        self._last_sent = ""

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    @property
    def queue(self) -> CommandQueue:
        return self._queue

    @property
    def pending(self) -> PendingCommand | None:
        """The command currently awaiting its terminal line, if any."""
        return self._pending

    @property
    def owed(self) -> PendingCommand | None:
        """A timed-out command whose response has not been drained yet."""
        return self._owed

    async def send(self, command: str) -> None:
        """Send a command that produces no response."""
        async with self._queue.admit():
            await self._settle_owed(None)
            await self._write(command)

    async def send_and_collect(
        self,
        command: str,
        is_terminal: TerminalPredicate,
        timeout: float | None = None,
    ) -> list[str]:
        """Send a command and read lines until the terminal line arrives.

        Args:
            command: UCI command text.
            is_terminal: Predicate recognising the last line of the response.
            timeout: Per-line read timeout, defaulting to the engine's.

        Returns:
            All response lines, the terminal line included.

        Raises:
            TransportError: If the worker crashes, closes its output or times out.
                Lines read so far are discarded.
        """
        pending = PendingCommand(command, is_terminal)
        async with self._queue.admit():
            await self._settle_owed(timeout)
            await self._write(command)
            await self._collect(pending, timeout)
        return pending.lines

    async def run(
        self, command: str, family: CommandFamily, timeout: float | None = None
    ) -> list[str]:
        """Send a command and collect its response using the family's terminal line."""
        return await self.send_and_collect(command, TERMINAL_CONDITIONS[family], timeout)

    async def await_sentinel(self, token: str, timeout: float | None = None) -> None:
        """Read and discard lines until one contains `token`."""
        pending = PendingCommand(self._last_sent, lambda line: token in line)
        async with self._queue.admit():
            await self._collect(pending, timeout)

    async def await_ready(self, timeout: float | None = None) -> None:
        """Block until the worker has processed every command sent so far."""
        async with self._queue.admit():
            await self._settle_owed(timeout)
            await self._write(CommandFamily.READY.value)
            await self.await_sentinel(READY_TOKEN, timeout)

    async def interrupt(self) -> None:
        """Tell the worker to stop searching, bypassing the queue."""
        await self._transport.write(STOP_COMMAND)

    async def _write(self, command: str) -> None:
        await self._transport.write(command)
        self._last_sent = command

    async def _collect(self, pending: PendingCommand, timeout: float | None) -> None:
        self._pending = pending
        pending.state = CommandState.IN_FLIGHT
        try:
            while True:
                line = await self._read(timeout)
                pending.lines.append(line)
                if pending.is_terminal(line):
                    break
                if line == "" and self._transport.quit_sent:
                    break
        except ReadTimeoutError:
            pending.state = CommandState.TIMED_OUT
            self._owed = pending
            raise
        finally:
            self._pending = None
        pending.state = CommandState.COMPLETED

    async def _settle_owed(self, timeout: float | None) -> None:
        owed, self._owed = self._owed, None
        if owed is None:
            return
        logger.warning(f"Draining late response to '{owed.command}'")
        if owed.command.split()[:1] == [CommandFamily.SEARCH.value]:
            await self._transport.write(STOP_COMMAND)
        await self._collect(owed, timeout)

    async def _read(self, timeout: float | None) -> str:
        return await self._transport.read_line(self._read_timeout if timeout is None else timeout)
