"""
Byte-level conduit to the Stockfish worker process.

The transport owns the worker's stdin/stdout pipes. It writes newline
terminated commands and hands back one trimmed output line at a time,
turning process exit and pipe closure into typed errors.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from .exceptions import (
    BrokenChannelError,
    ReadTimeoutError,
    StreamEndedUnexpectedlyError,
    TransportError,
    WorkerCrashedError,
)

logger = logging.getLogger(__name__)

QUIT_COMMAND = "quit"
EXIT_GRACE_PERIOD = 0.5  # seconds to wait for an exit status after output closes


class LineBuffer:
    """
    Accumulates raw output chunks and splits them into lines.

    Chunks may end anywhere, including inside a multi-byte character, so
    bytes are kept until a newline arrives and only whole lines are decoded.
    Blank lines are dropped.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._buffer = bytearray()
        self._encoding = encoding

    def feed(self, chunk: bytes) -> None:
        """Append a chunk read from the worker."""
        self._buffer.extend(chunk)

    def pop_line(self) -> str | None:
        """Return the next non-blank line, or None if no full line is buffered."""
        while True:
            index = self._buffer.find(b"\n")
            if index < 0:
                return None
            raw = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            line = raw.decode(self._encoding, errors="replace").strip()
            if line:
                return line

    def flush(self) -> str | None:
        """Return any unterminated trailing text once the stream has ended."""
        line = self._buffer.decode(self._encoding, errors="replace").strip()
        self._buffer.clear()
        return line or None


class BaseTransport(ABC):
    """Interface the protocol engine uses to talk to a worker."""

    @property
    @abstractmethod
    def quit_sent(self) -> bool:
        """Whether the quit command has been written."""

    @abstractmethod
    async def write(self, text: str) -> None:
        """Write one command line to the worker."""

    @abstractmethod
    async def read_line(self, timeout: float | None = None) -> str:
        """Read the next non-blank output line."""

    @abstractmethod
    def is_alive(self) -> bool:
        """Check if the worker process is running."""

    @abstractmethod
    async def close(self, timeout: float = 2.0) -> None:
        """Ask the worker to quit and wait for it to exit."""


class SubprocessTransport(BaseTransport):
    """
    Transport over an asyncio subprocess.

    Usage:
        transport = await SubprocessTransport.spawn("stockfish")
        await transport.write("isready")
        line = await transport.read_line(timeout=5.0)
        await transport.close()
    """

    def __init__(self, process: asyncio.subprocess.Process, chunk_size: int = 4096) -> None:
        self._process = process
        self._chunk_size = chunk_size
        self._buffer = LineBuffer()
        self._quit_sent = False

    @classmethod
    async def spawn(cls, path: str | Path, *args: str) -> SubprocessTransport:
        """Start the worker executable with piped standard streams.

        Raises:
            FileNotFoundError: If the executable does not exist.
        """
        logger.info(f"Starting worker from {path}")
        process = await asyncio.create_subprocess_exec(
            str(path),
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        return cls(process)

    @property
    def quit_sent(self) -> bool:
        return self._quit_sent

    @property
    def returncode(self) -> int | None:
        """Exit code of the worker, None while it is running."""
        return self._process.returncode

    def is_alive(self) -> bool:
        return self._process.returncode is None

    async def write(self, text: str) -> None:
        """Send a command to the worker.

        Does nothing once the worker has exited or quit has been sent.

        Raises:
            BrokenChannelError: If the worker's stdin is unavailable.
        """
        stdin = self._process.stdin
        if stdin is None:
            raise BrokenChannelError("Worker input stream is not available")
        if self._process.returncode is not None or self._quit_sent:
            return

        logger.debug(f"Sent: {text}")
        try:
            stdin.write(f"{text}\n".encode())
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise BrokenChannelError(f"Cannot write to worker: {e}") from e

        if text == QUIT_COMMAND:
            self._quit_sent = True

    async def read_line(self, timeout: float | None = None) -> str:
        """Read the next non-blank line from the worker.

        Args:
            timeout: Seconds to wait for more output (None = no limit).

        Returns:
            The trimmed line, or "" if output ended after quit was sent.

        Raises:
            WorkerCrashedError: If the worker has exited, before or during the read.
            StreamEndedUnexpectedlyError: If output closed without a quit while
                the worker keeps running.
            ReadTimeoutError: If no line arrived within the timeout.
        """
        stdout = self._process.stdout
        if stdout is None:
            raise BrokenChannelError("Worker output stream is not available")
        if self._process.returncode is not None and not self._quit_sent:
            raise WorkerCrashedError(
                f"The Stockfish process has crashed (exit code {self._process.returncode})"
            )

        while True:
            line = self._buffer.pop_line()
            if line is not None:
                logger.debug(f"Recv: {line}")
                return line

            try:
                chunk = await asyncio.wait_for(stdout.read(self._chunk_size), timeout)
            except asyncio.TimeoutError as e:
                raise ReadTimeoutError(f"No output from worker within {timeout}s") from e

            if not chunk:
                remainder = self._buffer.flush()
                if remainder is not None:
                    logger.debug(f"Recv: {remainder}")
                    return remainder
                if self._quit_sent:
                    return ""
                await self._raise_for_closed_output()

            self._buffer.feed(chunk)

    async def _raise_for_closed_output(self) -> None:
        # EOF usually arrives before the exit status has been collected
        try:
            returncode = await asyncio.wait_for(self._process.wait(), EXIT_GRACE_PERIOD)
        except asyncio.TimeoutError:
            raise StreamEndedUnexpectedlyError("Worker output ended unexpectedly") from None
        raise WorkerCrashedError(f"The Stockfish process has crashed (exit code {returncode})")

    async def close(self, timeout: float = 2.0) -> None:
        """Stop the worker process gracefully, killing it if it hangs."""
        if self._process.returncode is not None:
            return
        try:
            await self.write(QUIT_COMMAND)
            await asyncio.wait_for(self._process.wait(), timeout)
            logger.info("Worker stopped")
        except (asyncio.TimeoutError, TransportError) as e:
            logger.warning(f"Error stopping worker, killing it: {e!r}")
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()
            await self._process.wait()
