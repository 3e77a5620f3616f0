"""Byte-stream transports to the agent process.

The client only needs a duplex text stream: whole byte strings go out,
decoded text chunks come in. Chunk boundaries carry no meaning; framing
happens above this layer.

Architecture:
- AgentTransport is the PROTOCOL (interface) for all transports
- BaseAgentTransport holds the connection state machine and UTF-8 decoding
- StdioAgentTransport launches the agent as a subprocess
- MockAgentTransport is in-memory, for tests and embedding
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from .config import AgentClientConfig
from .errors import AgentNotConnectedError

logger = logging.getLogger(__name__)

# UTF-8 encoding for all wire traffic
ENCODING = "utf-8"


class TransportState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@runtime_checkable
class AgentTransport(Protocol):
    """Protocol for agent transports.

    All transports must implement:
    - connect/disconnect: Lifecycle management
    - write: Send bytes to the agent
    - chunks: Receive decoded text from the agent, ending at EOF
    """

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        ...

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        ...

    async def connect(self) -> None:
        """Establish the connection.

        Raises:
            ConnectionError: If connection fails
        """
        ...

    async def disconnect(self) -> None:
        """Close the connection and release the agent."""
        ...

    async def write(self, data: bytes) -> None:
        """Write bytes to the agent.

        Raises:
            AgentNotConnectedError: If not connected
        """
        ...

    def chunks(self) -> AsyncIterator[str]:
        """Yield text as it arrives until the agent's output ends."""
        ...


class BaseAgentTransport(ABC):
    """Base class for transports with common functionality.

    Provides:
    - State management
    - Incremental UTF-8 decoding, so a character split across reads
      is reassembled before it reaches the framing layer
    """

    def __init__(self, config: AgentClientConfig):
        self.config = config
        self._state = TransportState.DISCONNECTED
        self._lock = asyncio.Lock()

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._state == TransportState.CONNECTED

    async def connect(self) -> None:
        """Establish connection."""
        async with self._lock:
            if self._state == TransportState.CONNECTED:
                return

            self._state = TransportState.CONNECTING
            try:
                await self._do_connect()
                self._state = TransportState.CONNECTED
                logger.info(f"{self.__class__.__name__} connected")
            except Exception as e:
                self._state = TransportState.DISCONNECTED
                raise ConnectionError(f"Failed to connect: {e}") from e

    async def disconnect(self) -> None:
        """Close the connection."""
        async with self._lock:
            if self._state in (TransportState.DISCONNECTED, TransportState.CLOSED):
                return

            self._state = TransportState.CLOSED
            await self._do_disconnect()
            self._state = TransportState.DISCONNECTED
            logger.info(f"{self.__class__.__name__} disconnected")

    async def write(self, data: bytes) -> None:
        """Write bytes to the agent."""
        if not self.is_connected:
            raise AgentNotConnectedError("Transport not connected")
        await self._do_write(data)

    async def chunks(self) -> AsyncIterator[str]:
        """Yield decoded text chunks until EOF."""
        decoder = codecs.getincrementaldecoder(ENCODING)(errors="replace")
        async for data in self._receive_bytes():
            text = decoder.decode(data)
            if text:
                yield text
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail

    # Abstract methods for subclasses
    @abstractmethod
    async def _do_connect(self) -> None:
        """Implementation-specific connection logic."""
        ...

    @abstractmethod
    async def _do_disconnect(self) -> None:
        """Implementation-specific disconnection logic."""
        ...

    @abstractmethod
    async def _do_write(self, data: bytes) -> None:
        """Implementation-specific write logic."""
        ...

    @abstractmethod
    def _receive_bytes(self) -> AsyncIterator[bytes]:
        """Implementation-specific receive logic. Must be an async generator."""
        ...

    async def __aenter__(self) -> BaseAgentTransport:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()


class StdioAgentTransport(BaseAgentTransport):
    """Transport over subprocess stdin/stdout.

    Launches the agent as a subprocess and communicates via
    newline-delimited JSON. stderr is forwarded to the debug log.
    """

    def __init__(self, config: AgentClientConfig | None = None):
        super().__init__(config or AgentClientConfig())
        self._process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    async def _do_connect(self) -> None:
        """Launch subprocess and establish communication."""
        cmd = self.config.command

        # Build environment
        env = None
        if self.config.env:
            env = {**os.environ, **self.config.env}

        self._process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.config.working_directory,
            env=env,
        )

        # Start stderr reader (for logging)
        self._stderr_task = asyncio.create_task(self._read_stderr())

        logger.info(f"Launched agent: {' '.join(cmd)} (pid={self._process.pid})")

    async def _do_disconnect(self) -> None:
        """Close stdin and terminate subprocess."""
        if self._process:
            if self._process.stdin and not self._process.stdin.is_closing():
                self._process.stdin.close()

            if self._process.returncode is None:
                # The agent may exit between the check and the signal
                with contextlib.suppress(ProcessLookupError):
                    self._process.terminate()
                try:
                    await asyncio.wait_for(
                        self._process.wait(), timeout=self.config.shutdown_timeout
                    )
                except TimeoutError:
                    self._process.kill()
                    await self._process.wait()
            logger.info(f"Agent terminated (pid={self._process.pid})")

        if self._stderr_task:
            self._stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stderr_task
            self._stderr_task = None

        self._process = None

    async def _do_write(self, data: bytes) -> None:
        """Write to stdin and wait for the pipe to drain."""
        if not self._process or not self._process.stdin:
            raise AgentNotConnectedError("Process not running")

        self._process.stdin.write(data)
        await self._process.stdin.drain()

    async def _receive_bytes(self) -> AsyncIterator[bytes]:
        """Read stdout in whatever pieces the pipe delivers."""
        if not self._process or not self._process.stdout:
            raise AgentNotConnectedError("Process not running")

        while True:
            data = await self._process.stdout.read(self.config.read_chunk_size)
            if not data:
                # EOF - process exited
                break
            yield data

    async def _read_stderr(self) -> None:
        """Read and log stderr output."""
        if not self._process or not self._process.stderr:
            return

        while True:
            line = await self._process.stderr.readline()
            if not line:
                break
            logger.debug(f"[agent stderr] {line.decode(ENCODING, errors='replace').rstrip()}")


class MockAgentTransport(BaseAgentTransport):
    """Mock transport for testing.

    Inbound text is injected with ``feed``; outbound bytes are recorded.
    No actual I/O - everything is in-memory.

    Usage:
        transport = MockAgentTransport()
        client = AgentClient(transport)
        await client.start()

        task = asyncio.create_task(client.call("getCompletions", [request]))
        await transport.wait_for_writes(1)
        transport.feed('[1,{"id":"abc","choices":[]}]\\n')

        assert transport.written_frames[0][1]["func"] == "getCompletions"
    """

    def __init__(self, config: AgentClientConfig | None = None) -> None:
        super().__init__(config or AgentClientConfig(command=[]))
        self._inbound: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._written: list[bytes] = []
        self._write_event = asyncio.Event()

    @property
    def written_lines(self) -> list[str]:
        """Outbound text split into lines, newline removed."""
        text = b"".join(self._written).decode(ENCODING)
        return [line for line in text.split("\n") if line]

    @property
    def written_frames(self) -> list[Any]:
        """Outbound lines decoded as JSON."""
        return [json.loads(line) for line in self.written_lines]

    def feed(self, data: str | bytes) -> None:
        """Inject agent output exactly as given (no framing added)."""
        self._inbound.put_nowait(data.encode(ENCODING) if isinstance(data, str) else data)

    def end(self) -> None:
        """Signal end of agent output (EOF)."""
        self._inbound.put_nowait(None)

    async def wait_for_writes(self, count: int, timeout: float = 1.0) -> None:
        """Wait until at least ``count`` lines have been written."""

        async def _wait() -> None:
            while len(self.written_lines) < count:
                self._write_event.clear()
                await self._write_event.wait()

        await asyncio.wait_for(_wait(), timeout=timeout)

    async def _do_connect(self) -> None:
        """No-op for mock."""
        pass

    async def _do_disconnect(self) -> None:
        """Unblock any reader."""
        self.end()

    async def _do_write(self, data: bytes) -> None:
        """Record the write."""
        self._written.append(data)
        self._write_event.set()

    async def _receive_bytes(self) -> AsyncIterator[bytes]:
        """Yield injected output until end()."""
        while True:
            data = await self._inbound.get()
            if data is None:
                break
            yield data


# Factory functions


def create_stdio_transport(
    command: list[str] | None = None,
    working_directory: str | None = None,
    env: dict[str, str] | None = None,
) -> StdioAgentTransport:
    """Create a stdio transport for subprocess communication.

    Args:
        command: Custom command (default: ["tabby-agent"])
        working_directory: CWD for subprocess
        env: Additional environment variables

    Returns:
        StdioAgentTransport configured for subprocess communication
    """
    config = AgentClientConfig(
        command=command or AgentClientConfig().command,
        working_directory=working_directory,
        env=env,
    )
    return StdioAgentTransport(config)


def create_mock_transport() -> MockAgentTransport:
    """Create a mock transport for testing."""
    return MockAgentTransport()
