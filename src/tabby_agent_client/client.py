"""Asynchronous request/response client for the agent process.

Ties the pieces together:
- requests: allocate id → register callbacks → write line → await result
- responses: transport chunks → line buffer → dispatcher → correlation table
- notifications: dispatcher → NotificationHandler (status, authRequired)

Cancelling a caller does not wait for the agent. The caller sees
``asyncio.CancelledError`` at once; a separate ``cancelRequest`` request
carrying the original id is sent in the background and its reply is only
logged. A response for the cancelled id that arrives later is discarded.

Example:
    >>> async with create_subprocess_client(["node", "tabby-agent.js"]) as client:
    ...     await client.initialize(AgentConfig(), "IntelliJ IDEA com.tabbyml.intellij-tabby 1.0")
    ...     response = await client.get_completions(request)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .config import AgentClientConfig
from .correlation import CorrelationTable
from .dispatcher import FrameDispatcher
from .errors import (
    AgentClosedError,
    AgentConnectionLostError,
    AgentNotConnectedError,
    RequestTimeoutError,
    ResultDecodeError,
)
from .notifications import AgentStatus, NotificationHandler
from .protocol.messages import AgentMethod, OutboundMessage
from .transport import (
    AgentTransport,
    MockAgentTransport,
    StdioAgentTransport,
    create_mock_transport,
    create_stdio_transport,
)
from .types import (
    AgentConfig,
    AuthUrlResponse,
    CompletionRequest,
    CompletionResponse,
    LogEventRequest,
)
from .writer import FrameWriter

logger = logging.getLogger(__name__)

# Marks "use the configured request timeout" in call()
_CONFIGURED = object()


def build_client_identifier(app_name: str, plugin_id: str, plugin_version: str | None) -> str:
    """Client string sent with initialize.

    Example: "IntelliJ IDEA 2023.2 com.tabbyml.intellij-tabby 1.0.0"
    """
    return f"{app_name} {plugin_id} {plugin_version}"


class AgentClient:
    """Client for an agent speaking newline-delimited ``[id, payload]`` JSON.

    Usage:
        async with AgentClient(transport) as client:
            ok = await client.update_config(config)

    After ``close()`` (or if the agent's output ends) every pending request
    is rejected with ``AgentClosedError`` (``AgentConnectionLostError`` for
    the latter), so no caller is left waiting forever.
    """

    def __init__(
        self,
        transport: AgentTransport | None = None,
        config: AgentClientConfig | None = None,
        _owns_transport: bool = True,
    ):
        self.config = config or AgentClientConfig()
        self._transport: AgentTransport = transport or StdioAgentTransport(self.config)
        self._owns_transport = _owns_transport

        self._table = CorrelationTable()
        self._notifications = NotificationHandler()
        self._dispatcher = FrameDispatcher(self._table, self._notifications)
        self._writer = FrameWriter(self._transport)

        self._reader_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._closed = False
        self._connection_lost = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def transport(self) -> AgentTransport:
        """The underlying transport."""
        return self._transport

    @property
    def is_connected(self) -> bool:
        """True once started and until closed or the agent's output ends."""
        return (
            self._reader_task is not None
            and not self._closed
            and not self._connection_lost
            and self._transport.is_connected
        )

    async def start(self) -> None:
        """Connect the transport and start reading agent output."""
        if self._closed:
            raise AgentClosedError("Client is closed")
        if self._reader_task is not None:
            return

        await self._transport.connect()
        self._reader_task = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        """Stop reading, reject pending requests, and release the agent.

        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        if self._reader_task:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None

        self._reject_pending(AgentClosedError("Agent client closed"))

        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        if self._owns_transport:
            await self._transport.disconnect()
        logger.info("Agent client closed")

    async def __aenter__(self) -> AgentClient:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _read_loop(self) -> None:
        """Background task feeding agent output to the dispatcher."""
        try:
            async for chunk in self._transport.chunks():
                logger.debug(f"Output received: {chunk!r}")
                self._dispatcher.feed(chunk)
        except Exception as e:
            logger.error(f"Read loop error: {e}")
            error = AgentConnectionLostError(f"Transport error: {e}")
        else:
            logger.info("Agent output closed")
            error = AgentConnectionLostError("Agent output ended")

        partial = self._dispatcher.reset()
        if partial:
            logger.warning(f"Discarding incomplete agent output: {partial[:80]}")

        self._connection_lost = True
        self._reject_pending(error)

    def _reject_pending(self, error: AgentClosedError) -> None:
        drained = self._table.drain()
        if drained:
            logger.info(f"Rejecting {len(drained)} pending request(s): {error}")
        for pending in drained:
            if pending.reject is not None:
                pending.reject(error)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def call(
        self,
        func: str | AgentMethod,
        args: Sequence[Any] | None = None,
        result_type: Any = None,
        *,
        timeout: float | None | object = _CONFIGURED,
    ) -> Any:
        """Send a request and wait for its result.

        Args:
            func: Method name
            args: Positional arguments; pydantic models are dumped by alias
            result_type: Type the response payload is validated into. None
                ignores the payload and returns None.
            timeout: Seconds to wait; None waits forever. Defaults to
                ``config.request_timeout``.

        Returns:
            The decoded result

        Raises:
            AgentNotConnectedError: If the client is not started or was closed
            ResultDecodeError: If the payload does not fit result_type
            RequestTimeoutError: If the timeout elapsed (the request is cancelled)
            AgentClosedError: If the client closed while waiting
            asyncio.CancelledError: If the caller was cancelled
        """
        if not self.is_connected:
            raise AgentNotConnectedError("Agent client not connected")

        name = func.value if isinstance(func, AgentMethod) else func
        wait_timeout = self.config.request_timeout if timeout is _CONFIGURED else timeout
        adapter = TypeAdapter(result_type) if result_type is not None else None

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        request_id = self._table.allocate()

        def resolve(payload: Any) -> None:
            logger.debug(f"Agent response: {payload}")
            if future.done():
                return
            if adapter is None:
                future.set_result(None)
                return
            try:
                result = adapter.validate_python(payload)
            except ValidationError as e:
                future.set_exception(ResultDecodeError(name, request_id, str(e)))
            else:
                future.set_result(result)

        def reject(error: BaseException) -> None:
            if not future.done():
                future.set_exception(error)

        self._table.register(request_id, resolve, reject, func=name)

        write_started = False

        def on_write() -> None:
            nonlocal write_started
            write_started = True

        message = OutboundMessage.create(request_id, name, list(args or []))
        try:
            await self._writer.send(message, on_write)
        except asyncio.CancelledError:
            # Part of the request may already be in the agent's input
            if write_started:
                self._abandon(request_id, name)
            else:
                self._table.cancel(request_id)
            raise
        except BaseException:
            self._table.cancel(request_id)
            raise

        try:
            if wait_timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout=wait_timeout)
        except asyncio.CancelledError:
            self._abandon(request_id, name)
            raise
        except TimeoutError as e:
            self._abandon(request_id, name)
            raise RequestTimeoutError(name, request_id, wait_timeout) from e

    def _abandon(self, request_id: int, func: str) -> None:
        """Drop a request locally and ask the agent to stop working on it."""
        if not self._table.cancel(request_id):
            # Already resolved or rejected; nothing left to cancel
            return

        logger.info(f"Agent request cancelled: {func} (id={request_id})")
        if not self.is_connected:
            return

        cancel_id = self._table.allocate()
        self._table.register(
            cancel_id,
            lambda payload: logger.info(f"Agent cancellation response: {payload}"),
            func=AgentMethod.CANCEL_REQUEST.value,
        )
        message = OutboundMessage.cancel_request(cancel_id, request_id)
        task = asyncio.create_task(self._send_cancellation(message))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_cancellation(self, message: OutboundMessage) -> None:
        try:
            await self._writer.send(message)
        except Exception as e:
            self._table.cancel(message.id)
            logger.warning(f"Failed to send cancellation {message.to_line().rstrip()}: {e}")

    # -------------------------------------------------------------------------
    # Agent methods
    # -------------------------------------------------------------------------

    async def initialize(self, config: AgentConfig, client: str) -> bool:
        """Initialize the agent with its configuration and a client identifier."""
        return await self.call(
            AgentMethod.INITIALIZE, [{"config": config, "client": client}], bool
        )

    async def update_config(self, config: AgentConfig) -> bool:
        return await self.call(AgentMethod.UPDATE_CONFIG, [config], bool)

    async def get_completions(self, request: CompletionRequest) -> CompletionResponse | None:
        """Request completions; None when the agent has nothing to offer."""
        return await self.call(
            AgentMethod.GET_COMPLETIONS, [request], CompletionResponse | None
        )

    async def post_event(self, event: LogEventRequest) -> bool:
        return await self.call(AgentMethod.POST_EVENT, [event], bool)

    async def request_auth_url(self) -> AuthUrlResponse | None:
        return await self.call(AgentMethod.REQUEST_AUTH_URL, [], AuthUrlResponse | None)

    async def wait_for_auth_token(self, code: str) -> None:
        """Block until the user completes the auth flow for ``code``."""
        await self.call(AgentMethod.WAIT_FOR_AUTH_TOKEN, [code])

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    @property
    def status(self) -> AgentStatus:
        """Latest status reported by the agent."""
        return self._notifications.status

    @property
    def notifications(self) -> NotificationHandler:
        return self._notifications

    @property
    def pending_requests(self) -> int:
        """Number of requests awaiting a response (including cancel notices)."""
        return len(self._table)

    def add_status_listener(self, listener: Callable[[AgentStatus], None]) -> Callable[[], None]:
        return self._notifications.add_status_listener(listener)

    def add_auth_required_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._notifications.add_auth_required_listener(listener)

    async def wait_for_status(
        self, *statuses: AgentStatus, timeout: float | None = None
    ) -> AgentStatus:
        return await self._notifications.wait_for_status(*statuses, timeout=timeout)

    def auth_required(self) -> AsyncIterator[None]:
        """Yield whenever the agent asks for reauthentication."""
        return self._notifications.auth_required()


# Factory functions


def create_subprocess_client(
    command: list[str] | None = None,
    working_directory: str | None = None,
    env: dict[str, str] | None = None,
    request_timeout: float | None = None,
) -> AgentClient:
    """Create a client that launches the agent as a subprocess.

    Args:
        command: Custom command (default: ["tabby-agent"])
        working_directory: CWD for subprocess
        env: Additional environment variables
        request_timeout: Default per-request timeout (None waits forever)

    Returns:
        AgentClient with StdioAgentTransport
    """
    transport = create_stdio_transport(
        command=command,
        working_directory=working_directory,
        env=env,
    )
    transport.config.request_timeout = request_timeout
    return AgentClient(transport, transport.config)


def create_test_client(
    transport: MockAgentTransport | None = None,
    request_timeout: float | None = None,
) -> AgentClient:
    """Create a client for testing.

    Args:
        transport: Pre-configured mock transport (creates new if None)
        request_timeout: Default per-request timeout

    Returns:
        AgentClient with MockAgentTransport
    """
    return AgentClient(
        transport or create_mock_transport(),
        AgentClientConfig(command=[], request_timeout=request_timeout),
        _owns_transport=transport is None,
    )
