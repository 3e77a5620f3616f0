"""Agent notifications and the status state machine.

Notifications are frames with id 0 whose payload is an object carrying an
``event`` key:

    {"event": "statusChanged", "status": "ready"}
    {"event": "configUpdated", "config": {...}}
    {"event": "authRequired"}

Only ``statusChanged`` changes state. ``authRequired`` raises a
level-triggered "please reauthenticate" signal: listeners are called for
every notification, while the awaitable side holds at most one token, so a
burst of duplicates collapses into one wake-up.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class AgentStatus(str, Enum):
    """Agent status as reported by statusChanged notifications."""

    NOT_INITIALIZED = "notInitialized"
    READY = "ready"
    DISCONNECTED = "disconnected"
    UNAUTHORIZED = "unauthorized"

    @classmethod
    def from_wire(cls, value: Any) -> AgentStatus:
        """Map a wire status to AgentStatus; unknown values mean not initialized."""
        try:
            return cls(value)
        except ValueError:
            return cls.NOT_INITIALIZED


class NotificationType(str, Enum):
    """Known notification event names."""

    STATUS_CHANGED = "statusChanged"
    CONFIG_UPDATED = "configUpdated"
    AUTH_REQUIRED = "authRequired"


StatusListener = Callable[[AgentStatus], None]
AuthRequiredListener = Callable[[], None]


class NotificationHandler:
    """Interprets notifications and holds the current agent status.

    The handler is the only writer of ``status``. Listeners are plain
    callables invoked synchronously on the reader task, so they must not
    block.
    """

    def __init__(self) -> None:
        self._status = AgentStatus.NOT_INITIALIZED
        self._status_listeners: list[StatusListener] = []
        self._auth_listeners: list[AuthRequiredListener] = []
        self._auth_queue: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self._status_changed = asyncio.Event()

    @property
    def status(self) -> AgentStatus:
        """Current status snapshot."""
        return self._status

    def handle(self, event: dict[str, Any]) -> None:
        """Handle one notification payload."""
        name = event.get("event")

        if name == NotificationType.STATUS_CHANGED:
            logger.info(f"Agent notification {event}")
            self._set_status(AgentStatus.from_wire(event.get("status")))
        elif name == NotificationType.CONFIG_UPDATED:
            logger.info(f"Agent notification {event}")
        elif name == NotificationType.AUTH_REQUIRED:
            logger.info(f"Agent notification {event}")
            self._emit_auth_required()
        else:
            logger.error(f"Agent notification, unknown event name: {name}")

    def _set_status(self, status: AgentStatus) -> None:
        if status == self._status:
            return

        self._status = status
        # Wake every waiter, then re-arm for the next change
        self._status_changed.set()
        self._status_changed = asyncio.Event()

        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Error in status listener")

    def _emit_auth_required(self) -> None:
        if not self._auth_queue.full():
            self._auth_queue.put_nowait(None)

        for listener in list(self._auth_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Error in auth required listener")

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Call listener with the new status on every change.

        Returns:
            Unsubscribe function
        """
        self._status_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return unsubscribe

    def add_auth_required_listener(self, listener: AuthRequiredListener) -> Callable[[], None]:
        """Call listener on every authRequired notification.

        Returns:
            Unsubscribe function
        """
        self._auth_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._auth_listeners:
                self._auth_listeners.remove(listener)

        return unsubscribe

    async def wait_for_status(
        self, *statuses: AgentStatus, timeout: float | None = None
    ) -> AgentStatus:
        """Wait until the status is one of ``statuses`` (any change if none given).

        Raises:
            TimeoutError: If the status does not arrive in time
        """

        async def _wait() -> AgentStatus:
            if statuses and self._status in statuses:
                return self._status
            while True:
                await self._status_changed.wait()
                if not statuses or self._status in statuses:
                    return self._status

        return await asyncio.wait_for(_wait(), timeout=timeout)

    async def auth_required(self) -> AsyncIterator[None]:
        """Yield once for each (collapsed) authRequired signal."""
        while True:
            await self._auth_queue.get()
            yield None

    def has_pending_auth_required(self) -> bool:
        """True if an authRequired signal is waiting to be consumed."""
        return self._auth_queue.full()
