"""Routes decoded frames to the correlation table or notification handler."""

from __future__ import annotations

import logging

from .correlation import CorrelationTable
from .errors import MalformedFrameError
from .notifications import NotificationHandler
from .protocol.frames import LineBuffer, parse_frame

logger = logging.getLogger(__name__)


class FrameDispatcher:
    """Classifies inbound lines as notifications or responses.

    Every per-frame problem is logged and dropped here; nothing a single
    frame contains can disturb other pending requests or stop the reader.
    """

    def __init__(self, table: CorrelationTable, notifications: NotificationHandler):
        self._table = table
        self._notifications = notifications
        self._buffer = LineBuffer()

    def feed(self, chunk: str) -> int:
        """Buffer a text chunk and dispatch each complete line.

        Returns:
            Number of lines dispatched
        """
        lines = self._buffer.feed(chunk)
        for line in lines:
            self.dispatch(line)
        return len(lines)

    def dispatch(self, line: str) -> None:
        """Parse and route one line."""
        try:
            frame = parse_frame(line)
        except MalformedFrameError as e:
            logger.warning(f"Failed to parse agent output: {e.reason} (line: {line[:80]})")
            return

        logger.debug(f"Parsed agent output: [{frame.id}, {frame.payload}]")

        if frame.is_notification:
            if not isinstance(frame.payload, dict):
                logger.warning(f"Dropping notification with non-object payload: {line[:80]}")
                return
            self._notifications.handle(frame.payload)
            return

        self._table.resolve(frame.id, frame.payload)

    def reset(self) -> str:
        """Discard any partially received line and return it."""
        partial = self._buffer.pending
        self._buffer.reset()
        return partial
