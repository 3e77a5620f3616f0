"""Serialized writes of outbound messages."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from .protocol.messages import OutboundMessage

logger = logging.getLogger(__name__)

# UTF-8 encoding for all JSON operations
ENCODING = "utf-8"


class ByteSink(Protocol):
    """Anything that accepts whole byte strings asynchronously."""

    async def write(self, data: bytes) -> None: ...


class FrameWriter:
    """Writes one message per line, never interleaving concurrent sends.

    The lock is held across the sink's write so a drain on one message
    cannot let another message's bytes in between.
    """

    def __init__(self, sink: ByteSink):
        self._sink = sink
        self._lock = asyncio.Lock()

    async def send(
        self, message: OutboundMessage, on_write: Callable[[], None] | None = None
    ) -> None:
        """Serialize and write a message. Does not wait for any reply.

        ``on_write`` is called once the sink write begins, after which the
        agent may have received the message even if the write is cancelled.
        """
        line = message.to_line()
        async with self._lock:
            logger.debug(f"Agent request: {line.rstrip()}")
            if on_write is not None:
                on_write()
            await self._sink.write(line.encode(ENCODING))
