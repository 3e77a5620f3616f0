"""Unit tests for FrameWriter."""

from __future__ import annotations

import asyncio
import json

import pytest

from tabby_agent_client.protocol.messages import OutboundMessage
from tabby_agent_client.writer import FrameWriter


class TrickleSink:
    """Sink that yields to the event loop after every byte."""

    def __init__(self) -> None:
        self.data = bytearray()

    async def write(self, data: bytes) -> None:
        for byte in data:
            self.data.append(byte)
            await asyncio.sleep(0)


class TestFrameWriter:
    """Tests for serialized writes."""

    @pytest.mark.asyncio
    async def test_send_writes_one_line(self) -> None:
        sink = TrickleSink()
        writer = FrameWriter(sink)

        await writer.send(OutboundMessage.create(1, "echo", ["hi"]))

        assert sink.data.decode("utf-8") == '[1,{"func":"echo","args":["hi"]}]\n'

    @pytest.mark.asyncio
    async def test_concurrent_sends_do_not_interleave(self) -> None:
        """Every line written under contention is a complete message."""
        sink = TrickleSink()
        writer = FrameWriter(sink)
        messages = [OutboundMessage.create(i, "echo", ["x" * (i * 7)]) for i in range(1, 11)]

        await asyncio.gather(*(writer.send(message) for message in messages))

        lines = sink.data.decode("utf-8").splitlines()
        assert len(lines) == 10
        frames = [json.loads(line) for line in lines]
        assert sorted(frame[0] for frame in frames) == list(range(1, 11))
        for frame in frames:
            assert frame[1]["args"] == ["x" * (frame[0] * 7)]

    @pytest.mark.asyncio
    async def test_utf8_encoding(self) -> None:
        sink = TrickleSink()
        writer = FrameWriter(sink)

        await writer.send(OutboundMessage.create(1, "echo", ["héllo"]))

        assert "héllo".encode() in bytes(sink.data)

    @pytest.mark.asyncio
    async def test_on_write_runs_only_once_the_sink_is_reached(self) -> None:
        sink = TrickleSink()
        writer = FrameWriter(sink)
        started: list[int] = []

        async with writer._lock:
            task = asyncio.create_task(
                writer.send(OutboundMessage.create(1, "echo"), lambda: started.append(1))
            )
            await asyncio.sleep(0)
            assert started == []

        await task
        assert started == [1]
