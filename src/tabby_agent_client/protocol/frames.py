"""Line framing for the agent wire protocol.

The agent writes one JSON array per line: ``[id, payload]``. Output arrives
in arbitrary chunks, so a frame may be split across reads or several frames
may arrive in one read. ``LineBuffer`` reassembles complete lines and
``parse_frame`` turns a line into a ``Frame``.

Wire format (UTF-8, LF terminated):
    ← [1,{"id":"cmpl-1","choices":[{"index":0,"text":"foo"}]}]
    ← [0,{"event":"statusChanged","status":"ready"}]
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any

from ..errors import MalformedFrameError

NEWLINE = "\n"

# Frames with this id are server-initiated notifications, not responses
NOTIFICATION_ID = 0


@dataclass(frozen=True)
class Frame:
    """A decoded ``[id, payload]`` unit."""

    id: int
    payload: Any

    @property
    def is_notification(self) -> bool:
        return self.id == NOTIFICATION_ID


class LineBuffer:
    """Accumulates chunked text and yields complete lines.

    Splitting is strictly on LF. Whatever follows the last LF in the input
    so far is held until a later chunk completes it.
    """

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._pending

    def feed(self, chunk: str) -> list[str]:
        """Add a chunk and return the lines it completed, in arrival order."""
        if NEWLINE not in chunk:
            self._pending += chunk
            return []

        lines = (self._pending + chunk).split(NEWLINE)
        self._pending = lines.pop()
        return lines

    def reset(self) -> None:
        self._pending = ""


def parse_frame(line: str) -> Frame:
    """Parse one line into a Frame.

    Raises:
        MalformedFrameError: If the line is not JSON, not a two element
            array, or its first element is not a finite number.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedFrameError(line, f"invalid JSON: {e.msg}") from e
    except (ValueError, RecursionError) as e:
        raise MalformedFrameError(line, f"invalid JSON: {e.__class__.__name__}") from e

    if not isinstance(data, list) or len(data) != 2:
        raise MalformedFrameError(line, "expected a two element array")

    frame_id = data[0]
    # bool is an int subclass but never a valid id
    if isinstance(frame_id, bool) or not isinstance(frame_id, int | float):
        raise MalformedFrameError(line, "id is not a number")
    # json accepts NaN, Infinity and overflowing literals such as 1e999
    if isinstance(frame_id, float) and not math.isfinite(frame_id):
        raise MalformedFrameError(line, "id is not a finite number")

    return Frame(id=int(frame_id), payload=data[1])
