"""Exception hierarchy for the agent client.

Per-frame problems (malformed JSON, unknown ids) never leave the reader task.
Only construction failures and per-request outcomes reach a caller.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base class for all agent client errors."""


class MalformedFrameError(AgentError, ValueError):
    """An inbound line is not a valid ``[id, payload]`` frame."""

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed frame ({reason}): {line[:80]}")


class ResultDecodeError(AgentError):
    """A response payload does not fit the caller's expected result type."""

    def __init__(self, func: str, request_id: int, message: str):
        self.func = func
        self.request_id = request_id
        super().__init__(f"Failed to decode result of {func} (id={request_id}): {message}")


class RequestTimeoutError(AgentError, TimeoutError):
    """No response arrived within the request timeout."""

    def __init__(self, func: str, request_id: int, timeout: float):
        self.func = func
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Request {func} (id={request_id}) timed out after {timeout}s")


class AgentNotConnectedError(AgentError, ConnectionError):
    """The client or its transport is not connected."""


class AgentClosedError(AgentError):
    """The client was closed while the request was pending."""


class AgentConnectionLostError(AgentClosedError):
    """The agent's output stream ended while the request was pending."""


class AgentNotFoundError(AgentError, FileNotFoundError):
    """The agent executable or script could not be located."""
