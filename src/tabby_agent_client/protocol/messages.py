"""Outbound request messages.

Every request is written as ``[id, {"func": name, "args": [...]}]``.
Cancelling a request is itself a request (``cancelRequest``) with its own id.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python

from .frames import NEWLINE


class AgentMethod(str, Enum):
    """Methods understood by the agent."""

    INITIALIZE = "initialize"
    UPDATE_CONFIG = "updateConfig"
    GET_COMPLETIONS = "getCompletions"
    POST_EVENT = "postEvent"
    REQUEST_AUTH_URL = "requestAuthUrl"
    WAIT_FOR_AUTH_TOKEN = "waitForAuthToken"
    CANCEL_REQUEST = "cancelRequest"


class OutboundMessage(BaseModel):
    """A request from client to agent.

    Example:
        OutboundMessage(id=3, func="getCompletions", args=[{...}]).to_line()
        → '[3,{"func":"getCompletions","args":[{...}]}]\\n'
    """

    id: int
    func: str
    args: list[Any] = Field(default_factory=list)

    @classmethod
    def create(
        cls,
        request_id: int,
        func: str | AgentMethod,
        args: list[Any] | None = None,
    ) -> OutboundMessage:
        """Factory method accepting either a method name or AgentMethod."""
        return cls(
            id=request_id,
            func=func.value if isinstance(func, AgentMethod) else func,
            args=args or [],
        )

    @classmethod
    def cancel_request(cls, request_id: int, target_id: int) -> OutboundMessage:
        """Create a cancelRequest message asking the agent to stop target_id."""
        return cls.create(request_id, AgentMethod.CANCEL_REQUEST, [target_id])

    def to_wire(self) -> list[Any]:
        """JSON-compatible ``[id, {func, args}]`` structure.

        Pydantic models inside args are dumped by alias, without None fields.
        """
        args = to_jsonable_python(self.args, by_alias=True, exclude_none=True)
        return [self.id, {"func": self.func, "args": args}]

    def to_line(self) -> str:
        """Compact JSON line, newline terminated."""
        return json.dumps(self.to_wire(), separators=(",", ":"), ensure_ascii=False) + NEWLINE
