"""Wire protocol for the agent.

- Outbound: ``[id, {"func": ..., "args": [...]}]`` per line
- Inbound: ``[id, payload]`` per line, where id 0 marks a notification
"""

from .frames import NOTIFICATION_ID, Frame, LineBuffer, parse_frame
from .messages import AgentMethod, OutboundMessage

__all__ = [
    "NOTIFICATION_ID",
    "AgentMethod",
    "Frame",
    "LineBuffer",
    "OutboundMessage",
    "parse_frame",
]
