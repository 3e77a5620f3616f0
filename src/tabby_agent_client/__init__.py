"""Tabby agent client - async request/response over a child process's stdio.

Provides:
- AgentClient: call() plus typed wrappers for the agent's methods
- Status tracking and authRequired signals from agent notifications
- Transports: stdio (subprocess) and mock (in-memory, for testing)
"""

from .client import (
    AgentClient,
    build_client_identifier,
    create_subprocess_client,
    create_test_client,
)
from .config import AgentClientConfig, resolve_agent_command
from .correlation import CorrelationTable, PendingRequest
from .dispatcher import FrameDispatcher
from .errors import (
    AgentClosedError,
    AgentConnectionLostError,
    AgentError,
    AgentNotConnectedError,
    AgentNotFoundError,
    MalformedFrameError,
    RequestTimeoutError,
    ResultDecodeError,
)
from .notifications import AgentStatus, NotificationHandler, NotificationType
from .protocol import AgentMethod, Frame, LineBuffer, OutboundMessage, parse_frame
from .transport import (
    AgentTransport,
    BaseAgentTransport,
    MockAgentTransport,
    StdioAgentTransport,
    TransportState,
    create_mock_transport,
    create_stdio_transport,
)
from .types import (
    AgentConfig,
    AnonymousUsageTrackingConfig,
    AuthUrlResponse,
    Choice,
    CompletionConfig,
    CompletionRequest,
    CompletionResponse,
    LogEventRequest,
    LogEventType,
    LogsConfig,
    ServerConfig,
)
from .writer import FrameWriter

__all__ = [
    # Client
    "AgentClient",
    "build_client_identifier",
    "create_subprocess_client",
    "create_test_client",
    # Configuration
    "AgentClientConfig",
    "resolve_agent_command",
    # Core
    "CorrelationTable",
    "PendingRequest",
    "FrameDispatcher",
    "FrameWriter",
    "Frame",
    "LineBuffer",
    "OutboundMessage",
    "AgentMethod",
    "parse_frame",
    # Status & notifications
    "AgentStatus",
    "NotificationHandler",
    "NotificationType",
    # Transports
    "AgentTransport",
    "BaseAgentTransport",
    "StdioAgentTransport",
    "MockAgentTransport",
    "TransportState",
    "create_stdio_transport",
    "create_mock_transport",
    # Errors
    "AgentError",
    "AgentClosedError",
    "AgentConnectionLostError",
    "AgentNotConnectedError",
    "AgentNotFoundError",
    "MalformedFrameError",
    "RequestTimeoutError",
    "ResultDecodeError",
    # Types
    "AgentConfig",
    "ServerConfig",
    "CompletionConfig",
    "LogsConfig",
    "AnonymousUsageTrackingConfig",
    "CompletionRequest",
    "CompletionResponse",
    "Choice",
    "LogEventRequest",
    "LogEventType",
    "AuthUrlResponse",
]
