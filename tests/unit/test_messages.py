"""Unit tests for outbound message serialization."""

import json

from tabby_agent_client.protocol.messages import AgentMethod, OutboundMessage
from tabby_agent_client.types import (
    AgentConfig,
    CompletionConfig,
    CompletionRequest,
    LogEventRequest,
    LogEventType,
    ServerConfig,
)


class TestOutboundMessage:
    """Tests for OutboundMessage wire format."""

    def test_cancel_request_line(self) -> None:
        """cancelRequest is a compact one-line array with a trailing LF."""
        message = OutboundMessage.cancel_request(2, 1)
        assert message.to_line() == '[2,{"func":"cancelRequest","args":[1]}]\n'

    def test_empty_args(self) -> None:
        message = OutboundMessage.create(5, AgentMethod.REQUEST_AUTH_URL)
        assert message.to_line() == '[5,{"func":"requestAuthUrl","args":[]}]\n'

    def test_plain_string_func(self) -> None:
        message = OutboundMessage.create(9, "customMethod", ["a", 1, None])
        assert json.loads(message.to_line()) == [
            9,
            {"func": "customMethod", "args": ["a", 1, None]},
        ]

    def test_models_use_camel_case_and_omit_unset(self) -> None:
        """Nested pydantic models are dumped by alias without None fields."""
        config = AgentConfig(
            server=ServerConfig(endpoint="http://localhost:8080"),
            completion=CompletionConfig(max_prefix_lines=20, max_suffix_lines=20),
        )
        message = OutboundMessage.create(
            1, AgentMethod.INITIALIZE, [{"config": config, "client": "test"}]
        )
        frame = json.loads(message.to_line())

        assert frame[1]["args"] == [
            {
                "config": {
                    "server": {"endpoint": "http://localhost:8080"},
                    "completion": {"maxPrefixLines": 20, "maxSuffixLines": 20},
                },
                "client": "test",
            }
        ]

    def test_completion_request_fields(self) -> None:
        request = CompletionRequest(filepath="/a.py", language="python", text="x", position=1)
        frame = OutboundMessage.create(3, AgentMethod.GET_COMPLETIONS, [request]).to_wire()
        assert frame[1]["args"] == [
            {"filepath": "/a.py", "language": "python", "text": "x", "position": 1}
        ]

    def test_log_event_keeps_snake_case(self) -> None:
        """postEvent uses snake_case keys and the enum's wire value."""
        event = LogEventRequest(type=LogEventType.SELECT, completion_id="c1", choice_index=2)
        frame = OutboundMessage.create(4, AgentMethod.POST_EVENT, [event]).to_wire()
        assert frame[1]["args"] == [{"type": "select", "completion_id": "c1", "choice_index": 2}]

    def test_unicode_is_written_verbatim(self) -> None:
        message = OutboundMessage.create(1, "echo", ["Hello 世界 🌍"])
        line = message.to_line()
        assert "世界 🌍" in line
        assert line.count("\n") == 1

    def test_newlines_in_args_stay_escaped(self) -> None:
        """Content newlines never break the one-line framing."""
        message = OutboundMessage.create(1, "echo", ["line1\nline2"])
        line = message.to_line()
        assert line.endswith("\n")
        assert line.count("\n") == 1
        assert json.loads(line)[1]["args"] == ["line1\nline2"]
