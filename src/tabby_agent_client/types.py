"""Payload types for the agent's methods.

Field names on the wire are camelCase except where the agent expects
snake_case (completion_id, choice_index).
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ServerConfig(WireModel):
    endpoint: str


class CompletionConfig(WireModel):
    max_prefix_lines: int
    max_suffix_lines: int


class LogsConfig(WireModel):
    level: str


class AnonymousUsageTrackingConfig(WireModel):
    disabled: bool


class AgentConfig(WireModel):
    """Agent configuration sent with initialize and updateConfig.

    Unset sections are omitted so the agent keeps its own defaults.
    """

    server: ServerConfig | None = None
    completion: CompletionConfig | None = None
    logs: LogsConfig | None = None
    anonymous_usage_tracking: AnonymousUsageTrackingConfig | None = None


class CompletionRequest(WireModel):
    filepath: str
    language: str
    text: str
    position: int


class Choice(WireModel):
    index: int
    text: str


class CompletionResponse(WireModel):
    """Completion choices for one request."""

    id: str
    choices: list[Choice] = Field(default_factory=list)


class LogEventType(str, Enum):
    VIEW = "view"
    SELECT = "select"


class LogEventRequest(BaseModel):
    """Usage event for a shown or accepted completion choice."""

    type: LogEventType
    completion_id: str
    choice_index: int


class AuthUrlResponse(WireModel):
    auth_url: str
    code: str
