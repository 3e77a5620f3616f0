"""Client configuration.

Settings can be passed explicitly or read from the environment:

    TABBY_AGENT_COMMAND          Command line used to launch the agent
    TABBY_AGENT_REQUEST_TIMEOUT  Default per-request timeout in seconds
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .errors import AgentNotFoundError

logger = logging.getLogger(__name__)

ENV_COMMAND = "TABBY_AGENT_COMMAND"
ENV_REQUEST_TIMEOUT = "TABBY_AGENT_REQUEST_TIMEOUT"

DEFAULT_COMMAND = ["tabby-agent"]


@dataclass
class AgentClientConfig:
    """Configuration for the agent client and its stdio transport."""

    # Stdio settings (for subprocess mode)
    command: list[str] = field(default_factory=lambda: list(DEFAULT_COMMAND))
    working_directory: str | None = None
    env: dict[str, str] | None = None

    # None waits forever, matching agents that hold long polls (waitForAuthToken)
    request_timeout: float | None = None

    # Grace period between terminate and kill on close
    shutdown_timeout: float = 5.0

    # Max bytes per stdout read
    read_chunk_size: int = 4096

    @classmethod
    def from_env(cls, **overrides: object) -> AgentClientConfig:
        """Build a config from environment variables, then apply overrides.

        Raises:
            ValueError: If TABBY_AGENT_REQUEST_TIMEOUT is not a number
        """
        config = cls()

        command = os.environ.get(ENV_COMMAND)
        if command:
            config.command = shlex.split(command)

        timeout = os.environ.get(ENV_REQUEST_TIMEOUT)
        if timeout:
            try:
                config.request_timeout = float(timeout)
            except ValueError as e:
                raise ValueError(f"Invalid {ENV_REQUEST_TIMEOUT}: {timeout}") from e

        for key, value in overrides.items():
            if not hasattr(config, key):
                raise ValueError(f"Unknown config option: {key}")
            setattr(config, key, value)

        return config


def resolve_agent_command(script: str | Path, node: str | None = None) -> list[str]:
    """Build the command that runs the agent script with Node.js.

    Args:
        script: Path to the agent's JavaScript entry point
        node: Explicit node binary; looked up on PATH when omitted

    Returns:
        Command list suitable for AgentClientConfig.command

    Raises:
        AgentNotFoundError: If node or the script cannot be found
    """
    logger.info(f"Environment variables: PATH: {os.environ.get('PATH', '')}")

    node_path = node or shutil.which("node")
    if not node_path or not Path(node_path).exists():
        logger.error("Node bin not found")
        raise AgentNotFoundError("Node bin not found")
    logger.info(f"Node bin path: {node_path}")

    script_path = Path(script)
    if not script_path.is_file():
        logger.error(f"Node script not found: {script_path}")
        raise AgentNotFoundError(f"Node script not found: {script_path}")
    logger.info(f"Node script path: {script_path.resolve()}")

    return [str(node_path), str(script_path.resolve())]
