"""Tabby agent client CLI.

Talks to an agent over stdio for quick manual checks.

Usage:
    tabby-agent-client --command "node tabby-agent.js" status
    tabby-agent-client complete main.py --position 120
    tabby-agent-client complete main.py --position 120 --format json
    tabby-agent-client auth

The agent command can also be set with TABBY_AGENT_COMMAND.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import shlex
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import click

from .client import AgentClient, build_client_identifier
from .config import AgentClientConfig
from .errors import AgentError
from .notifications import AgentStatus
from .types import AgentConfig, CompletionRequest

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

CLIENT_NAME = "tabby-agent-client"

# Extension to language id for completion requests
LANGUAGES = {
    ".py": "python",
    ".js": "javascript",
    ".ts": "typescript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
}


def _configure_logging(verbose: bool) -> None:
    """Send logging to stderr so stdout only carries command output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def truncate(text: str | None, max_len: int = 60) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    text = text.replace("\n", "\\n")
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


@click.group()
@click.option("--command", "agent_command", help="Command that launches the agent")
@click.option("--timeout", type=float, help="Per-request timeout in seconds")
@click.option("-v", "--verbose", is_flag=True, help="Log wire traffic to stderr")
@click.pass_context
def main(
    ctx: click.Context,
    agent_command: str | None,
    timeout: float | None,
    verbose: bool,
) -> None:
    """Tabby agent client - drive a tabby-agent process over stdio."""
    _configure_logging(verbose)

    try:
        config = AgentClientConfig.from_env()
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    if agent_command:
        config.command = shlex.split(agent_command)
    if timeout is not None:
        config.request_timeout = timeout

    ctx.obj = config


async def _initialized_client(config: AgentClientConfig) -> AgentClient:
    client = AgentClient(config=config)
    await client.start()
    try:
        await client.initialize(
            AgentConfig(), build_client_identifier(CLIENT_NAME, CLIENT_NAME, _version())
        )
    except BaseException:
        await client.close()
        raise
    return client


def _version() -> str:
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version(CLIENT_NAME)
    except PackageNotFoundError:
        return "unknown"


def _run(coro: Coroutine[Any, Any, None]) -> None:
    """Run a coroutine, turning agent errors into CLI errors."""
    try:
        asyncio.run(coro)
    except (AgentError, ConnectionError) as e:
        raise click.ClickException(str(e)) from e


@main.command()
@click.option("--wait", default=5.0, help="Seconds to wait for a status notification")
@click.pass_obj
def status(config: AgentClientConfig, wait: float) -> None:
    """Initialize the agent and print its status."""

    async def _status() -> None:
        client = await _initialized_client(config)
        try:
            # No notification in time: report whatever status we have
            with contextlib.suppress(TimeoutError):
                await client.wait_for_status(
                    AgentStatus.READY,
                    AgentStatus.DISCONNECTED,
                    AgentStatus.UNAUTHORIZED,
                    timeout=wait,
                )
            click.echo(client.status.value)
        finally:
            await client.close()

    _run(_status())


@main.command()
@click.argument("filepath", type=click.Path(exists=True, dir_okay=False))
@click.option("--position", type=int, required=True, help="Cursor offset in the file")
@click.option("--language", help="Language id (guessed from the extension by default)")
@click.option(
    "--format",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
)
@click.pass_obj
def complete(
    config: AgentClientConfig,
    filepath: str,
    position: int,
    language: str | None,
    output_format: str,
) -> None:
    """Request completions at POSITION in FILEPATH."""
    path = Path(filepath)
    request = CompletionRequest(
        filepath=str(path.resolve()),
        language=language or LANGUAGES.get(path.suffix, "plaintext"),
        text=path.read_text(encoding="utf-8"),
        position=position,
    )

    async def _complete() -> None:
        client = await _initialized_client(config)
        try:
            response = await client.get_completions(request)
        finally:
            await client.close()

        if output_format == FORMAT_JSON:
            click.echo(json.dumps(response.model_dump(by_alias=True) if response else None))
            return
        if response is None or not response.choices:
            click.echo("No completions")
            return
        click.echo(f"Completion {response.id}")
        for choice in response.choices:
            click.echo(f"  [{choice.index}] {truncate(choice.text)}")

    _run(_complete())


@main.command()
@click.pass_obj
def auth(config: AgentClientConfig) -> None:
    """Start the auth flow and wait for the user to finish it."""

    async def _auth() -> None:
        client = await _initialized_client(config)
        try:
            response = await client.request_auth_url()
            if response is None:
                click.echo("Agent did not return an auth URL")
                return
            click.echo(f"Open {response.auth_url} to sign in (code: {response.code})")
            await client.wait_for_auth_token(response.code)
            click.echo("Signed in")
        finally:
            await client.close()

    _run(_auth())


if __name__ == "__main__":
    main()
