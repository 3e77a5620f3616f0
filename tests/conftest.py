"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from tabby_agent_client import AgentClient, MockAgentTransport, create_test_client


@pytest.fixture
def transport() -> MockAgentTransport:
    """In-memory transport; feed() injects agent output."""
    return MockAgentTransport()


@pytest_asyncio.fixture
async def client(transport: MockAgentTransport) -> AsyncIterator[AgentClient]:
    """Started client wired to the mock transport."""
    client = create_test_client(transport)
    await client.start()
    yield client
    await client.close()
