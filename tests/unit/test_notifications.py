"""Unit tests for notification handling and the status state machine."""

from __future__ import annotations

import asyncio
import logging

import pytest

from tabby_agent_client.notifications import AgentStatus, NotificationHandler


def status_changed(status: object) -> dict[str, object]:
    return {"event": "statusChanged", "status": status}


# =============================================================================
# Status Tests
# =============================================================================


class TestStatus:
    """Tests for statusChanged handling."""

    def test_initial_status(self) -> None:
        assert NotificationHandler().status == AgentStatus.NOT_INITIALIZED

    @pytest.mark.parametrize(
        ("wire", "expected"),
        [
            ("ready", AgentStatus.READY),
            ("disconnected", AgentStatus.DISCONNECTED),
            ("unauthorized", AgentStatus.UNAUTHORIZED),
            ("notInitialized", AgentStatus.NOT_INITIALIZED),
        ],
    )
    def test_known_statuses(self, wire: str, expected: AgentStatus) -> None:
        handler = NotificationHandler()
        handler.handle(status_changed(wire))
        assert handler.status == expected

    @pytest.mark.parametrize("wire", ["bogus", None, 3, "READY"])
    def test_unknown_status_falls_back_to_not_initialized(self, wire: object) -> None:
        handler = NotificationHandler()
        handler.handle(status_changed("ready"))
        handler.handle(status_changed(wire))
        assert handler.status == AgentStatus.NOT_INITIALIZED

    def test_missing_status_falls_back(self) -> None:
        handler = NotificationHandler()
        handler.handle(status_changed("unauthorized"))
        handler.handle({"event": "statusChanged"})
        assert handler.status == AgentStatus.NOT_INITIALIZED

    def test_listeners_see_changes_only(self) -> None:
        handler = NotificationHandler()
        seen: list[AgentStatus] = []
        unsubscribe = handler.add_status_listener(seen.append)

        handler.handle(status_changed("ready"))
        handler.handle(status_changed("ready"))
        handler.handle(status_changed("disconnected"))
        unsubscribe()
        handler.handle(status_changed("ready"))

        assert seen == [AgentStatus.READY, AgentStatus.DISCONNECTED]

    def test_failing_listener_does_not_block_others(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        handler = NotificationHandler()
        seen: list[AgentStatus] = []

        def broken(status: AgentStatus) -> None:
            raise RuntimeError("boom")

        handler.add_status_listener(broken)
        handler.add_status_listener(seen.append)

        with caplog.at_level(logging.ERROR):
            handler.handle(status_changed("ready"))

        assert seen == [AgentStatus.READY]
        assert "Error in status listener" in caplog.text

    @pytest.mark.asyncio
    async def test_wait_for_status(self) -> None:
        handler = NotificationHandler()
        waiter = asyncio.create_task(handler.wait_for_status(AgentStatus.READY, timeout=1.0))
        await asyncio.sleep(0)

        handler.handle(status_changed("disconnected"))
        await asyncio.sleep(0)
        assert not waiter.done()

        handler.handle(status_changed("ready"))
        assert await waiter == AgentStatus.READY

    @pytest.mark.asyncio
    async def test_wait_for_current_status_returns_immediately(self) -> None:
        handler = NotificationHandler()
        handler.handle(status_changed("unauthorized"))
        result = await handler.wait_for_status(AgentStatus.UNAUTHORIZED, timeout=0.1)
        assert result == AgentStatus.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_wait_for_status_times_out(self) -> None:
        handler = NotificationHandler()
        with pytest.raises(TimeoutError):
            await handler.wait_for_status(AgentStatus.READY, timeout=0.01)


# =============================================================================
# Other Notification Tests
# =============================================================================


class TestAuthRequired:
    """Tests for the authRequired signal."""

    def test_listener_called_once_per_notification(self) -> None:
        handler = NotificationHandler()
        calls: list[None] = []
        handler.add_auth_required_listener(lambda: calls.append(None))

        handler.handle({"event": "authRequired"})
        assert len(calls) == 1

        handler.handle({"event": "authRequired"})
        assert len(calls) == 2

    def test_burst_collapses_to_one_pending_signal(self) -> None:
        handler = NotificationHandler()
        for _ in range(3):
            handler.handle({"event": "authRequired"})
        assert handler.has_pending_auth_required()

    @pytest.mark.asyncio
    async def test_auth_required_iterator(self) -> None:
        handler = NotificationHandler()
        handler.handle({"event": "authRequired"})
        handler.handle({"event": "authRequired"})

        signals = handler.auth_required()
        await asyncio.wait_for(anext(signals), timeout=0.1)
        assert not handler.has_pending_auth_required()

        next_signal = asyncio.ensure_future(anext(signals))
        await asyncio.sleep(0.01)
        assert not next_signal.done()

        handler.handle({"event": "authRequired"})
        await asyncio.wait_for(next_signal, timeout=0.1)
        await signals.aclose()

    def test_auth_required_does_not_change_status(self) -> None:
        handler = NotificationHandler()
        handler.handle({"event": "authRequired"})
        assert handler.status == AgentStatus.NOT_INITIALIZED


class TestOtherNotifications:
    """Tests for configUpdated and unknown notifications."""

    def test_config_updated_is_a_no_op(self, caplog: pytest.LogCaptureFixture) -> None:
        handler = NotificationHandler()
        handler.handle(status_changed("ready"))
        with caplog.at_level(logging.INFO):
            handler.handle({"event": "configUpdated", "config": {"server": {}}})
        assert handler.status == AgentStatus.READY
        assert "configUpdated" in caplog.text

    def test_unknown_event_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        handler = NotificationHandler()
        with caplog.at_level(logging.ERROR):
            handler.handle({"event": "somethingNew"})
        assert "unknown event name: somethingNew" in caplog.text
        assert handler.status == AgentStatus.NOT_INITIALIZED
