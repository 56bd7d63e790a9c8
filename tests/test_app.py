"""Tests for the main application module."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pydantic
import pytest

from event_checkin.app import (
    DashboardMonitor,
    TicketDesk,
    compute_stats,
    create_default_config,
    format_stats,
    load_config,
)
from event_checkin.exceptions import DuplicateTicketError, TransportError, ValidationError
from event_checkin.models import AppConfig, DashboardStats, Ticket
from event_checkin.reconciler import CheckInStatus

from conftest import SCRIPT_URL, make_store


@pytest.fixture
def desk(store):
    """TicketDesk over the fake endpoint with a mocked SMS transport."""
    return TicketDesk(AppConfig(), store=store, transport=MagicMock())


class TestTicketDesk:
    """Tests for the TicketDesk operations."""

    @pytest.mark.asyncio
    async def test_add_then_check_in_flow(self, desk, endpoint):
        """A new unpaid ticket needs payment before it is checked in."""
        result = await desk.add_tickets("042", "Test Guest", "555-000-1111")
        assert result.added == 1

        [(number, ticket)] = await desk.lookup("42")
        assert number == "042"
        assert ticket.paid is False
        assert ticket.checked_in is False

        writes_before = len(endpoint.mutations)
        check_in = await desk.reconciler.check_in("042")
        assert check_in.status is CheckInStatus.PAYMENT_REQUIRED
        assert len(endpoint.mutations) == writes_before

        paid = await desk.reconciler.pay_and_check_in("042")
        assert paid.status is CheckInStatus.PAID_AND_CHECKED_IN

        [(_, ticket)] = await desk.lookup("042")
        assert ticket.paid is True
        assert ticket.checked_in is True

    @pytest.mark.asyncio
    async def test_add_range(self, desk, endpoint):
        result = await desk.add_tickets("100-102", "A", "555-000-1111")

        assert result.added == 3
        assert result.success
        for number in ("100", "101", "102"):
            assert endpoint.row_for(number) == [number, "A", "555-000-1111", "No", "No"]

    @pytest.mark.asyncio
    async def test_add_rejects_existing_numbers(self, desk, endpoint):
        with pytest.raises(DuplicateTicketError) as exc_info:
            await desk.add_tickets("1,50", "Guest", "555")

        assert exc_info.value.ticket_numbers == ["001"]
        assert "001" in str(exc_info.value)
        assert "Remove them and try again" in str(exc_info.value)
        assert endpoint.mutations == []
        assert endpoint.row_for("050") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw,name,kwargs", [
        ("", "Guest", {}),
        ("a-c", "Guest", {}),
        ("42", "  ", {}),
        ("42", "Guest", {"paid": True, "checked_in": True}),
    ])
    async def test_add_validation(self, desk, endpoint, raw, name, kwargs):
        with pytest.raises(ValidationError):
            await desk.add_tickets(raw, name, **kwargs)
        assert endpoint.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", ["client", "server"])
    async def test_add_over_batch_limit_makes_no_call(self, endpoint, mode):
        """An oversized range is refused before the duplicate check is sent."""
        store = make_store(endpoint, search_mode=mode, max_batch_size=100)
        desk = TicketDesk(AppConfig(), store=store, transport=MagicMock())

        with pytest.raises(ValidationError):
            await desk.add_tickets("200-400", "Guest", "555")
        with pytest.raises(ValidationError):
            await desk.add_tickets("1-60, 100-160", "Guest", "555")
        assert endpoint.calls == []

    @pytest.mark.asyncio
    async def test_event_day_add_checked_in(self, store, endpoint):
        desk = TicketDesk(AppConfig(event_day=True), store=store, transport=MagicMock())

        with pytest.raises(ValidationError):
            await desk.add_tickets("42", "Guest", checked_in=True)

        await desk.add_tickets("42", "Guest", "555", paid=True, checked_in=True)
        assert endpoint.row_for("042")[3:5] == ["Yes", "Yes"]

    @pytest.mark.asyncio
    async def test_lookup_reports_missing(self, desk):
        results = await desk.lookup("1,999")

        assert results[0][1].name == "Alice Smith"
        assert results[1] == ("999", None)

    @pytest.mark.asyncio
    async def test_stats(self, desk):
        stats = await desk.stats()

        assert stats.total == 4
        assert stats.checked_in == 1
        assert stats.paid == 2
        assert stats.revenue == 240.0
        assert [t.name for t in stats.recent_check_ins] == ["Carol White"]

    @pytest.mark.asyncio
    async def test_context_manager_closes_store(self):
        store = MagicMock()
        store.close = AsyncMock()

        async with TicketDesk(AppConfig(), store=store, transport=MagicMock()):
            pass

        store.close.assert_awaited_once()


def test_compute_stats_ignores_incomplete_rows():
    tickets = [
        Ticket("1", "Alice", "555", paid=True, checked_in=True),
        Ticket("2", "Bob", "556", paid=True),
        Ticket("3", "Carol", "557"),
        Ticket("4", "Dan", ""),
        Ticket("", "Eve", "558", paid=True),
    ]

    stats = compute_stats(tickets, ticket_price=50.0)

    assert stats.total == 3
    assert stats.checked_in == 1
    assert stats.remaining == 2
    assert stats.paid == 2
    assert stats.revenue == 100.0
    assert round(stats.check_in_rate, 1) == 33.3


def test_compute_stats_empty():
    stats = compute_stats([], ticket_price=120.0)

    assert stats.total == 0
    assert stats.check_in_rate == 0.0


def test_format_stats():
    text = format_stats(DashboardStats(total=4, checked_in=1, paid=2, remaining=3, check_in_rate=25.0, revenue=240.0))

    assert "Checked in:    1 (25%)" in text
    assert "$240.00" in text


class TestDashboardMonitor:
    """Tests for the DashboardMonitor class."""

    @pytest.fixture
    async def monitor(self):
        desk = MagicMock()
        desk.stats = AsyncMock(return_value=DashboardStats(total=3))
        with patch("event_checkin.app.signal.signal"):
            return DashboardMonitor(desk, interval=0.01)

    @pytest.mark.asyncio
    async def test_refresh_calls_update(self, monitor):
        monitor.on_update = MagicMock()

        stats = await monitor.refresh()

        assert stats.total == 3
        monitor.on_update.assert_called_once_with(stats)

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_last_stats(self, monitor):
        await monitor.refresh()
        monitor.desk.stats.side_effect = TransportError("offline")

        assert await monitor.refresh() is None
        assert monitor.latest.total == 3
        assert monitor.refresh_count == 2

    @pytest.mark.asyncio
    async def test_run_stops_on_shutdown(self, monitor):
        task = asyncio.create_task(monitor.run())
        await asyncio.sleep(0.05)
        monitor.shutdown_event.set()
        await asyncio.wait_for(task, timeout=1)

        assert monitor.refresh_count >= 1

    @pytest.mark.asyncio
    async def test_signal_sets_shutdown(self, monitor):
        monitor._handle_shutdown(2, None)
        assert monitor.shutdown_event.is_set()


class TestConfigLoading:
    """Tests for configuration loading."""

    def test_create_default_config(self):
        config = create_default_config()

        assert isinstance(config, AppConfig)
        assert config.store.header_rows == 2
        assert config.notification.send_delay == 1.0
        assert config.event_day is False

    def test_load_config_from_env(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_SCRIPT_URL", SCRIPT_URL)
        monkeypatch.setenv("STORE_SEARCH_MODE", "SERVER")
        monkeypatch.setenv("STORE_HEADER_ROWS", "1")
        monkeypatch.setenv("EVENT_DAY", "true")
        monkeypatch.setenv("EVENT_START", "2026-03-06T19:00:00")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("NOTIFY_CALENDAR_STYLE", "Outlook")

        config = load_config()

        assert config.store.script_url == SCRIPT_URL
        assert config.store.search_mode == "server"
        assert config.store.header_rows == 1
        assert config.event_day is True
        assert config.event.start.hour == 19
        assert config.log_level == "DEBUG"
        assert config.notification.calendar_style == "outlook"

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_SCRIPT_URL", SCRIPT_URL)

        config = load_config(STORE_HEADER_ROWS=0, GOOGLE_SCRIPT_URL="https://other.example/exec")

        assert config.store.header_rows == 0
        assert config.store.script_url == "https://other.example/exec"

    @pytest.mark.parametrize("env", [
        {"GOOGLE_SCRIPT_URL": "ftp://nope"},
        {"GOOGLE_SCRIPT_URL": SCRIPT_URL, "STORE_SEARCH_MODE": "magic"},
        {"GOOGLE_SCRIPT_URL": SCRIPT_URL, "STORE_HEADER_ROWS": "-1"},
        {"GOOGLE_SCRIPT_URL": SCRIPT_URL, "LOG_LEVEL": "LOUD"},
        {"GOOGLE_SCRIPT_URL": SCRIPT_URL, "NOTIFY_CALENDAR_STYLE": "yahoo"},
    ])
    def test_invalid_settings(self, monkeypatch, env):
        for key, value in env.items():
            monkeypatch.setenv(key, value)

        with pytest.raises(pydantic.ValidationError):
            load_config()

    def test_missing_script_url(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SCRIPT_URL", raising=False)

        with pytest.raises(pydantic.ValidationError):
            load_config()
