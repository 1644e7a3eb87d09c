"""Tests for event handlers and timers."""

import asyncio
import logging

import pytest

from core.exceptions import InvalidOperationError, PluginUnloadedError
from plugins.handlers import EventHandlerRegistry, TimerScheduler


class TestEventHandlerRegistry:
    """Tests for EventHandlerRegistry."""

    def test_register_and_get(self):
        handlers = EventHandlerRegistry("p")
        callback = lambda event: None  # noqa: E731

        handlers.register("save", callback)

        assert handlers.get("save") is callback
        assert "save" in handlers
        assert handlers.names() == ["save"]
        assert handlers.get("missing") is None

    def test_duplicate_name_keeps_latest(self, caplog):
        handlers = EventHandlerRegistry("p")
        first = lambda event: 1  # noqa: E731
        second = lambda event: 2  # noqa: E731

        with caplog.at_level(logging.WARNING):
            handlers.register("save", first)
            handlers.register("save", second)

        assert handlers.get("save") is second
        assert len(handlers) == 1
        assert "Duplicate event handler" in caplog.text


class TestTimerScheduler:
    """Tests for TimerScheduler."""

    @pytest.fixture
    def fired(self):
        return []

    @pytest.fixture
    def dispatch(self, fired):
        async def run(callback, *args, where="callback"):
            fired.append(where)
            callback(*args)
            return True

        return run

    @pytest.mark.asyncio
    async def test_timer_fires_after_delay(self, dispatch, fired):
        timers = TimerScheduler("p", dispatch)
        calls = []

        timers.set_timeout(lambda: calls.append("late"), 20)
        assert timers.pending == 1
        assert calls == []

        await asyncio.sleep(0.08)

        assert calls == ["late"]
        assert timers.pending == 0
        assert fired == ["timer 1"]

    @pytest.mark.asyncio
    async def test_timers_fire_in_delay_order(self, dispatch):
        timers = TimerScheduler("p", dispatch)
        calls = []

        timers.set_timeout(lambda: calls.append("second"), 40)
        timers.set_timeout(lambda: calls.append("first"), 10)
        await asyncio.sleep(0.1)

        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_close_drops_pending_timers(self, dispatch):
        timers = TimerScheduler("p", dispatch)
        calls = []
        timers.set_timeout(lambda: calls.append("x"), 10)

        timers.close()
        await asyncio.sleep(0.05)

        assert calls == []
        assert timers.pending == 0
        with pytest.raises(PluginUnloadedError):
            timers.set_timeout(lambda: None, 10)

    def test_set_timeout_requires_running_loop(self, dispatch):
        timers = TimerScheduler("p", dispatch)

        with pytest.raises(InvalidOperationError):
            timers.set_timeout(lambda: None, 10)
