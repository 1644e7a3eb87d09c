"""Tests for plugin instances and their serialized queue."""

import asyncio
import logging

import pytest

from core import Channel, NamedEvent
from core.exceptions import InvalidOperationError
from plugins.context import UIContext
from plugins.models import AnimeFetchedEvent, HookPoint, Media
from plugins.pipeline import HookResult


def inbound(channel: Channel, plugin_id: str = "test-plugin", **payload) -> NamedEvent:
    return NamedEvent(channel=channel.value, plugin_id=plugin_id, payload=payload)


class TestTurns:
    """Tests for dispatch and scheduling."""

    @pytest.mark.asyncio
    async def test_dispatch_batches_state_changes(self, make_instance):
        """Test effects see only the final value of a turn."""
        instance = make_instance()
        cell = instance.store.new_state(0)
        runs = []
        instance.effects.register_effect(lambda: runs.append(cell.get()), [cell])

        def handler():
            cell.set(1)
            cell.set(2)

        assert await instance.dispatch(handler)
        assert runs == [0, 2]

    @pytest.mark.asyncio
    async def test_callbacks_never_interleave(self, make_instance):
        """Test async callbacks of one instance run one at a time."""
        instance = make_instance()
        log = []

        async def slow(name):
            log.append(f"{name} start")
            await asyncio.sleep(0.01)
            log.append(f"{name} end")

        await asyncio.gather(instance.dispatch(slow, "a"), instance.dispatch(slow, "b"))

        assert log == ["a start", "a end", "b start", "b end"]

    @pytest.mark.asyncio
    async def test_reentrant_dispatch_runs_inline(self, make_instance):
        """Test a callback dispatching on its own instance does not deadlock."""
        instance = make_instance()
        log = []

        async def outer():
            log.append("outer")
            await instance.dispatch(lambda: log.append("inner"))

        assert await asyncio.wait_for(instance.dispatch(outer), timeout=1)
        assert log == ["outer", "inner"]

    @pytest.mark.asyncio
    async def test_failed_callback_reports_false(self, make_instance, caplog):
        """Test a raising callback is contained."""
        instance = make_instance()

        def broken():
            raise ValueError("bad input")

        with caplog.at_level(logging.WARNING):
            assert not await instance.dispatch(broken, where="handler 'save'")

        assert "test-plugin handler 'save' failed" in caplog.text

    @pytest.mark.asyncio
    async def test_schedule_runs_in_order(self, make_instance):
        """Test scheduled callbacks run in scheduling order."""
        instance = make_instance()
        log = []

        for i in range(3):
            instance.schedule(log.append, i)
        await instance.drain()

        assert log == [0, 1, 2]

    def test_schedule_without_loop_runs_inline(self, make_instance):
        """Test scheduling outside an event loop runs the turn immediately."""
        instance = make_instance()
        log = []

        instance.schedule(log.append, "now")

        assert log == ["now"]

    def test_run_sync_skips_coroutines(self, make_instance, caplog):
        """Test async callbacks cannot run without a loop."""
        instance = make_instance()

        async def needs_loop():
            pass

        with caplog.at_level(logging.WARNING):
            assert not instance.run_sync(needs_loop, where="init")

        assert "no event loop is running" in caplog.text


class TestTray:
    """Tests for tray publishing."""

    @pytest.mark.asyncio
    async def test_tray_renders_once_per_turn(self, make_instance, recorder):
        """Test several writes in one turn produce one tray update."""
        instance = make_instance()
        cell = instance.store.new_state(0)
        tray = instance.create_tray(tooltip_text="Test")
        tray.render(lambda: tray.text(f"value {cell.get()}"))
        instance.request_render()
        recorder.clear()

        def handler():
            cell.set(1)
            cell.set(2)

        await instance.dispatch(handler)

        updates = recorder.payloads("tray:updated")
        assert len(updates) == 1
        assert updates[0]["components"]["props"]["text"] == "value 2"
        assert updates[0]["tray"]["tooltipText"] == "Test"

    @pytest.mark.asyncio
    async def test_unread_state_does_not_rerender(self, make_instance, recorder):
        """Test writes to cells the render did not read are ignored."""
        instance = make_instance()
        shown = instance.store.new_state("a")
        hidden = instance.store.new_state(0)
        tray = instance.create_tray()
        tray.render(lambda: tray.text(shown.get()))
        instance.request_render()
        recorder.clear()

        await instance.dispatch(lambda: hidden.set(1))

        assert recorder.on("tray:updated") == []

    def test_second_tray_rejected(self, make_instance):
        """Test a plugin has at most one tray."""
        instance = make_instance()
        instance.create_tray()

        with pytest.raises(InvalidOperationError):
            instance.create_tray()

    @pytest.mark.asyncio
    async def test_render_request_from_client(self, make_instance, bus, recorder):
        """Test tray:render-requested publishes the current tree."""
        instance = make_instance()
        tray = instance.create_tray()
        tray.render(lambda: tray.text("hello"))
        instance.request_render()
        recorder.clear()

        bus.publish(inbound(Channel.TRAY_RENDER_REQUESTED))
        await instance.drain()

        assert len(recorder.on("tray:updated")) == 1


class TestInboundEvents:
    """Tests for client events routed to an instance."""

    @pytest.mark.asyncio
    async def test_handler_triggered_by_name(self, make_instance, bus):
        """Test the named handler receives the event payload."""
        instance = make_instance()
        received = []
        instance.handlers.register("save", received.append)
        instance.handlers.register("noargs", lambda: received.append("called"))

        bus.publish(inbound(Channel.TRAY_HANDLER_TRIGGERED, handler="save", event={"x": 1}))
        bus.publish(inbound(Channel.TRAY_HANDLER_TRIGGERED, handler="noargs"))
        bus.publish(inbound(Channel.TRAY_HANDLER_TRIGGERED, handler="missing"))
        await instance.drain()

        assert received == [{"x": 1}, "called"]

    @pytest.mark.asyncio
    async def test_events_for_other_plugins_are_ignored(self, make_instance, bus):
        """Test scoped delivery."""
        instance = make_instance()
        received = []
        instance.handlers.register("save", received.append)

        bus.publish(inbound(Channel.TRAY_HANDLER_TRIGGERED, plugin_id="other", handler="save"))
        await instance.drain()

        assert received == []

    @pytest.mark.asyncio
    async def test_screen_changed_broadcast(self, make_instance, bus):
        """Test navigation broadcasts reach every instance."""
        first = make_instance("first")
        second = make_instance("second")
        seen = []
        first.on_navigate(lambda e: seen.append(("first", e.pathname)))
        second.on_navigate(lambda e: seen.append(("second", e.params.get("id"))))

        bus.publish(
            NamedEvent(
                channel=Channel.SCREEN_CHANGED.value,
                payload={"pathname": "/entry", "query": "?id=21"},
            )
        )
        await first.drain()
        await second.drain()

        assert seen == [("first", "/entry"), ("second", "21")]

    def test_field_ref_changed_applies_immediately(self, make_instance, bus, recorder):
        """Test client input updates the ref without a render or echo."""
        instance = make_instance()
        ref = instance.field_refs.register("url")

        bus.publish(inbound(Channel.FIELD_REF_CHANGED, fieldRef="url", value="x.png"))

        assert ref.current == "x.png"
        assert recorder.events == []

    def test_script_field_ref_write_is_sent(self, make_instance, recorder):
        """Test set_value pushes the value to the client."""
        instance = make_instance()

        instance.field_refs.register("url").set_value("y.png")

        assert recorder.payloads("field-ref:set-value") == [{"fieldRef": "url", "value": "y.png"}]

    @pytest.mark.asyncio
    async def test_custom_channels(self, make_instance, bus):
        """Test ctx.on hears client events but not its own emits."""
        instance = make_instance()
        ctx = UIContext(instance)
        heard = []
        outbound = []
        bus.subscribe("custom:sync", outbound.append)
        ctx.on("sync", heard.append)

        ctx.emit("sync", {"from": "plugin"})
        bus.publish(NamedEvent(channel="custom:sync", plugin_id=instance.id, payload={"from": "client"}))
        await instance.drain()

        assert heard == [{"from": "client"}]
        assert [e.payload for e in outbound] == [{"from": "plugin"}, {"from": "client"}]


class TestHooksOnQueue:
    """Tests for middleware hooks bound to an instance."""

    @pytest.mark.asyncio
    async def test_hook_runs_inside_a_turn(self, make_instance, hooks):
        """Test state written by a hook triggers effects after the hook."""
        instance = make_instance()
        cell = instance.store.new_state(0)
        runs = []
        instance.effects.register_effect(lambda: runs.append(cell.get()), [cell])

        def hook(e):
            cell.set(e.anime.id)
            e.next()

        hooks.register(HookPoint.ANIME_FETCHED, hook, plugin_id=instance.id, runner=instance.run_hook)

        result = await hooks.trigger(HookPoint.ANIME_FETCHED, AnimeFetchedEvent(anime=Media(id=21)))

        assert result.completed
        assert runs == [0, 21]

    @pytest.mark.asyncio
    async def test_unloaded_instance_passes_event_on(self, make_instance):
        """Test run_hook continues the chain for an unloaded instance."""
        instance = make_instance()
        instance.unload()

        ok, result = await instance.run_hook(lambda e: None, AnimeFetchedEvent())

        assert ok
        assert result is HookResult.CONTINUE


class TestUnload:
    """Tests for unloading."""

    @pytest.mark.asyncio
    async def test_unload_tears_everything_down(self, make_instance, bus, hooks, process_store, recorder):
        """Test nothing registered by the plugin survives unload."""
        instance = make_instance()
        ctx = UIContext(instance)
        fired = []
        ctx.set_timeout(lambda: fired.append("timer"), 10)
        ctx.register_event_handler("save", lambda: fired.append("handler"))
        hooks.register(HookPoint.ANIME_FETCHED, lambda e: e.next(), plugin_id=instance.id)
        process_store.watch("k", lambda v: fired.append("watch"), owner=instance.id)

        instance.unload()
        bus.publish(inbound(Channel.TRAY_HANDLER_TRIGGERED, handler="save"))
        process_store.set("k", 1)
        await asyncio.sleep(0.05)

        assert fired == []
        assert not instance.loaded
        assert len(hooks) == 0
        assert len(instance.store) == 0
        assert bus.listener_count(Channel.TRAY_HANDLER_TRIGGERED) == 0
        assert instance.emit(Channel.TOAST, {"message": "late"}) == 0
        assert not await instance.dispatch(lambda: fired.append("late"))
