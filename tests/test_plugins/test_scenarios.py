"""End-to-end tests driving the banner images example plugin."""

import asyncio
from pathlib import Path

import pytest

from core import Channel, NamedEvent
from plugins.host import Command, CommandResult, HostServices
from plugins.models import (
    AnimeCollection,
    AnimeCollectionFetchedEvent,
    AnimeFetchedEvent,
    HookPoint,
    Media,
)
from plugins.registry import PluginRegistry

EXAMPLE_PLUGIN = Path(__file__).resolve().parents[2] / "plugins" / "examples" / "banner_images.py"
PLUGIN_ID = "banner-images"

TIMER_PLUGIN = '''
__plugin__ = {"api": "1.0", "id": "timers"}

def setup(ctx):
    def clicked():
        ctx.set_timeout(lambda: ctx.screen.navigate_to("/entry?id=177709"), 100)
        ctx.set_timeout(lambda: ctx.toast.info("second timer"), 200)

    ctx.register_event_handler("button-clicked", clicked)

def init():
    ui.register(setup)
'''


@pytest.fixture
def refreshes():
    return []


@pytest.fixture
def host(bus, hooks, storage, process_store, runtime_config, refreshes):
    registry = PluginRegistry(
        event_bus=bus,
        hooks=hooks,
        storage=storage,
        process_store=process_store,
        config=runtime_config,
        host_services=HostServices(refresh_anime_collection=lambda: refreshes.append(True)),
    )
    yield registry
    registry.close()


def navigate(bus, pathname: str, query: str = "") -> None:
    bus.publish(
        NamedEvent(
            channel=Channel.SCREEN_CHANGED.value,
            payload={"pathname": pathname, "query": query},
        )
    )


def to_plugin(bus, channel: Channel, plugin_id: str = PLUGIN_ID, **payload) -> None:
    bus.publish(NamedEvent(channel=channel.value, plugin_id=plugin_id, payload=payload))


def collection_with(*media_ids: int) -> AnimeCollection:
    return AnimeCollection.model_validate(
        {
            "mediaListCollection": {
                "lists": [
                    {
                        "entries": [
                            {"media": {"id": media_id, "bannerImage": f"original-{media_id}.png"}}
                            for media_id in media_ids
                        ]
                    }
                ]
            }
        }
    )


class TestNavigationUpdatesTray:
    """Navigating to an entry loads its stored banner image."""

    @pytest.mark.asyncio
    async def test_navigation_without_stored_image(self, host, bus, recorder):
        """Test an unknown media id clears the field ref and shows the id."""
        instance = host.load(EXAMPLE_PLUGIN)
        recorder.clear()

        navigate(bus, "/entry", "?id=21")
        await instance.drain()

        ref = instance.field_refs.get("customBannerImageRef")
        assert ref.current == ""
        assert recorder.payloads("field-ref:set-value")[-1] == {
            "fieldRef": "customBannerImageRef",
            "value": "",
        }
        tree = instance.tray.last_tree
        assert tree.find("text")[0].props["text"] == "Current media ID: 21"
        assert tree.find("input")[0].props == {"fieldRef": "customBannerImageRef", "value": ""}
        assert len(recorder.on("tray:updated")) == 1

    @pytest.mark.asyncio
    async def test_navigation_with_stored_image(self, host, bus, storage, recorder):
        """Test a stored image is pushed to the field ref and the input."""
        storage.set(PLUGIN_ID, "backgroundImages.21", "http://stored")
        instance = host.load(EXAMPLE_PLUGIN)

        navigate(bus, "/entry", "?id=21")
        await instance.drain()

        assert instance.field_refs.get("customBannerImageRef").current == "http://stored"
        assert instance.tray.last_tree.find("input")[0].props["value"] == "http://stored"

    @pytest.mark.asyncio
    async def test_leaving_entry_resets(self, host, bus):
        """Test other screens show the placeholder text."""
        instance = host.load(EXAMPLE_PLUGIN)
        navigate(bus, "/entry", "?id=21")
        await instance.drain()

        navigate(bus, "/search")
        await instance.drain()

        texts = [node.props["text"] for node in instance.tray.last_tree.find("text")]
        assert texts == ["Open an anime or manga"]


class TestSaveAndPatchCollection:
    """Saving a banner image patches later collection fetches."""

    @pytest.mark.asyncio
    async def test_save_then_fetch_collection(self, host, bus, hooks, storage, recorder, refreshes):
        """Test the saved image replaces only the matching media's banner."""
        instance = host.load(EXAMPLE_PLUGIN)
        navigate(bus, "/entry", "?id=21")
        await instance.drain()

        to_plugin(bus, Channel.FIELD_REF_CHANGED, fieldRef="customBannerImageRef", value="http://img")
        to_plugin(bus, Channel.TRAY_HANDLER_TRIGGERED, handler="saveBackgroundImage", event={})
        await instance.drain()
        # Refresh requests run as detached tasks
        await asyncio.sleep(0.01)

        assert storage.get(PLUGIN_ID, "backgroundImages.21") == "http://img"
        assert [p["type"] for p in recorder.payloads("toast")] == ["info", "success"]
        assert refreshes == [True]

        event = await hooks.intercept(
            HookPoint.ANIME_COLLECTION_FETCHED,
            AnimeCollectionFetchedEvent(anime_collection=collection_with(21, 5)),
        )

        banners = {e.media.id: e.media.banner_image for e in event.anime_collection.iter_entries()}
        assert banners == {21: "http://img", 5: "original-5.png"}

    @pytest.mark.asyncio
    async def test_anime_fetched_records_media_id(self, host, hooks, process_store):
        """Test the anime hook writes to the process store and continues."""
        host.load(EXAMPLE_PLUGIN)

        result = await hooks.trigger(HookPoint.ANIME_FETCHED, AnimeFetchedEvent(anime=Media(id=21)))

        assert result.completed
        assert process_store.get("mediaIds") == 21


class TestTimersAndUnload:
    """Timers scheduled by a handler fire unless the plugin is unloaded."""

    @pytest.mark.asyncio
    async def test_both_timers_fire(self, host, bus, recorder):
        """Test timers fire in delay order."""
        instance = host.load_source("timers", TIMER_PLUGIN)

        to_plugin(bus, Channel.TRAY_HANDLER_TRIGGERED, plugin_id="timers", handler="button-clicked")
        await instance.drain()
        assert instance.timers.pending == 2

        await asyncio.sleep(0.35)

        assert recorder.payloads("screen:navigate-to") == [{"path": "/entry?id=177709"}]
        assert recorder.payloads("toast") == [{"type": "info", "message": "second timer"}]
        assert instance.timers.pending == 0

    @pytest.mark.asyncio
    async def test_unload_before_timers_fire(self, host, bus, recorder):
        """Test unloading drops both pending timers."""
        instance = host.load_source("timers", TIMER_PLUGIN)

        to_plugin(bus, Channel.TRAY_HANDLER_TRIGGERED, plugin_id="timers", handler="button-clicked")
        await instance.drain()
        await asyncio.sleep(0.05)
        host.unload("timers")

        await asyncio.sleep(0.35)

        assert recorder.on("screen:navigate-to") == []
        assert recorder.on("toast") == []
        assert instance.timers.pending == 0

    @pytest.mark.asyncio
    async def test_button_navigates_then_opens_anilist(
        self, host, bus, recorder, runtime_config, monkeypatch
    ):
        """Test the example's button schedules a navigation and a command."""
        runtime_config.commands.allowed = ["open"]
        ran = []

        async def fake_run(command):
            ran.append([command.name, *command.args])
            return CommandResult(returncode=0)

        monkeypatch.setattr(Command, "run", fake_run)
        instance = host.load(EXAMPLE_PLUGIN)
        scheduled = []
        monkeypatch.setattr(
            instance.timers, "set_timeout", lambda cb, delay_ms: scheduled.append((delay_ms, cb))
        )

        to_plugin(bus, Channel.TRAY_HANDLER_TRIGGERED, handler="button-clicked")
        await instance.drain()

        assert recorder.payloads("screen:navigate-to") == [{"path": "/entry?id=21"}]
        assert [delay for delay, _ in scheduled] == [1000, 2000]

        for _, callback in scheduled:
            assert await instance.dispatch(callback, where="timer")

        assert recorder.payloads("screen:navigate-to")[-1] == {"path": "/entry?id=177709"}
        assert ran == [["open", "https://anilist.co"]]
