"""Banner images plugin - Custom banner image per media entry.

This is an example plugin that demonstrates the tray UI, reactive state,
field refs, timers and middleware hooks together. It tracks the media the
user is looking at, lets them save a banner image URL for it, and patches
that URL into every fetched anime collection.
"""

__plugin__ = {"api": "1.0", "id": "banner-images", "name": "Banner images"}


def setup_tray(ctx):
    tray = ctx.new_tray(
        tooltip_text="Banner images",
        icon_url="https://raw.githubusercontent.com/5rahim/hibike/main/icons/seadex.png",
    )

    current_media_id = ctx.state(0)
    storage_background_image = ctx.state("")
    custom_banner_image_ref = ctx.register_field_ref("customBannerImageRef")

    def fetch_background_image():
        background_image = storage.get(f"backgroundImages.{current_media_id.get()}")
        storage_background_image.set(background_image or "")
        custom_banner_image_ref.set_value(background_image or "")

    def on_media_changed():
        console.log("media ID changed, fetching background image")
        fetch_background_image()

    ctx.effect(on_media_changed, [current_media_id])

    def on_navigate(e):
        media_id = e.params.get("id", "")
        if e.pathname == "/entry" and media_id.isdigit():
            current_media_id.set(int(media_id))
        else:
            current_media_id.set(0)

    ctx.screen.on_navigate(on_navigate)

    def save_background_image():
        ctx.toast.info(f"Setting background image to {custom_banner_image_ref.current}")
        storage.set(
            f"backgroundImages.{current_media_id.get()}", custom_banner_image_ref.current
        )
        ctx.toast.success("Background image saved")
        fetch_background_image()
        anilist.refresh_anime_collection()

    ctx.register_event_handler("saveBackgroundImage", save_background_image)

    async def open_anilist():
        console.log("opening https://anilist.co")
        await system.cmd("open", "https://anilist.co").run()

    def button_clicked():
        console.log("navigating to /entry?id=21")
        ctx.screen.navigate_to("/entry?id=21")
        ctx.set_timeout(lambda: ctx.screen.navigate_to("/entry?id=177709"), 1000)
        ctx.set_timeout(open_anilist, 2000)

    ctx.register_event_handler("button-clicked", button_clicked)

    def render():
        if current_media_id.get() == 0:
            body = tray.text("Open an anime or manga")
        else:
            body = tray.stack(
                [
                    tray.text(f"Current media ID: {current_media_id.get()}"),
                    tray.input(
                        field_ref="customBannerImageRef",
                        value=storage_background_image.get(),
                    ),
                    tray.button("Save", on_click="saveBackgroundImage"),
                ]
            )
        return tray.stack([tray.button("Click me", on_click="button-clicked"), body])

    tray.render(render)


def patch_banner_images(collection):
    banner_images = storage.get("backgroundImages") or {}
    for entry in collection.iter_entries():
        if entry.media is None:
            continue
        banner_image = banner_images.get(str(entry.media.id), "")
        if banner_image:
            replace(entry.media, "banner_image", banner_image)


def init():
    ui.register(setup_tray)


@on_anime_fetched
def remember_media(e):
    store.set("mediaIds", e.anime.id)
    e.next()


@on_anime_collection_fetched
def patch_collection(e):
    patch_banner_images(e.anime_collection)
    e.next()


@on_raw_anime_collection_fetched
def patch_raw_collection(e):
    patch_banner_images(e.anime_collection)
    e.next()
