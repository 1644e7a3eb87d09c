"""Decorator-based hook authoring API.

Provides decorators for registering middleware hooks from a plugin script:
- @on_anime_fetched: a single media record was fetched
- @on_anime_collection_fetched: the user's collection is about to be returned
- @on_raw_anime_collection_fetched: the raw collection was fetched

Example usage:
    @on_anime_collection_fetched
    def patch_banners(e):
        for entry in e.anime_collection.iter_entries():
            ...
        e.next()

The loader collects decorated functions after executing the script and
registers them in definition order, the same as app.on_get_anime_collection().
"""

from typing import Callable, TypeVar

from .models import HookPoint

F = TypeVar("F", bound=Callable)


def on_anime_fetched(fn: F) -> F:
    """Hook: Called after a single media record is fetched.

    Args:
        fn: Function with signature (e: AnimeFetchedEvent) -> HookResult | None

    Returns:
        The decorated function with hook metadata attached.
    """
    fn._hook_name = HookPoint.ANIME_FETCHED.value  # type: ignore[attr-defined]
    return fn


def on_anime_collection_fetched(fn: F) -> F:
    """Hook: Called before the anime collection is handed back to the caller.

    Args:
        fn: Function with signature
            (e: AnimeCollectionFetchedEvent) -> HookResult | None

    Returns:
        The decorated function with hook metadata attached.
    """
    fn._hook_name = HookPoint.ANIME_COLLECTION_FETCHED.value  # type: ignore[attr-defined]
    return fn


def on_raw_anime_collection_fetched(fn: F) -> F:
    """Hook: Called after the raw anime collection is fetched."""
    fn._hook_name = HookPoint.RAW_ANIME_COLLECTION_FETCHED.value  # type: ignore[attr-defined]
    return fn
