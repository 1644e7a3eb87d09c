"""Plugin models for the plugin runtime.

Defines the data structures flowing through middleware hooks:
- Media, MediaListEntry, MediaList, MediaListCollection, AnimeCollection:
  domain payloads delivered by backend fetches (camelCase on the wire)
- HookEvent and its subclasses: mutable envelopes handed to hooks
- ScreenEvent: payload of client navigation notifications
- replace(): scoped patch primitive for swapping one field in place
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping, MutableSequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Sequence
from urllib.parse import parse_qsl

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class HookPoint(str, Enum):
    """Named interception points exposed by backend fetch pipelines."""

    ANIME_FETCHED = "anime_fetched"
    ANIME_COLLECTION_FETCHED = "anime_collection_fetched"
    RAW_ANIME_COLLECTION_FETCHED = "raw_anime_collection_fetched"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class MediaTitle(_WireModel):
    romaji: str | None = None
    english: str | None = None
    native: str | None = None
    user_preferred: str | None = None


class Media(_WireModel):
    """A media record as returned by the list provider."""

    id: int
    id_mal: int | None = None
    title: MediaTitle | None = None
    format: str | None = None
    status: str | None = None
    episodes: int | None = None
    banner_image: str | None = None
    cover_image: str | None = None
    is_adult: bool = False


class MediaListEntry(_WireModel):
    id: int | None = None
    status: str | None = None
    progress: int | None = None
    score: float | None = None
    media: Media | None = None


class MediaList(_WireModel):
    name: str | None = None
    status: str | None = None
    is_custom_list: bool = False
    entries: list[MediaListEntry] = []


class MediaListCollection(_WireModel):
    lists: list[MediaList] = []


class AnimeCollection(_WireModel):
    """A user's anime list collection: lists -> entries -> media."""

    media_list_collection: MediaListCollection | None = None

    def iter_entries(self) -> Iterator[MediaListEntry]:
        """Yield every entry of every list."""
        if self.media_list_collection is None:
            return
        for media_list in self.media_list_collection.lists:
            yield from media_list.entries


class ScreenEvent(_WireModel):
    """The UI client navigated to a new screen.

    Attributes:
        pathname: Route path, e.g. "/entry"
        query: Raw query string including the leading "?", or ""
    """

    pathname: str = ""
    query: str = ""

    @property
    def params(self) -> dict[str, str]:
        """Query parameters, last value wins."""
        return dict(parse_qsl(self.query.lstrip("?")))


# =============================================================================
# Scoped patching
# =============================================================================


PathLike = str | Sequence[str | int]


def split_path(path: PathLike) -> list[str | int]:
    """Split ``"a.lists.0.b"`` or ``"a.lists[0].b"`` into segments."""
    if not isinstance(path, str):
        return list(path)
    segments: list[str | int] = []
    for part in path.replace("[", ".").replace("]", "").split("."):
        if not part:
            continue
        segments.append(int(part) if part.isdigit() else part)
    return segments


def _step(obj: Any, segment: str | int) -> Any:
    if isinstance(segment, int) or isinstance(obj, Mapping):
        return obj[segment]
    return getattr(obj, segment)


def replace(target: Any, field_name: str | int, value: Any) -> None:
    """Swap one field of ``target`` in place.

    Works on model attributes, mapping keys and sequence indexes. The
    surrounding structure is left untouched.

    Raises:
        AttributeError: If ``target`` has no such attribute
        KeyError, IndexError: If a mapping key or index does not exist
    """
    if isinstance(target, MutableMapping):
        target[field_name] = value
        return
    if isinstance(field_name, int):
        if not isinstance(target, MutableSequence):
            raise TypeError(f"Cannot index {type(target).__name__} with {field_name}")
        target[field_name] = value
        return
    if not hasattr(target, field_name):
        raise AttributeError(f"{type(target).__name__} has no field {field_name!r}")
    setattr(target, field_name, value)


# =============================================================================
# Hook envelopes
# =============================================================================


@dataclass
class HookEvent:
    """Mutable envelope passed to middleware hooks.

    A hook continues the chain by calling ``next()``. Leaving without
    calling it halts the chain at that hook.
    """

    _continued: bool = field(default=False, init=False, repr=False)

    def next(self) -> None:
        """Let downstream hooks and the original caller proceed."""
        self._continued = True

    @property
    def continued(self) -> bool:
        return self._continued

    def reset_continuation(self) -> None:
        self._continued = False

    def get(self, path: PathLike) -> Any:
        """Read a nested field addressed relative to the event."""
        obj: Any = self
        for segment in split_path(path):
            obj = _step(obj, segment)
        return obj

    def replace(self, path: PathLike, value: Any) -> None:
        """Swap one nested field addressed relative to the event.

        Example:
            e.replace("anime_collection.media_list_collection.lists.0"
                      ".entries.2.media.banner_image", url)
        """
        segments = split_path(path)
        if not segments:
            raise ValueError("Empty replace path")
        parent = self.get(segments[:-1]) if len(segments) > 1 else self
        replace(parent, segments[-1], value)


@dataclass
class AnimeFetchedEvent(HookEvent):
    """A single media record was fetched."""

    anime: Media | None = None


@dataclass
class AnimeCollectionFetchedEvent(HookEvent):
    """The user's anime collection was fetched and is about to be returned."""

    anime_collection: AnimeCollection | None = None


@dataclass
class RawAnimeCollectionFetchedEvent(HookEvent):
    """The raw (unprocessed) anime collection was fetched."""

    anime_collection: AnimeCollection | None = None


EVENT_TYPES: dict[HookPoint, type[HookEvent]] = {
    HookPoint.ANIME_FETCHED: AnimeFetchedEvent,
    HookPoint.ANIME_COLLECTION_FETCHED: AnimeCollectionFetchedEvent,
    HookPoint.RAW_ANIME_COLLECTION_FETCHED: RawAnimeCollectionFetchedEvent,
}
