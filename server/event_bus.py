"""
Channel-registry EventBus implementation.

This module provides the EventBus used between the plugin runtime and the
UI client. Listeners are keyed by (channel, scope). A listener with an empty
scope hears every plugin; a scoped listener hears only its plugin plus
broadcast events. The SSE endpoint consumes per-connection queues to stream
runtime -> client events.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass

from core import Channel, Listener, NamedEvent, channel_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subscription:
    """Handle returned by subscribe().

    Attributes:
        id: Bus-assigned identifier, increasing in subscription order
        channel: Wire name of the channel
        scope: Plugin id filter, empty for all plugins
    """

    id: int
    channel: str
    scope: str = ""


@dataclass
class _QueueSubscriber:
    queue: "asyncio.Queue[NamedEvent]"
    scope: str
    channels: frozenset[str] | None
    include_inbound: bool


def scope_matches(scope: str, plugin_id: str) -> bool:
    """True if a listener with ``scope`` should hear an event from ``plugin_id``."""
    return not scope or not plugin_id or scope == plugin_id


class PluginEventBus:
    """
    EventBus delivering named events to callback listeners and SSE queues.

    Delivery is synchronous, at most once per listener, with no retry and
    no buffering: an event nobody listens to is dropped.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, dict[str, dict[int, Listener]]] = {}
        self._queues: list[_QueueSubscriber] = []
        self._ids = itertools.count(1)

    def subscribe(
        self, channel: Channel | str, listener: Listener, scope: str = ""
    ) -> Subscription:
        """
        Register a listener.

        Args:
            channel: Channel to listen on
            listener: Callable receiving each matching NamedEvent
            scope: Plugin id to listen to, empty for all plugins

        Returns:
            Subscription handle for unsubscribe()
        """
        subscription = Subscription(
            id=next(self._ids), channel=channel_name(channel), scope=scope or ""
        )
        scopes = self._listeners.setdefault(subscription.channel, {})
        scopes.setdefault(subscription.scope, {})[subscription.id] = listener
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a listener. Unknown subscriptions are ignored."""
        scopes = self._listeners.get(subscription.channel, {})
        listeners = scopes.get(subscription.scope)
        if listeners is None:
            return
        listeners.pop(subscription.id, None)
        if not listeners:
            scopes.pop(subscription.scope, None)
        if not scopes:
            self._listeners.pop(subscription.channel, None)

    def publish(self, event: NamedEvent) -> int:
        """
        Deliver an event to every matching listener and queue.

        Returns:
            Number of listeners and queues the event was delivered to
        """
        delivered = 0
        for subscription_id, listener in self._matching(event):
            delivered += 1
            try:
                listener(event)
            except Exception as e:
                logger.warning(
                    "Listener %d on %s failed: %s", subscription_id, event.channel, e
                )

        for subscriber in list(self._queues):
            if event.is_inbound and not subscriber.include_inbound:
                continue
            if subscriber.channels is not None and event.channel not in subscriber.channels:
                continue
            if not scope_matches(subscriber.scope, event.plugin_id):
                continue
            subscriber.queue.put_nowait(event)
            delivered += 1

        if not delivered:
            logger.debug(
                "Dropped %s event from %s: no listeners",
                event.channel,
                event.plugin_id or "broadcast",
            )
        return delivered

    def subscribe_queue(
        self,
        scope: str = "",
        channels: set[str] | None = None,
        include_inbound: bool = False,
    ) -> "asyncio.Queue[NamedEvent]":
        """
        Create a new subscription queue.

        Args:
            scope: Plugin id filter, empty for all plugins
            channels: Channel names to receive, None for all
            include_inbound: Also receive client -> runtime events

        Returns:
            A queue that will receive matching published events
        """
        queue: asyncio.Queue[NamedEvent] = asyncio.Queue()
        self._queues.append(
            _QueueSubscriber(
                queue=queue,
                scope=scope or "",
                channels=frozenset(channels) if channels is not None else None,
                include_inbound=include_inbound,
            )
        )
        return queue

    def unsubscribe_queue(self, queue: "asyncio.Queue[NamedEvent]") -> None:
        """
        Remove a subscription queue.

        Args:
            queue: The queue to unsubscribe
        """
        self._queues = [s for s in self._queues if s.queue is not queue]

    def listener_count(self, channel: Channel | str) -> int:
        scopes = self._listeners.get(channel_name(channel), {})
        return sum(len(listeners) for listeners in scopes.values())

    def _matching(self, event: NamedEvent) -> list[tuple[int, Listener]]:
        scopes = self._listeners.get(event.channel)
        if not scopes:
            return []
        if event.is_broadcast:
            groups = list(scopes.values())
        else:
            groups = [scopes.get("", {}), scopes.get(event.plugin_id, {})]
        matched = [item for group in groups for item in group.items()]
        matched.sort(key=lambda item: item[0])
        return matched


# Global event bus instance
_event_bus: PluginEventBus | None = None


def get_event_bus() -> PluginEventBus:
    """Get the global event bus instance, creating it if necessary."""
    global _event_bus
    if _event_bus is None:
        _event_bus = PluginEventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Drop the global bus (host stop and tests)."""
    global _event_bus
    _event_bus = None
