"""EventBus for feed, cache and sync notifications."""

import logging
from typing import Callable, FrozenSet, List, Tuple

from .base import BaseEvent, EventType

logger = logging.getLogger(__name__)

Handler = Callable[[BaseEvent], None]


class EventBus:
    """Broadcast events to subscribed handlers, optionally filtered by type.

    A failing handler is logged and does not stop delivery to the others.
    """

    def __init__(self):
        self._subscriptions: List[Tuple[Handler, FrozenSet[EventType]]] = []

    def subscribe(self, handler: Handler, *event_types: EventType) -> None:
        """Subscribe a handler, replacing any earlier subscription of it.

        Args:
            handler: Callable that accepts a BaseEvent
            event_types: Only deliver these types (all types when empty)
        """
        self.unsubscribe(handler)
        self._subscriptions.append((handler, frozenset(event_types)))

    def unsubscribe(self, handler: Handler) -> None:
        self._subscriptions = [(h, types) for h, types in self._subscriptions if h != handler]

    def emit(self, event: BaseEvent) -> None:
        for handler, types in list(self._subscriptions):
            if types and event.event_type not in types:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", event.event_type.name)

    def has_handlers(self) -> bool:
        return bool(self._subscriptions)

    def handler_count(self) -> int:
        return len(self._subscriptions)
