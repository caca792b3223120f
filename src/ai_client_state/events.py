"""Event bus for state change notifications.

Usage:
    bus = EventBus()

    def on_message() -> None:
        print(manager.get_active_conversation_messages())

    unsubscribe = bus.subscribe(Events.MESSAGE, on_message)
    bus.notify(Events.MESSAGE)
    unsubscribe()

Subscribers receive no payload; they re-read state through the manager's
accessors. Subscribers of one event kind run synchronously, in subscription
order, inside ``notify``.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
import itertools
import logging

LOGGER = logging.getLogger(__name__)

Subscriber = Callable[[], None]


class Events(str, Enum):
    """Kinds of state change a subscriber can listen for."""

    MESSAGE = "message"
    ACTIVE_CONVERSATION = "active-conversation"
    IN_PROGRESS = "in-progress"
    CONVERSATIONS = "conversations"
    INITIALIZING_MESSAGES = "initializing-messages"
    INIT_LIMITATION = "init-limitation"


class EventBus:
    """Typed publish/subscribe registry keyed by ``Events``."""

    def __init__(self) -> None:
        # dicts keep insertion order, which is the delivery order.
        self._subscribers: dict[Events, dict[int, Subscriber]] = {
            event: {} for event in Events
        }
        self._ids = itertools.count(1)

    def subscribe(self, event: Events, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for ``event`` and return its unsubscribe closure."""
        event = Events(event)
        subscription_id = next(self._ids)
        self._subscribers[event][subscription_id] = callback
        LOGGER.debug(
            "events.subscribed",
            extra={
                "event": "events.subscribed",
                "kind": event.value,
                "subscription_id": subscription_id,
            },
        )

        def unsubscribe() -> None:
            self.unsubscribe(event, subscription_id)

        return unsubscribe

    def unsubscribe(self, event: Events, subscription_id: int) -> None:
        """Remove a subscription; unknown ids are ignored."""
        if self._subscribers[Events(event)].pop(subscription_id, None) is not None:
            LOGGER.debug(
                "events.unsubscribed",
                extra={
                    "event": "events.unsubscribed",
                    "kind": Events(event).value,
                    "subscription_id": subscription_id,
                },
            )

    def notify(self, event: Events) -> None:
        """Invoke every subscriber of ``event``; a failing subscriber is logged and skipped."""
        event = Events(event)
        for subscription_id, callback in list(self._subscribers[event].items()):
            try:
                callback()
            except Exception:
                LOGGER.exception(
                    "events.subscriber.failed",
                    extra={
                        "event": "events.subscriber.failed",
                        "kind": event.value,
                        "subscription_id": subscription_id,
                    },
                )

    def subscriber_count(self, event: Events) -> int:
        return len(self._subscribers[Events(event)])

    def clear(self, event: Events | None = None) -> None:
        """Clear subscribers.

        Args:
            event: Specific event kind to clear, or None for all
        """
        if event is not None:
            self._subscribers[Events(event)].clear()
        else:
            for subscribers in self._subscribers.values():
                subscribers.clear()
