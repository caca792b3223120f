"""Tests for the synchronous event bus."""

from __future__ import annotations

import unittest

from ai_client_state.events import EventBus, Events


class EventBusTests(unittest.TestCase):
    """Validate ordering, isolation and unsubscription."""

    def test_subscribers_run_in_subscription_order(self) -> None:
        bus = EventBus()
        calls: list[str] = []
        bus.subscribe(Events.MESSAGE, lambda: calls.append("first"))
        bus.subscribe(Events.MESSAGE, lambda: calls.append("second"))
        bus.subscribe(Events.MESSAGE, lambda: calls.append("third"))

        bus.notify(Events.MESSAGE)

        self.assertEqual(calls, ["first", "second", "third"])

    def test_only_subscribers_of_notified_kind_run(self) -> None:
        bus = EventBus()
        calls: list[str] = []
        bus.subscribe(Events.MESSAGE, lambda: calls.append("message"))
        bus.subscribe(Events.IN_PROGRESS, lambda: calls.append("progress"))

        bus.notify(Events.IN_PROGRESS)

        self.assertEqual(calls, ["progress"])

    def test_throwing_subscriber_does_not_block_others(self) -> None:
        bus = EventBus()
        calls: list[str] = []

        def broken() -> None:
            raise ValueError("subscriber bug")

        bus.subscribe(Events.MESSAGE, broken)
        bus.subscribe(Events.MESSAGE, lambda: calls.append("after"))

        with self.assertLogs("ai_client_state.events", level="ERROR") as logs:
            bus.notify(Events.MESSAGE)

        self.assertEqual(calls, ["after"])
        self.assertTrue(any("events.subscriber.failed" in line for line in logs.output))

    def test_unsubscribe_removes_only_that_registration(self) -> None:
        bus = EventBus()
        calls: list[str] = []
        handler = lambda: calls.append("shared")  # noqa: E731
        unsubscribe_first = bus.subscribe(Events.CONVERSATIONS, handler)
        bus.subscribe(Events.CONVERSATIONS, handler)

        unsubscribe_first()
        unsubscribe_first()
        bus.notify(Events.CONVERSATIONS)

        self.assertEqual(calls, ["shared"])
        self.assertEqual(bus.subscriber_count(Events.CONVERSATIONS), 1)

    def test_subscriber_may_unsubscribe_during_notify(self) -> None:
        bus = EventBus()
        calls: list[str] = []
        unsubscribe = None

        def once() -> None:
            calls.append("once")
            assert unsubscribe is not None
            unsubscribe()

        unsubscribe = bus.subscribe(Events.MESSAGE, once)
        bus.subscribe(Events.MESSAGE, lambda: calls.append("always"))

        bus.notify(Events.MESSAGE)
        bus.notify(Events.MESSAGE)

        self.assertEqual(calls, ["once", "always", "always"])

    def test_string_event_names_are_accepted(self) -> None:
        bus = EventBus()
        calls: list[str] = []
        bus.subscribe("init-limitation", lambda: calls.append("limitation"))

        bus.notify(Events.INIT_LIMITATION)

        self.assertEqual(calls, ["limitation"])

    def test_clear_single_kind_and_all(self) -> None:
        bus = EventBus()
        bus.subscribe(Events.MESSAGE, lambda: None)
        bus.subscribe(Events.IN_PROGRESS, lambda: None)

        bus.clear(Events.MESSAGE)
        self.assertEqual(bus.subscriber_count(Events.MESSAGE), 0)
        self.assertEqual(bus.subscriber_count(Events.IN_PROGRESS), 1)

        bus.clear()
        self.assertEqual(bus.subscriber_count(Events.IN_PROGRESS), 0)


if __name__ == "__main__":
    unittest.main()
