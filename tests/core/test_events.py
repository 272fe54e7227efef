"""Tests for the event bus."""

from __future__ import annotations

import pytest

from orion.core.events import Event, EventBus

pytestmark = pytest.mark.unit


class TestTopicRouting:
    def test_session_topic_and_wildcard(self):
        bus = EventBus()
        s1: list[Event] = []
        s2: list[Event] = []
        everything: list[Event] = []
        bus.subscribe("s1", s1.append)
        bus.subscribe("s2", s2.append)
        bus.subscribe("*", everything.append)

        bus.publish_event(Event(type="message_started", session_id="s1"))
        bus.publish_event(Event(type="message_started", session_id="s2"))

        assert [e.session_id for e in s1] == ["s1"]
        assert [e.session_id for e in s2] == ["s2"]
        assert [e.session_id for e in everything] == ["s1", "s2"]

    def test_event_without_session_only_reaches_wildcard(self):
        bus = EventBus()
        scoped: list[Event] = []
        everything: list[Event] = []
        bus.subscribe("s1", scoped.append)
        bus.subscribe("*", everything.append)

        delivered = bus.publish("system_notice", text="hello")

        assert delivered == 1
        assert scoped == []
        assert everything[0].payload == {"text": "hello"}

    def test_delivery_in_subscription_order(self):
        bus = EventBus()
        order: list[str] = []
        bus.subscribe("s1", lambda e: order.append("first"))
        bus.subscribe("*", lambda e: order.append("second"))
        bus.subscribe("s1", lambda e: order.append("third"))

        bus.publish("x", session_id="s1")

        assert order == ["first", "second", "third"]

    def test_no_replay_for_late_subscribers(self):
        bus = EventBus()
        bus.publish("early", session_id="s1")
        received: list[Event] = []
        bus.subscribe("s1", received.append)

        assert received == []


class TestUnsubscribe:
    def test_unsubscribe_stops_delivery(self):
        bus = EventBus()
        received: list[Event] = []
        unsubscribe = bus.subscribe("s1", received.append)

        unsubscribe()
        bus.publish("x", session_id="s1")

        assert received == []
        assert bus.subscriber_count == 0

    def test_unsubscribe_is_idempotent(self):
        bus = EventBus()
        unsubscribe = bus.subscribe("s1", lambda e: None)
        bus.subscribe("s1", lambda e: None)

        unsubscribe()
        unsubscribe()

        assert bus.subscriber_count == 1

    def test_removes_only_its_own_registration(self):
        bus = EventBus()
        received: list[Event] = []
        first = bus.subscribe("s1", received.append)
        bus.subscribe("s1", received.append)

        first()
        bus.publish("x", session_id="s1")

        assert len(received) == 1

    def test_handler_may_unsubscribe_during_delivery(self):
        bus = EventBus()
        received: list[str] = []
        unsubscribe = None

        def once(event: Event) -> None:
            received.append(event.type)
            unsubscribe()

        unsubscribe = bus.subscribe("*", once)
        bus.publish("a")
        bus.publish("b")

        assert received == ["a"]


class TestHandlerFailure:
    def test_raising_handler_does_not_block_others(self):
        bus = EventBus()
        received: list[Event] = []

        def broken(event: Event) -> None:
            raise RuntimeError("boom")

        bus.subscribe("*", broken)
        bus.subscribe("*", received.append)

        delivered = bus.publish("x", session_id="s1")

        assert delivered == 2
        assert len(received) == 1


class TestEventShape:
    def test_to_dict_flattens_payload(self):
        event = Event(type="approval_requested", session_id="s1", payload={"tool": "web.fetch"})

        data = event.to_dict()

        assert data["type"] == "approval_requested"
        assert data["session_id"] == "s1"
        assert data["tool"] == "web.fetch"
        assert "timestamp" in data

    def test_to_dict_omits_missing_session(self):
        assert "session_id" not in Event(type="x").to_dict()


class TestDeliverySnapshot:
    def test_handler_removed_mid_publish_still_receives_event(self):
        bus = EventBus()
        received: list[str] = []
        unsubscribe_second = None

        def first(event: Event) -> None:
            unsubscribe_second()

        bus.subscribe("*", first)
        unsubscribe_second = bus.subscribe("*", lambda e: received.append(e.type))

        bus.publish("a")
        bus.publish("b")

        assert received == ["a"]

    def test_handler_added_mid_publish_waits_for_next_event(self):
        bus = EventBus()
        received: list[str] = []

        def first(event: Event) -> None:
            if event.type == "a":
                bus.subscribe("*", lambda e: received.append(e.type))

        bus.subscribe("*", first)
        bus.publish("a")
        bus.publish("b")

        assert received == ["b"]
