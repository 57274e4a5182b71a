"""Unit tests for EventBus: registry notifications over thread-safe queues.

Tests subscribe/unsubscribe, publish/receive, type-prefix filters, queue
overflow (drop oldest) and concurrent publishing.
"""
from __future__ import annotations

import queue
import threading

import pytest

from mapcore.comms.event_bus import (
    LAYER_REGISTERED,
    LAYER_VISIBILITY_CHANGED,
    LAYERS_LOADED,
    EventBus,
)


@pytest.mark.unit
class TestEventBusBasics:
    """Core subscribe/publish/unsubscribe functionality."""

    def test_subscribe_returns_queue(self):
        bus = EventBus()
        q = bus.subscribe()
        assert isinstance(q, queue.Queue)

    def test_publish_delivers_to_subscriber(self):
        bus = EventBus()
        q = bus.subscribe()
        bus.publish(LAYER_REGISTERED, {"layer_id": "a"})
        msg = q.get_nowait()
        assert msg["type"] == "layer_registered"
        assert msg["data"]["layer_id"] == "a"

    def test_publish_without_data(self):
        bus = EventBus()
        q = bus.subscribe()
        bus.publish("ping")
        msg = q.get_nowait()
        assert msg["type"] == "ping"
        assert "data" not in msg

    def test_multiple_subscribers(self):
        bus = EventBus()
        q1 = bus.subscribe()
        q2 = bus.subscribe()
        bus.publish(LAYERS_LOADED, {"count": 2})
        assert q1.get_nowait()["type"] == LAYERS_LOADED
        assert q2.get_nowait()["type"] == LAYERS_LOADED

    def test_unsubscribe_stops_delivery(self):
        bus = EventBus()
        q = bus.subscribe()
        bus.unsubscribe(q)
        bus.publish("after_unsub")
        assert q.empty()

    def test_unsubscribe_nonexistent_is_safe(self):
        bus = EventBus()
        bus.unsubscribe(queue.Queue())


@pytest.mark.unit
class TestEventBusFilter:
    """Type-prefix filtering."""

    def test_prefix_filter_keeps_per_layer_events(self):
        bus = EventBus()
        q = bus.subscribe("layer_")
        bus.publish(LAYER_REGISTERED, {"layer_id": "a"})
        bus.publish(LAYER_VISIBILITY_CHANGED, {"layer_id": "a", "visible": True})
        bus.publish(LAYERS_LOADED, {"count": 1})
        types = [q.get_nowait()["type"], q.get_nowait()["type"]]
        assert types == [LAYER_REGISTERED, LAYER_VISIBILITY_CHANGED]
        assert q.empty()

    def test_no_filter_receives_everything(self):
        bus = EventBus()
        q = bus.subscribe()
        bus.publish(LAYER_REGISTERED)
        bus.publish(LAYERS_LOADED)
        assert q.qsize() == 2


@pytest.mark.unit
class TestEventBusOverflow:
    """Queue overflow behavior: drop the oldest message when full."""

    def test_default_maxsize(self):
        bus = EventBus()
        assert bus.subscribe().maxsize == 100

    def test_overflow_drops_oldest(self):
        bus = EventBus(maxsize=10)
        q = bus.subscribe()
        for i in range(10):
            bus.publish("fill", {"seq": i})
        assert q.full()

        bus.publish("overflow", {"seq": 10})

        assert q.get_nowait()["data"]["seq"] == 1

    def test_overflow_keeps_latest_event(self):
        bus = EventBus(maxsize=5)
        q = bus.subscribe()
        for i in range(20):
            bus.publish("fill", {"seq": i})
        bus.publish(LAYER_REGISTERED, {"layer_id": "last"})

        msgs = []
        while not q.empty():
            msgs.append(q.get_nowait())
        assert len(msgs) == 5
        assert msgs[-1]["data"]["layer_id"] == "last"


@pytest.mark.unit
class TestEventBusThreadSafety:
    """Concurrent publish from multiple threads."""

    def test_concurrent_publish(self):
        bus = EventBus(maxsize=1000)
        q = bus.subscribe()
        errors = []

        def publisher(thread_id: int):
            try:
                for i in range(50):
                    bus.publish("thread_event", {"tid": thread_id, "seq": i})
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=publisher, args=(t,)) for t in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        assert q.qsize() == 200
