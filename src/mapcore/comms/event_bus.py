"""EventBus: thread-safe pub/sub for layer registry notifications.

The loader publishes here whenever a registry entry is created or
changes, so legend, layer-manager and filter panels know to re-read the
registry. Subscribers receive plain dict messages on their own queue.
"""

from __future__ import annotations

import queue
import threading

LAYER_REGISTERED = "layer_registered"
LAYER_STYLE_CHANGED = "layer_style_changed"
LAYER_VISIBILITY_CHANGED = "layer_visibility_changed"
LAYER_CLUSTER_RESOLVED = "layer_cluster_resolved"
LAYER_REMOVED = "layer_removed"
LAYERS_LOADED = "layers_loaded"


class EventBus:
    """Simple thread-safe pub/sub for pushing events to subscribers."""

    def __init__(self, maxsize: int = 100) -> None:
        self._lock = threading.Lock()
        self._maxsize = maxsize
        self._subscribers: list[tuple[queue.Queue, str | None]] = []

    def subscribe(self, event_filter: str | None = None) -> queue.Queue:
        """Subscribe to events. Returns a Queue that receives matching events.

        ``event_filter`` is a type prefix: ``"layer_"`` receives every
        per-layer event, ``None`` receives everything.
        """
        q: queue.Queue = queue.Queue(maxsize=self._maxsize)
        with self._lock:
            self._subscribers.append((q, event_filter))
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            self._subscribers = [
                (sub, flt) for sub, flt in self._subscribers if sub is not q
            ]

    def publish(self, event_type: str, data: dict | None = None) -> None:
        msg = {"type": event_type}
        if data is not None:
            msg["data"] = data
        with self._lock:
            for q, event_filter in self._subscribers:
                if event_filter and not event_type.startswith(event_filter):
                    continue
                try:
                    q.put_nowait(msg)
                except queue.Full:
                    # Drop oldest so the latest registry state always lands
                    try:
                        q.get_nowait()
                    except queue.Empty:
                        pass
                    try:
                        q.put_nowait(msg)
                    except queue.Full:
                        pass
