# qm_core/notifications/hub.py
from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List

from django.utils.timezone import now

from qm_core.notifications.base import ROOM_ALL, Audience, Broadcast

logger = logging.getLogger(__name__)

Listener = Callable[[Broadcast], None]


class InProcessNotifier:
    """
    Room-keyed listener registry (display screens, staff dashboards, a push
    gateway...). Listeners of the "all" room receive every broadcast.

    Usage:
        @notifier.subscribe("org:<uuid>")
        def on_event(broadcast): ...
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, room: str):
        def _decorator(fn: Listener) -> Listener:
            self.add_listener(room, fn)
            return fn
        return _decorator

    def add_listener(self, room: str, listener: Listener) -> None:
        with self._lock:
            self._listeners[room].append(listener)

    def remove_listener(self, room: str, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners.get(room, []):
                self._listeners[room].remove(listener)

    def _targets(self, room: str) -> List[Listener]:
        with self._lock:
            targets = list(self._listeners.get(room, []))
            if room != ROOM_ALL:
                targets += self._listeners.get(ROOM_ALL, [])
        return targets

    def publish(self, audience: Audience, event: str, payload: Dict[str, Any]) -> None:
        broadcast = Broadcast(room=audience.room, event=event, payload=payload, sent_at=now())

        for listener in self._targets(broadcast.room):
            try:
                listener(broadcast)
            except Exception:
                # one broken subscriber must not starve the others
                logger.exception("Listener %r failed for %s on %s", listener, event, broadcast.room)

        logger.debug("Broadcast %s to %s", event, broadcast.room)


class RecordingNotifier:
    """
    Keeps every broadcast in memory. Used by tests and diagnostics.
    """

    def __init__(self) -> None:
        self.broadcasts: List[Broadcast] = []

    def publish(self, audience: Audience, event: str, payload: Dict[str, Any]) -> None:
        self.broadcasts.append(Broadcast(room=audience.room, event=event, payload=payload, sent_at=now()))

    @property
    def events(self) -> List[str]:
        return [b.event for b in self.broadcasts]

    def clear(self) -> None:
        self.broadcasts.clear()
