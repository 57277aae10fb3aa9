"""Observer wiring between the session controller and its subscribers."""

from __future__ import annotations

import logging
from collections import defaultdict
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    TICK = "tick"
    STARTED = "started"
    STOPPED = "stopped"
    RESET = "reset"
    REVERSE_COUNTDOWN_STARTED = "reverse_countdown_started"
    REVERSE_COUNTDOWN_ENDED = "reverse_countdown_ended"
    OVERRUN_TICK = "overrun_tick"


class EventBus:
    """Synchronous, ordered delivery on the caller's thread.

    Subscribers run in registration order. A failing subscriber is logged
    and skipped so the remaining subscribers still see the event.
    """

    def __init__(self):
        self._subscribers: dict[SessionEvent, list[Callable]] = defaultdict(list)

    def subscribe(self, event: SessionEvent, callback: Callable) -> None:
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: SessionEvent, callback: Callable) -> bool:
        try:
            self._subscribers[event].remove(callback)
            return True
        except ValueError:
            return False

    def emit(self, event: SessionEvent, *args) -> None:
        # Copy so a subscriber may unsubscribe while being notified
        for callback in list(self._subscribers[event]):
            try:
                callback(*args)
            except Exception:
                logger.exception(f"Subscriber {callback!r} failed on {event.value}")
