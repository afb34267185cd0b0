"""
Passport — Event Bus

In-memory publication of Issue / Withdraw events. Subscribers are async
callbacks; a slow or failing subscriber is logged and skipped, and never
undoes the state change that produced the event.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from collections.abc import Callable, Coroutine
from typing import Any

import structlog

from passport.systems.issuance.types import PassportEvent, PassportEventType

logger = structlog.get_logger("passport.systems.issuance.event_bus")

# Callback signature: async def handler(event: PassportEvent) -> None
EventCallback = Callable[[PassportEvent], Coroutine[Any, Any, None]]

# Maximum time a callback gets before we log a warning and move on
_CALLBACK_TIMEOUT_S: float = 1.0

# Maximum recent events to keep in the ring buffer per event type
_RECENT_BUFFER_SIZE: int = 100


class EventBus:
    def __init__(self) -> None:
        self._logger = logger.bind(component="event_bus")

        # Per-type callback registrations
        self._subscribers: dict[PassportEventType, list[EventCallback]] = defaultdict(list)
        # Catch-all subscribers (receive every event)
        self._global_subscribers: list[EventCallback] = []

        # Ring buffers for recent event history
        self._recent: dict[PassportEventType, deque[PassportEvent]] = defaultdict(
            lambda: deque(maxlen=_RECENT_BUFFER_SIZE)
        )

        self._total_emitted: int = 0
        self._total_callback_failures: int = 0

    # ─── Subscription ────────────────────────────────────────────────

    def subscribe(self, event_type: PassportEventType, callback: EventCallback) -> None:
        """Register a callback for a specific event type."""
        self._subscribers[event_type].append(callback)

    def subscribe_all(self, callback: EventCallback) -> None:
        """Register a callback that receives every event."""
        self._global_subscribers.append(callback)

    # ─── Emission ────────────────────────────────────────────────────

    async def emit(self, event: PassportEvent) -> None:
        self._total_emitted += 1
        self._recent[event.event_type].append(event)

        callbacks = list(self._subscribers.get(event.event_type, []))
        callbacks.extend(self._global_subscribers)

        for callback in callbacks:
            try:
                await asyncio.wait_for(callback(event), timeout=_CALLBACK_TIMEOUT_S)
            except TimeoutError:
                self._total_callback_failures += 1
                self._logger.warning(
                    "event_callback_timeout",
                    event_type=event.event_type.value,
                    callback=getattr(callback, "__name__", str(callback)),
                )
            except Exception as exc:
                self._total_callback_failures += 1
                self._logger.error(
                    "event_callback_error",
                    event_type=event.event_type.value,
                    error=str(exc),
                )

    # ─── Query ───────────────────────────────────────────────────────

    def recent(self, event_type: PassportEventType, limit: int = 10) -> list[PassportEvent]:
        """Return recent events of a given type (most recent first)."""
        buf = self._recent.get(event_type)
        if not buf:
            return []
        items = list(buf)
        items.reverse()
        return items[:limit]

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_emitted": self._total_emitted,
            "callback_failures": self._total_callback_failures,
            "subscriber_count": sum(
                len(v) for v in self._subscribers.values()
            ) + len(self._global_subscribers),
        }
