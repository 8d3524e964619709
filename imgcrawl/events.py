"""Append-only crawl event log with synchronous subscribers."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .types import CrawlEvent, EventSeverity

LOGGER = logging.getLogger(__name__)

EventListener = Callable[[CrawlEvent], None]

_LOG_LEVEL_BY_SEVERITY = {
    EventSeverity.INFO: logging.INFO,
    EventSeverity.SUCCESS: logging.INFO,
    EventSeverity.WARNING: logging.WARNING,
    EventSeverity.ERROR: logging.ERROR,
}


class EventLog:
    """Timestamped crawl events, mirrored to the `logging` module.

    Listeners run on the thread that appends the event. A listener that raises
    is logged and skipped; it never interrupts the crawl.
    """

    def __init__(self) -> None:
        self._events: list[CrawlEvent] = []
        self._listeners: list[EventListener] = []
        self._lock = threading.Lock()

    def append(
        self,
        message: str,
        severity: EventSeverity | str = EventSeverity.INFO,
        *,
        url: str | None = None,
    ) -> CrawlEvent:
        event = CrawlEvent(message=message, severity=EventSeverity(severity), url=url)
        with self._lock:
            self._events.append(event)
            listeners = list(self._listeners)

        if url:
            LOGGER.log(_LOG_LEVEL_BY_SEVERITY[event.severity], "%s (%s)", message, url)
        else:
            LOGGER.log(_LOG_LEVEL_BY_SEVERITY[event.severity], "%s", message)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                LOGGER.exception("Event listener %r failed", listener)
        return event

    def info(self, message: str, *, url: str | None = None) -> CrawlEvent:
        return self.append(message, EventSeverity.INFO, url=url)

    def success(self, message: str, *, url: str | None = None) -> CrawlEvent:
        return self.append(message, EventSeverity.SUCCESS, url=url)

    def warning(self, message: str, *, url: str | None = None) -> CrawlEvent:
        return self.append(message, EventSeverity.WARNING, url=url)

    def error(self, message: str, *, url: str | None = None) -> CrawlEvent:
        return self.append(message, EventSeverity.ERROR, url=url)

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""

        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def events(self, severity: EventSeverity | str | None = None) -> list[CrawlEvent]:
        """Return a copy of the log, optionally filtered by severity."""

        with self._lock:
            events = list(self._events)
        if severity is None:
            return events
        wanted = EventSeverity(severity)
        return [event for event in events if event.severity == wanted]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


__all__ = ["EventListener", "EventLog"]
