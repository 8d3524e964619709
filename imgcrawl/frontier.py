"""Breadth-first frontier with visited tracking, depth bounds, and loop suppression."""

from __future__ import annotations

from collections import deque
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .constants import LOOP_QUEUE_THRESHOLD, LOOP_UNIQUE_RATIO
from .errors import FrontierLoopDetected
from .types import FrontierItem
from .url import loop_signature, normalize_url, resolve_url

LOGGER = logging.getLogger(__name__)


class EnqueueStatus(str, Enum):
    """Result status for frontier enqueue attempts."""

    ENQUEUED = "enqueued"
    SKIPPED_INVALID_URL = "skipped_invalid_url"
    SKIPPED_DEPTH = "skipped_depth"
    SKIPPED_VISITED = "skipped_visited"
    SKIPPED_PENDING = "skipped_pending"
    SKIPPED_CLOSED = "skipped_closed"


@dataclass(frozen=True, slots=True)
class EnqueueResult:
    """Outcome of one enqueue attempt."""

    status: EnqueueStatus
    normalized_url: str | None = None
    item: FrontierItem | None = None

    @property
    def accepted(self) -> bool:
        return self.status == EnqueueStatus.ENQUEUED


@dataclass(frozen=True, slots=True)
class LoopSuppression:
    """Record of one loop-suppression trim."""

    size_before: int
    size_after: int
    unique_entries: int
    cleared: bool

    def to_error(self) -> FrontierLoopDetected:
        action = "cleared" if self.cleared else f"trimmed to {self.size_after} unique entries"
        return FrontierLoopDetected(
            f"Possible link loop: {self.unique_entries} unique of {self.size_before} "
            f"pending URLs; queue {action}"
        )


class Frontier:
    """Visited set plus FIFO pending queue for one crawl session.

    - Keys are canonical URLs from `normalize_url`.
    - A key is never enqueued twice: it is rejected while pending, while
      in flight (dequeued but not yet marked visited), once visited, and once
      recorded as the target of a redirect.
    - Entries deeper than `max_depth` are dropped at enqueue time.
    - The lock only guards against readers/`clear()` on other threads; all
      writes come from the single crawl loop.
    """

    def __init__(
        self,
        max_depth: int,
        *,
        loop_threshold: int = LOOP_QUEUE_THRESHOLD,
        loop_unique_ratio: float = LOOP_UNIQUE_RATIO,
    ) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be >= 1")

        self.max_depth = max_depth
        self.loop_threshold = loop_threshold
        self.loop_unique_ratio = loop_unique_ratio

        self._queue: deque[FrontierItem] = deque()
        self._pending_keys: set[str] = set()
        self._visited: set[str] = set()
        self._redirect_keys: set[str] = set()
        self._in_flight: str | None = None
        self._lock = threading.Lock()
        self._closed = False

        self._enqueued_count = 0
        self._dequeued_count = 0
        self._skipped_visited_count = 0
        self._skipped_pending_count = 0
        self._skipped_depth_count = 0
        self._skipped_invalid_count = 0
        self._redirect_count = 0
        self._loop_trims = 0
        self._loop_dropped = 0

    def seed(self, url: str) -> EnqueueResult:
        """Enqueue the seed URL at depth 1."""

        return self.enqueue(url, depth=1)

    def enqueue(self, url: str, depth: int, *, referrer: str | None = None) -> EnqueueResult:
        """Attempt to append one URL to the pending queue."""

        resolved = resolve_url(url)
        normalized = normalize_url(resolved)
        if resolved is None or normalized is None:
            with self._lock:
                self._skipped_invalid_count += 1
            return EnqueueResult(EnqueueStatus.SKIPPED_INVALID_URL)

        if depth > self.max_depth:
            with self._lock:
                self._skipped_depth_count += 1
            return EnqueueResult(EnqueueStatus.SKIPPED_DEPTH, normalized_url=normalized)

        with self._lock:
            if self._closed:
                return EnqueueResult(EnqueueStatus.SKIPPED_CLOSED, normalized_url=normalized)

            if normalized in self._visited or normalized in self._redirect_keys or normalized == self._in_flight:
                self._skipped_visited_count += 1
                return EnqueueResult(EnqueueStatus.SKIPPED_VISITED, normalized_url=normalized)

            if normalized in self._pending_keys:
                self._skipped_pending_count += 1
                return EnqueueResult(EnqueueStatus.SKIPPED_PENDING, normalized_url=normalized)

            item = FrontierItem(key=normalized, url=resolved, depth=depth, referrer=referrer)
            self._queue.append(item)
            self._pending_keys.add(normalized)
            self._enqueued_count += 1

        return EnqueueResult(EnqueueStatus.ENQUEUED, normalized_url=normalized, item=item)

    def enqueue_many(
        self,
        urls: Iterable[str],
        depth: int,
        *,
        referrer: str | None = None,
    ) -> list[EnqueueResult]:
        """Attempt to enqueue multiple URLs, preserving input order."""

        return [self.enqueue(url, depth, referrer=referrer) for url in urls]

    def dequeue(self) -> FrontierItem | None:
        """Pop the head of the queue; the item stays in flight until marked visited."""

        with self._lock:
            if not self._queue:
                return None
            item = self._queue.popleft()
            self._pending_keys.discard(item.key)
            self._in_flight = item.key
            self._dequeued_count += 1
            return item

    def mark_visited(self, key: str) -> bool:
        """Add a key to the visited set. Returns False if it was already there."""

        with self._lock:
            if self._in_flight == key:
                self._in_flight = None
            if key in self._visited:
                return False
            self._visited.add(key)
            return True

    def mark_redirected(self, url: str) -> str | None:
        """Record a redirect target so its key is never enqueued or fetched.

        Redirect targets are kept apart from the visited set, which holds one
        key per fetched page. A pending entry for the same key is dropped.
        """

        key = normalize_url(url)
        if key is None:
            return None
        with self._lock:
            if key in self._visited or key == self._in_flight:
                return key
            self._redirect_keys.add(key)
            self._redirect_count += 1
            if key in self._pending_keys:
                self._pending_keys.discard(key)
                self._queue = deque(item for item in self._queue if item.key != key)
        return key

    def is_visited(self, url: str) -> bool:
        key = normalize_url(url)
        if key is None:
            return False
        with self._lock:
            return key in self._visited

    def suppress_loops(self) -> LoopSuppression | None:
        """Trim a pending queue that looks like a self-referential link explosion.

        Entries are compared by scheme + host + path (query ignored). When the
        queue is longer than `loop_threshold` and fewer than `loop_unique_ratio`
        of its entries are unique, it is trimmed to the first entry per
        signature; if every entry shares one signature it is cleared.
        """

        with self._lock:
            size = len(self._queue)
            if size <= self.loop_threshold:
                return None

            signatures = [loop_signature(item.key) for item in self._queue]
            unique = len(set(signatures))
            if unique >= size * self.loop_unique_ratio:
                return None

            if unique == 1:
                kept: list[FrontierItem] = []
            else:
                seen: set[str] = set()
                kept = []
                for item, signature in zip(self._queue, signatures):
                    if signature in seen:
                        continue
                    seen.add(signature)
                    kept.append(item)

            self._queue = deque(kept)
            self._pending_keys = {item.key for item in kept}
            self._loop_trims += 1
            self._loop_dropped += size - len(kept)

            suppression = LoopSuppression(
                size_before=size,
                size_after=len(kept),
                unique_entries=unique,
                cleared=not kept,
            )

        LOGGER.debug("Loop suppression: %s", suppression)
        return suppression

    def clear(self) -> int:
        """Drop every pending entry. Returns the number dropped."""

        with self._lock:
            dropped = len(self._queue)
            self._queue.clear()
            self._pending_keys.clear()
            return dropped

    def close(self) -> None:
        """Close frontier to future enqueue attempts."""

        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def empty(self) -> bool:
        return len(self) == 0

    @property
    def visited_count(self) -> int:
        with self._lock:
            return len(self._visited)

    def visited_urls(self) -> set[str]:
        """Return snapshot of visited keys."""

        with self._lock:
            return set(self._visited)

    def pending(self) -> list[FrontierItem]:
        """Return snapshot of the pending queue in crawl order."""

        with self._lock:
            return list(self._queue)

    def snapshot(self) -> dict[str, int | bool]:
        """Return frontier counters for logs/stats reporting."""

        with self._lock:
            return {
                "closed": self._closed,
                "queue_size": len(self._queue),
                "visited": len(self._visited),
                "enqueued": self._enqueued_count,
                "dequeued": self._dequeued_count,
                "skipped_visited": self._skipped_visited_count,
                "skipped_pending": self._skipped_pending_count,
                "skipped_depth": self._skipped_depth_count,
                "skipped_invalid": self._skipped_invalid_count,
                "redirects": self._redirect_count,
                "loop_trims": self._loop_trims,
                "loop_dropped": self._loop_dropped,
            }


__all__ = [
    "EnqueueResult",
    "EnqueueStatus",
    "Frontier",
    "LoopSuppression",
]
