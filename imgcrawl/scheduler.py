"""Crawl session orchestration: the sequential, polite step loop."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import logging
import threading
from typing import Any, Mapping

from .config import CrawlSettings
from .constants import RECENT_PAGES_LIMIT
from .errors import CrawlerBusy, InvalidSeedUrl, PageFetchFailed
from .events import EventListener, EventLog
from .fetcher import Fetcher
from .frontier import Frontier
from .parsers import HTMLParser
from .registry import ImageRegistry
from .types import (
    CrawlEvent,
    CrawlSnapshot,
    CrawlStatus,
    FetchResult,
    FrontierItem,
    ImageRecord,
    ImageType,
    utc_now_iso,
)
from .url import resolve_url

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CrawlSession:
    """All mutable state of one crawl, owned by the crawl loop."""

    seed_url: str
    settings: CrawlSettings
    frontier: Frontier
    registry: ImageRegistry
    events: EventLog
    status: CrawlStatus = CrawlStatus.IDLE
    pages_visited: int = 0
    images_found: int = 0
    max_depth_reached: int = 0
    recent_pages: deque[str] = field(default_factory=lambda: deque(maxlen=RECENT_PAGES_LIMIT))
    started_at: str = field(default_factory=utc_now_iso)
    finished_at: str | None = None

    @classmethod
    def create(cls, seed_url: str, settings: CrawlSettings) -> "CrawlSession":
        return cls(
            seed_url=seed_url,
            settings=settings,
            frontier=Frontier(settings.max_depth),
            registry=ImageRegistry(settings.max_image_retries),
            events=EventLog(),
        )

    def snapshot(self) -> CrawlSnapshot:
        return CrawlSnapshot(
            status=self.status,
            seed_url=self.seed_url,
            pages_visited=self.pages_visited,
            images_found=self.images_found,
            max_depth_reached=self.max_depth_reached,
            queue_length=len(self.frontier),
            max_pages=self.settings.max_pages,
            recent_pages=tuple(self.recent_pages),
        )

    def summary(self) -> str:
        return f"Found {self.images_found} images from {self.pages_visited} pages."


class Crawler:
    """Session control surface: start/stop, snapshots, events, and images.

    One crawl runs at a time. `run()` drives the loop on the calling thread;
    `start()` drives it on a background thread. `stop()` is cooperative: a
    fetch already in flight completes, but its page is not processed and no
    further fetches are issued.

    The page fetcher is any object with `fetch_page(url) -> FetchResult`.
    """

    def __init__(self, fetcher: Any | None = None, *, parser: HTMLParser | None = None) -> None:
        self._fetcher = fetcher
        self._parser = parser or HTMLParser()

        self._session: CrawlSession | None = None
        self._active_fetcher: Any | None = None
        self._owns_fetcher = False
        self._snapshot: CrawlSnapshot | None = None
        self._listeners: list[EventListener] = []

        self._state_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._in_progress = False
        self._thread: threading.Thread | None = None

    # -- control -----------------------------------------------------------

    def start(
        self,
        seed_url: str,
        settings: CrawlSettings | Mapping[str, Any] | None = None,
    ) -> CrawlSnapshot:
        """Start a session on a background thread and return the initial snapshot."""

        session = self._begin(seed_url, settings)
        self._thread = threading.Thread(
            target=self._run_loop,
            args=(session,),
            name="imgcrawl-session",
            daemon=True,
        )
        self._thread.start()
        return session.snapshot()

    def run(
        self,
        seed_url: str,
        settings: CrawlSettings | Mapping[str, Any] | None = None,
    ) -> CrawlSnapshot:
        """Run a whole session on the calling thread and return the final snapshot."""

        session = self._begin(seed_url, settings)
        self._run_loop(session)
        return self.snapshot()

    def stop(self) -> CrawlSnapshot:
        """Stop the running session; pending URLs are dropped, results are kept."""

        with self._state_lock:
            session = self._session
            if session is None or session.status != CrawlStatus.RUNNING:
                return self.snapshot()

            self._stop_event.set()
            session.status = CrawlStatus.STOPPED
            session.frontier.clear()
            session.frontier.close()
            self._publish(session)

        session.events.info(f"Crawling stopped. {session.summary()}")
        return self.snapshot()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for a background session. Returns True once it has finished."""

        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    @property
    def running(self) -> bool:
        with self._state_lock:
            return self._in_progress

    # -- observation -------------------------------------------------------

    def snapshot(self) -> CrawlSnapshot:
        """Return the latest immutable snapshot (taken after each step)."""

        with self._state_lock:
            if self._snapshot is not None:
                return self._snapshot
        return CrawlSnapshot(
            status=CrawlStatus.IDLE,
            seed_url=None,
            pages_visited=0,
            images_found=0,
            max_depth_reached=0,
            queue_length=0,
            max_pages=0,
        )

    @property
    def session(self) -> CrawlSession | None:
        return self._session

    def subscribe(self, listener: EventListener) -> None:
        """Receive every event of this and all later sessions."""

        with self._state_lock:
            self._listeners.append(listener)
            session = self._session
        if session is not None:
            session.events.subscribe(listener)

    def events(self) -> list[CrawlEvent]:
        session = self._session
        return [] if session is None else session.events.events()

    # -- images ------------------------------------------------------------

    @property
    def registry(self) -> ImageRegistry | None:
        session = self._session
        return None if session is None else session.registry

    def images(self) -> list[ImageRecord]:
        registry = self.registry
        return [] if registry is None else registry.records()

    def set_selected(self, url: str, selected: bool) -> bool:
        registry = self.registry
        return registry is not None and registry.set_selected(url, selected)

    def select_all(self, selected: bool) -> None:
        registry = self.registry
        if registry is not None:
            registry.select_all(selected)

    def filter_by_type(self, image_type: ImageType | str | None) -> list[ImageRecord]:
        registry = self.registry
        return [] if registry is None else registry.filter_by_type(image_type)

    def retry(self, url: str) -> bool:
        registry = self.registry
        return registry is not None and registry.retry(url)

    # -- loop --------------------------------------------------------------

    def _begin(
        self,
        seed_url: str,
        settings: CrawlSettings | Mapping[str, Any] | None,
    ) -> CrawlSession:
        resolved_settings = self._resolve_settings(settings)
        resolved_seed = resolve_url(seed_url)
        if resolved_seed is None:
            raise InvalidSeedUrl(f"Invalid seed URL: {seed_url!r}", url=seed_url)

        with self._state_lock:
            if self._in_progress:
                raise CrawlerBusy("A crawl session is already in progress")
            self._in_progress = True

            session = CrawlSession.create(resolved_seed, resolved_settings)
            for listener in self._listeners:
                session.events.subscribe(listener)

            self._stop_event.clear()
            self._session = session
            if self._fetcher is not None:
                self._active_fetcher = self._fetcher
                self._owns_fetcher = False
            else:
                self._active_fetcher = Fetcher(resolved_settings)
                self._owns_fetcher = True

            session.status = CrawlStatus.RUNNING
            self._publish(session)

        session.events.info(f"Starting crawl from {resolved_seed}", url=resolved_seed)
        session.frontier.seed(resolved_seed)
        self._publish(session)
        return session

    @staticmethod
    def _resolve_settings(settings: CrawlSettings | Mapping[str, Any] | None) -> CrawlSettings:
        if settings is None:
            return CrawlSettings()
        if isinstance(settings, CrawlSettings):
            return settings
        return CrawlSettings.from_dict(settings)

    def _run_loop(self, session: CrawlSession) -> None:
        try:
            while self._step(session):
                pass
        except Exception as exc:
            LOGGER.exception("Crawl loop failed")
            if self._transition(session, CrawlStatus.FAILED):
                session.events.error(f"Crawl failed: {exc.__class__.__name__}: {exc}")
        finally:
            self._finish(session)

    def _step(self, session: CrawlSession) -> bool:
        """Run one scheduling step. Returns False when the loop should end."""

        settings = session.settings
        if self._stop_event.is_set():
            return False

        if session.pages_visited >= settings.max_pages:
            session.events.info(f"Reached page limit ({settings.max_pages})")
            self._complete(session)
            return False

        item = session.frontier.dequeue()
        if item is None:
            # Give late link discovery a moment before declaring the crawl done.
            if self._stop_event.wait(settings.settle_seconds):
                return False
            if session.frontier.empty():
                self._complete(session)
                return False
            return True

        session.frontier.mark_visited(item.key)
        session.pages_visited += 1
        session.max_depth_reached = max(session.max_depth_reached, item.depth)
        session.recent_pages.appendleft(item.url)
        self._publish(session)
        session.events.info(f"Crawling page at depth {item.depth}", url=item.url)
        if self._stop_event.is_set():
            return False

        result = self._fetch_page(item.url)
        if self._stop_event.is_set():
            return False

        if result.ok:
            session.events.success("Successfully fetched page content", url=item.url)
            self._handle_page(session, item, result)
        else:
            error = PageFetchFailed(
                f"Failed to fetch {item.url}: {result.failure_reason}",
                url=item.url,
                status_code=result.status_code,
            )
            session.events.error(str(error), url=item.url)

        self._publish(session)

        if session.pages_visited >= settings.max_pages:
            return True
        return not self._stop_event.wait(settings.delay_seconds)

    def _fetch_page(self, url: str) -> FetchResult:
        try:
            return self._active_fetcher.fetch_page(url)
        except Exception as exc:
            LOGGER.debug("Page fetcher raised for %s", url, exc_info=True)
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error=f"{exc.__class__.__name__}: {exc}",
            )

    def _handle_page(self, session: CrawlSession, item: FrontierItem, result: FetchResult) -> None:
        settings = session.settings
        page_url = result.final_url or item.url
        if page_url != item.url:
            LOGGER.debug("Followed redirect %s -> %s", item.url, page_url)
            session.frontier.mark_redirected(page_url)
        parsed =self._parser.parse(result.body or "", page_url, settings)

        for rejected in parsed.rejected:
            session.events.warning(f"{rejected.__class__.__name__}: {rejected}", url=rejected.url)

        session.events.info(f"Found {len(parsed.images)} images on page", url=item.url)
        added = session.registry.register(parsed.images)
        if added:
            session.images_found += len(added)
            session.events.success(f"Added {len(added)} new unique images")

        if parsed.self_links > session.frontier.loop_threshold:
            session.events.warning(
                f"FrontierLoopDetected: page links back to itself {parsed.self_links} times; "
                "ignoring self-referential links",
                url=item.url,
            )

        if item.depth >= settings.max_depth:
            session.events.info(
                f"Reached maximum depth ({item.depth}), not extracting more links",
                url=item.url,
            )
            return

        session.events.info(f"Found {len(parsed.links)} links on page", url=item.url)
        results = session.frontier.enqueue_many(parsed.links, item.depth + 1, referrer=item.url)
        accepted = sum(1 for enqueue_result in results if enqueue_result.accepted)
        if accepted:
            session.events.info(f"Added {accepted} new links to the queue")

        suppression = session.frontier.suppress_loops()
        if suppression is not None:
            error = suppression.to_error()
            session.events.warning(f"{error.__class__.__name__}: {error}", url=item.url)

    def _transition(self, session: CrawlSession, status: CrawlStatus) -> bool:
        with self._state_lock:
            if session.status != CrawlStatus.RUNNING:
                return False
            session.status = status
            self._publish(session)
            return True

    def _complete(self, session: CrawlSession) -> None:
        if self._transition(session, CrawlStatus.COMPLETED):
            session.events.success(f"Crawling complete. {session.summary()}")

    def _finish(self, session: CrawlSession) -> None:
        with self._state_lock:
            if session.status == CrawlStatus.RUNNING:
                session.status = CrawlStatus.COMPLETED
            session.finished_at = utc_now_iso()
            session.frontier.close()
            self._publish(session)
            fetcher, owns = self._active_fetcher, self._owns_fetcher
            self._active_fetcher = None
            self._owns_fetcher = False
            self._in_progress = False

        if owns and fetcher is not None:
            fetcher.close()

    def _publish(self, session: CrawlSession) -> None:
        snapshot = session.snapshot()
        with self._state_lock:
            if session is self._session:
                self._snapshot = snapshot


__all__ = ["CrawlSession", "Crawler"]
