"""Shared fakes for crawler tests. No test touches the network."""

from __future__ import annotations

import threading

import pytest

from imgcrawl import CrawlSettings, FetchResult, ImageFetchResult
from imgcrawl.url import normalize_url


class FakePageFetcher:
    """Serve canned pages keyed by canonical URL.

    Values are a body string, a `(status, body)` tuple, or an exception to raise.
    Unknown URLs return 404. `redirects` maps a requested URL to the URL that
    is served and reported as `final_url`.
    """

    def __init__(
        self,
        pages: dict[str, object] | None = None,
        redirects: dict[str, str] | None = None,
    ) -> None:
        self.pages = {normalize_url(url): value for url, value in (pages or {}).items()}
        self.redirects = {normalize_url(url): target for url, target in (redirects or {}).items()}
        self.requested: list[str] = []
        self.before_return = None

    def fetch_page(self, url: str) -> FetchResult:
        self.requested.append(url)
        final_url = self.redirects.get(normalize_url(url), url)
        value = self.pages.get(normalize_url(final_url))
        if self.before_return is not None:
            self.before_return(url)
        if isinstance(value, Exception):
            raise value
        if value is None:
            status, body = 404, "not found"
        elif isinstance(value, tuple):
            status, body = value
        else:
            status, body = 200, value
        return FetchResult(
            requested_url=url,
            final_url=final_url,
            status_code=status,
            content_type="text/html; charset=utf-8",
            body=body,
        )


class FakeImageFetcher:
    """Return canned image results and track peak concurrency."""

    def __init__(self, failures: dict[str, int] | None = None, delay: float = 0.0) -> None:
        self.failures = dict(failures or {})
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.peak = 0
        self._lock = threading.Lock()

    def fetch_image(self, url: str) -> ImageFetchResult:
        with self._lock:
            self.calls.append(url)
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            if self.delay:
                threading.Event().wait(self.delay)
            with self._lock:
                remaining = self.failures.get(url, 0)
                if remaining:
                    self.failures[url] = remaining - 1
            if remaining:
                return ImageFetchResult(
                    requested_url=url,
                    final_url=url,
                    status_code=404,
                    content_type=None,
                    body=None,
                    attempts=1,
                    error="HTTP status 404",
                )
            return ImageFetchResult(
                requested_url=url,
                final_url=url,
                status_code=200,
                content_type="image/png",
                body=f"bytes:{url}".encode("utf-8"),
                attempts=1,
            )
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def settings() -> CrawlSettings:
    return CrawlSettings(
        max_depth=3,
        max_pages=20,
        delay_between_requests_ms=0,
        settle_seconds=0,
        retry_backoff_seconds=0,
    )


def html(body: str) -> str:
    return f"<html><head><title>t</title></head><body>{body}</body></html>"
