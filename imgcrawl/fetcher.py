"""Page and image fetching over `requests` with retry and fallback logic."""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlsplit, urlunsplit

import requests

from .config import CrawlSettings
from .constants import (
    FALLBACK_IMAGE_CONTENT_TYPE,
    IMAGE_ACCEPT_HEADER,
    SVG_CONTENT_TYPE,
    YOUTUBE_THUMBNAIL_HOSTS,
    YOUTUBE_THUMBNAIL_VARIANTS,
)
from .types import FetchResult, ImageFetchResult
from .url import host_from_url

LOGGER = logging.getLogger(__name__)

_YOUTUBE_PATH_RE = re.compile(
    r"^(?P<prefix>/vi(?:_webp)?/[^/]+/)(?P<variant>[A-Za-z0-9_]+)(?P<ext>\.[A-Za-z0-9]+)$"
)


@dataclass(frozen=True, slots=True)
class _AttemptConfig:
    attempts: int
    backoff_seconds: float


def youtube_thumbnail_candidates(url: str) -> list[str]:
    """Return the URLs to try for an image, original first.

    For YouTube thumbnail hosts the remaining resolution variants follow in
    decreasing order (maxresdefault ... default). Other URLs yield `[url]`.
    """

    if host_from_url(url) not in YOUTUBE_THUMBNAIL_HOSTS:
        return [url]

    parsed = urlsplit(url)
    match = _YOUTUBE_PATH_RE.match(parsed.path)
    if match is None:
        return [url]

    candidates = [url]
    for variant in YOUTUBE_THUMBNAIL_VARIANTS:
        if variant == match.group("variant"):
            continue
        path = f"{match.group('prefix')}{variant}{match.group('ext')}"
        candidates.append(urlunsplit((parsed.scheme, parsed.netloc, path, parsed.query, "")))
    return candidates


class Fetcher:
    """Fetch pages and image bytes.

    Pages get one attempt each; a non-2xx status is reported in the result,
    never raised. Images get `1 + image_fetch_retries` attempts with
    exponential backoff on transient failures, then fall through the YouTube
    thumbnail chain when applicable.

    Concurrency model: each worker thread gets its own `requests.Session`
    unless a session is injected, in which case the caller owns its safety.
    """

    def __init__(self, settings: CrawlSettings, *, session: requests.Session | None = None) -> None:
        self.settings = settings
        self._session = session
        self._thread_local = threading.local()
        self._owned_sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

    def fetch_page(self, url: str) -> FetchResult:
        """Fetch one page following redirects; body text is returned for any content type."""

        started = time.perf_counter()
        try:
            response = self._get_session().get(
                url,
                headers=self.settings.headers(),
                timeout=self.settings.page_timeout_seconds,
                allow_redirects=True,
            )
            return FetchResult(
                requested_url=url,
                final_url=response.url or url,
                status_code=response.status_code,
                content_type=response.headers.get("Content-Type"),
                body=response.text if response.text is not None else "",
                elapsed_ms=int((time.perf_counter() - started) * 1000),
            )
        except requests.RequestException as exc:
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                elapsed_ms=int((time.perf_counter() - started) * 1000),
                error=f"{exc.__class__.__name__}: {exc}",
            )

    def fetch_image(self, url: str) -> ImageFetchResult:
        """Fetch image bytes, walking the YouTube fallback chain when needed."""

        attempt_cfg = _AttemptConfig(
            attempts=max(1, self.settings.image_fetch_retries + 1),
            backoff_seconds=max(0.0, self.settings.retry_backoff_seconds),
        )

        last_result: ImageFetchResult | None = None
        total_attempts = 0
        for candidate in youtube_thumbnail_candidates(url):
            result = self._fetch_with_retries(candidate, self._fetch_image_once, attempt_cfg)
            total_attempts += result.attempts
            last_result = result
            if result.ok:
                if candidate != url:
                    LOGGER.info("Using thumbnail fallback %s for %s", candidate, url)
                break
            LOGGER.debug("Image candidate failed: %s (%s)", candidate, result.error or result.status_code)

        if last_result is None:
            return ImageFetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error="Unknown fetch failure",
            )

        last_result.requested_url = url
        last_result.attempts = total_attempts
        return last_result

    def close(self) -> None:
        """Close sessions created by this fetcher."""

        with self._sessions_lock:
            sessions, self._owned_sessions = self._owned_sessions, []
        for session in sessions:
            session.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _fetch_with_retries(
        self,
        url: str,
        fetch_once: Callable[[str], ImageFetchResult],
        attempt_cfg: _AttemptConfig,
    ) -> ImageFetchResult:
        last_result: ImageFetchResult | None = None

        for attempt in range(1, attempt_cfg.attempts + 1):
            result = fetch_once(url)
            result.attempts = attempt
            last_result = result

            if self._is_terminal_result(result):
                return result

            if attempt < attempt_cfg.attempts and attempt_cfg.backoff_seconds > 0:
                time.sleep(attempt_cfg.backoff_seconds * (2 ** (attempt - 1)))

        if last_result is None:
            return ImageFetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error="Unknown fetch failure",
            )

        return last_result

    @staticmethod
    def _is_terminal_result(result: ImageFetchResult) -> bool:
        if result.status_code is None:
            return False

        if result.status_code in {408, 429} or result.status_code >= 500:
            return False

        return True

    def _fetch_image_once(self, url: str) -> ImageFetchResult:
        started = time.perf_counter()
        headers = self.settings.headers()
        headers["Accept"] = IMAGE_ACCEPT_HEADER
        parsed = urlsplit(url)
        headers["Referer"] = f"{parsed.scheme}://{parsed.netloc}"

        try:
            response = self._get_session().get(
                url,
                headers=headers,
                timeout=self.settings.image_timeout_seconds,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            return ImageFetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                elapsed_ms=int((time.perf_counter() - started) * 1000),
                error=f"{exc.__class__.__name__}: {exc}",
            )

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if not 200 <= response.status_code < 300:
            return ImageFetchResult(
                requested_url=url,
                final_url=response.url or url,
                status_code=response.status_code,
                content_type=response.headers.get("Content-Type"),
                body=None,
                elapsed_ms=elapsed_ms,
                error=f"HTTP status {response.status_code}",
            )

        content_type = (response.headers.get("Content-Type") or "").strip()
        if "svg" in content_type.lower() or parsed.path.lower().endswith(".svg"):
            # SVG is passed through as text.
            return ImageFetchResult(
                requested_url=url,
                final_url=response.url or url,
                status_code=response.status_code,
                content_type=SVG_CONTENT_TYPE,
                body=response.text.encode("utf-8"),
                elapsed_ms=elapsed_ms,
            )

        if content_type and not content_type.lower().startswith("image/"):
            LOGGER.warning("Resource is not an image: %s (%s)", content_type, url)

        return ImageFetchResult(
            requested_url=url,
            final_url=response.url or url,
            status_code=response.status_code,
            content_type=content_type or FALLBACK_IMAGE_CONTENT_TYPE,
            body=response.content if response.content is not None else b"",
            elapsed_ms=elapsed_ms,
        )

    def _get_session(self) -> requests.Session:
        if self._session is not None:
            return self._session

        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = requests.Session()
            self._thread_local.session = session
            with self._sessions_lock:
                self._owned_sessions.append(session)
        return session


__all__ = ["Fetcher", "youtube_thumbnail_candidates"]
