"""Exception taxonomy for crawl sessions.

Only `InvalidSeedUrl`, `InvalidSettings`, and `CrawlerBusy` are raised to the
caller. The remaining classes name per-page/per-image failures; they are
recorded as events and their class name is used as the error type.
"""

from __future__ import annotations


class CrawlError(Exception):
    """Base class for crawler errors."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class InvalidSettings(CrawlError, ValueError):
    """A settings field is missing, mistyped, or out of range."""


class InvalidSeedUrl(CrawlError, ValueError):
    """The seed URL cannot be parsed into an absolute HTTP(S) URL."""


class InvalidLinkUrl(CrawlError):
    """An anchor href failed normalization."""


class InvalidImageUrl(CrawlError):
    """An image src failed normalization."""


class PageFetchFailed(CrawlError):
    """A page returned a non-2xx status or hit a transport error."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code


class ImageLoadFailed(CrawlError):
    """Downloading image bytes for display/export failed."""


class FrontierLoopDetected(CrawlError):
    """The pending queue looks like a self-referential link explosion."""


class CrawlerBusy(CrawlError, RuntimeError):
    """A session is already in progress on this crawler."""


__all__ = [
    "CrawlError",
    "CrawlerBusy",
    "FrontierLoopDetected",
    "ImageLoadFailed",
    "InvalidImageUrl",
    "InvalidLinkUrl",
    "InvalidSeedUrl",
    "InvalidSettings",
    "PageFetchFailed",
]
