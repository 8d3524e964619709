"""Core type definitions for the image crawler.

This module is intentionally dependency-light so other crawler modules can import
shared records without introducing cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from posixpath import splitext
from urllib.parse import urlsplit


JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict = dict[str, JSONValue]


def utc_now_iso(timespec: str = "seconds") -> str:
    """Return an RFC3339-like UTC timestamp string for events/manifests."""

    return datetime.now(timezone.utc).isoformat(timespec=timespec)


class ImageType(str, Enum):
    """Image classification derived from the URL's file extension."""

    JPEG = "jpeg"
    PNG = "png"
    GIF = "gif"
    SVG = "svg"
    WEBP = "webp"
    AVIF = "avif"
    UNKNOWN = "unknown"

    @classmethod
    def from_url(cls, url: str) -> "ImageType":
        path = urlsplit(url).path
        suffix = splitext(path)[1].lower().lstrip(".")
        return _IMAGE_TYPE_BY_SUFFIX.get(suffix, cls.UNKNOWN)


_IMAGE_TYPE_BY_SUFFIX: dict[str, ImageType] = {
    "jpg": ImageType.JPEG,
    "jpeg": ImageType.JPEG,
    "png": ImageType.PNG,
    "gif": ImageType.GIF,
    "svg": ImageType.SVG,
    "webp": ImageType.WEBP,
    "avif": ImageType.AVIF,
}


class EventSeverity(str, Enum):
    """Severity attached to each crawl log event."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class CrawlStatus(str, Enum):
    """Lifecycle states of one crawl session."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in {CrawlStatus.COMPLETED, CrawlStatus.STOPPED, CrawlStatus.FAILED}


@dataclass(frozen=True, slots=True)
class FrontierItem:
    """A crawl candidate tracked by the frontier.

    `key` is the canonical comparison key; `url` is the resolved absolute URL
    that is actually requested (original path casing, no fragment).
    """

    key: str
    url: str
    depth: int
    referrer: str | None = None
    discovered_at: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True, slots=True)
class ImageCandidate:
    """One image reference discovered on a page, before registration."""

    url: str
    key: str
    filename: str
    source_url: str
    image_type: ImageType = ImageType.UNKNOWN
    width: int | None = None
    height: int | None = None


@dataclass(slots=True)
class ImageRecord:
    """A deduplicated image with selection and retry state.

    Records are created once per unique image key and mutated in place.
    """

    url: str
    key: str
    filename: str
    source_url: str
    image_type: ImageType = ImageType.UNKNOWN
    width: int | None = None
    height: int | None = None
    selected: bool = True
    load_failed: bool = False
    retry_count: int = 0
    discovered_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_candidate(cls, candidate: ImageCandidate) -> "ImageRecord":
        return cls(
            url=candidate.url,
            key=candidate.key,
            filename=candidate.filename,
            source_url=candidate.source_url,
            image_type=candidate.image_type,
            width=candidate.width,
            height=candidate.height,
        )

    def to_json(self) -> JSONDict:
        return {
            "url": self.url,
            "filename": self.filename,
            "source_url": self.source_url,
            "type": self.image_type.value,
            "width": self.width,
            "height": self.height,
            "selected": self.selected,
            "load_failed": self.load_failed,
            "retry_count": self.retry_count,
            "discovered_at": self.discovered_at,
        }


@dataclass(slots=True)
class FetchResult:
    """Result of asking the page-fetch collaborator for one URL."""

    requested_url: str
    final_url: str | None
    status_code: int | None
    content_type: str | None
    body: str | None
    fetched_at: str = field(default_factory=utc_now_iso)
    elapsed_ms: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and self.status_code is not None
            and 200 <= self.status_code < 300
            and self.body is not None
        )

    @property
    def failure_reason(self) -> str:
        if self.error:
            return self.error
        if self.status_code is not None:
            return f"HTTP status {self.status_code}"
        return "Unknown fetch failure"


@dataclass(slots=True)
class ImageFetchResult:
    """Result of downloading image bytes, possibly via a fallback URL."""

    requested_url: str
    final_url: str | None
    status_code: int | None
    content_type: str | None
    body: bytes | None
    attempts: int = 0
    elapsed_ms: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and self.status_code is not None
            and 200 <= self.status_code < 300
            and self.body is not None
        )

    @property
    def content_length(self) -> int | None:
        return None if self.body is None else len(self.body)


@dataclass(frozen=True, slots=True)
class CrawlEvent:
    """One entry of the append-only crawl log."""

    message: str
    severity: EventSeverity = EventSeverity.INFO
    url: str | None = None
    timestamp: str = field(default_factory=lambda: utc_now_iso("milliseconds"))

    def to_json(self) -> JSONDict:
        return {
            "timestamp": self.timestamp,
            "severity": self.severity.value,
            "message": self.message,
            "url": self.url,
        }


@dataclass(frozen=True, slots=True)
class CrawlSnapshot:
    """Read-only view of session counters taken after each step."""

    status: CrawlStatus
    seed_url: str | None
    pages_visited: int
    images_found: int
    max_depth_reached: int
    queue_length: int
    max_pages: int
    recent_pages: tuple[str, ...] = ()

    @property
    def running(self) -> bool:
        return self.status == CrawlStatus.RUNNING

    @property
    def progress(self) -> float:
        if self.max_pages <= 0:
            return 0.0
        return min(1.0, self.pages_visited / self.max_pages)

    def to_json(self) -> JSONDict:
        return {
            "status": self.status.value,
            "seed_url": self.seed_url,
            "pages_visited": self.pages_visited,
            "images_found": self.images_found,
            "max_depth_reached": self.max_depth_reached,
            "queue_length": self.queue_length,
            "max_pages": self.max_pages,
            "running": self.running,
            "progress": round(self.progress, 4),
            "recent_pages": list(self.recent_pages),
        }


__all__ = [
    "CrawlEvent",
    "CrawlSnapshot",
    "CrawlStatus",
    "EventSeverity",
    "FetchResult",
    "FrontierItem",
    "ImageCandidate",
    "ImageFetchResult",
    "ImageRecord",
    "ImageType",
    "JSONDict",
    "JSONPrimitive",
    "JSONValue",
    "utc_now_iso",
]
