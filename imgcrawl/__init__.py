"""Image crawler package: settings, shared types, and crawl components."""

from .config import CrawlSettings, load_settings, save_settings
from .errors import (
    CrawlError,
    CrawlerBusy,
    FrontierLoopDetected,
    ImageLoadFailed,
    InvalidImageUrl,
    InvalidLinkUrl,
    InvalidSeedUrl,
    InvalidSettings,
    PageFetchFailed,
)
from .events import EventLog
from .export import DownloadOutcome, download_images, export_selected, retry_failed, write_manifest
from .fetcher import Fetcher, youtube_thumbnail_candidates
from .frontier import EnqueueResult, EnqueueStatus, Frontier, LoopSuppression
from .parsers import HTMLParser, HTMLParserConfig, ParseResult, extract
from .registry import ImageRegistry
from .scheduler import CrawlSession, Crawler
from .types import (
    CrawlEvent,
    CrawlSnapshot,
    CrawlStatus,
    EventSeverity,
    FetchResult,
    FrontierItem,
    ImageCandidate,
    ImageFetchResult,
    ImageRecord,
    ImageType,
    utc_now_iso,
)
from .url import host_from_url, normalize_url, resolve_url, same_domain

__all__ = [
    "CrawlError",
    "CrawlEvent",
    "CrawlSession",
    "CrawlSettings",
    "CrawlSnapshot",
    "CrawlStatus",
    "Crawler",
    "CrawlerBusy",
    "DownloadOutcome",
    "EnqueueResult",
    "EnqueueStatus",
    "EventLog",
    "EventSeverity",
    "FetchResult",
    "Fetcher",
    "Frontier",
    "FrontierItem",
    "FrontierLoopDetected",
    "HTMLParser",
    "HTMLParserConfig",
    "ImageCandidate",
    "ImageFetchResult",
    "ImageLoadFailed",
    "ImageRecord",
    "ImageRegistry",
    "ImageType",
    "InvalidImageUrl",
    "InvalidLinkUrl",
    "InvalidSeedUrl",
    "InvalidSettings",
    "LoopSuppression",
    "PageFetchFailed",
    "ParseResult",
    "download_images",
    "export_selected",
    "extract",
    "host_from_url",
    "load_settings",
    "normalize_url",
    "resolve_url",
    "retry_failed",
    "same_domain",
    "save_settings",
    "utc_now_iso",
    "write_manifest",
    "youtube_thumbnail_candidates",
]
