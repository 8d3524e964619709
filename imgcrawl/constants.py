"""Default values and bounds shared by config, fetcher, frontier, and scheduler."""

from __future__ import annotations


DEFAULT_MAX_DEPTH = 2
DEFAULT_MAX_PAGES = 20
DEFAULT_INCLUDE_EXTERNAL_DOMAINS = False
DEFAULT_DELAY_BETWEEN_REQUESTS_MS = 1000
DEFAULT_INCLUDE_SVG_IMAGES = True
DEFAULT_MAX_IMAGE_RETRIES = 3

DEFAULT_PAGE_TIMEOUT_SECONDS = 30.0
DEFAULT_IMAGE_TIMEOUT_SECONDS = 15.0
DEFAULT_IMAGE_FETCH_RETRIES = 2
DEFAULT_RETRY_BACKOFF_SECONDS = 0.5
DEFAULT_MAX_DOWNLOAD_WORKERS = 4

# Grace period before declaring an empty frontier finished.
DEFAULT_SETTLE_SECONDS = 0.5

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
DEFAULT_HTTP_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}
IMAGE_ACCEPT_HEADER = "image/*,*/*;q=0.8"
FALLBACK_IMAGE_CONTENT_TYPE = "image/jpeg"
SVG_CONTENT_TYPE = "image/svg+xml"

# Frontier loop suppression thresholds.
LOOP_QUEUE_THRESHOLD = 10
LOOP_UNIQUE_RATIO = 0.5

RECENT_PAGES_LIMIT = 5

YOUTUBE_THUMBNAIL_HOSTS = frozenset({"img.youtube.com", "i.ytimg.com"})
YOUTUBE_THUMBNAIL_VARIANTS = (
    "maxresdefault",
    "hqdefault",
    "mqdefault",
    "sddefault",
    "default",
)

DEFAULT_ARCHIVE_NAME = "website-images.zip"
DEFAULT_MANIFEST_NAME = "images.jsonl"

JSON_INDENT = 2
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")
