"""HTML link and image extraction built on BeautifulSoup."""

from __future__ import annotations

from dataclasses import dataclass, field
import re

from bs4 import BeautifulSoup

from ..config import CrawlSettings
from ..errors import CrawlError, InvalidImageUrl, InvalidLinkUrl
from ..types import ImageCandidate, ImageType
from ..url import (
    HrefSkipReason,
    filename_from_url,
    normalize_url,
    resolve_url,
    same_domain,
    skip_reason,
)


_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]")
_LEADING_INT_RE = re.compile(r"^\s*\+?(\d+)")


@dataclass(slots=True)
class HTMLParserConfig:
    """Config for markup extraction."""

    parser_features: str = "lxml"
    fallback_extension: str = ".jpg"


@dataclass(slots=True)
class ParseResult:
    """Links and image candidates found on one page."""

    page_url: str
    links: list[str] = field(default_factory=list)
    images: list[ImageCandidate] = field(default_factory=list)
    anchors_seen: int = 0
    self_links: int = 0
    skipped_links: int = 0
    skipped_images: int = 0
    rejected: list[CrawlError] = field(default_factory=list)


class HTMLParser:
    """Extract outbound links and image candidates from page markup."""

    def __init__(self, config: HTMLParserConfig | None = None) -> None:
        self.config = config or HTMLParserConfig()

    def parse(self, markup: str | bytes, page_url: str, settings: CrawlSettings) -> ParseResult:
        soup = BeautifulSoup(self._coerce_html_text(markup), self.config.parser_features)
        result = ParseResult(page_url=page_url)

        self._extract_links(soup, page_url, settings, result)
        self._extract_images(soup, page_url, settings, result)
        return result

    def _extract_links(
        self,
        soup: BeautifulSoup,
        page_url: str,
        settings: CrawlSettings,
        result: ParseResult,
    ) -> None:
        page_key = normalize_url(page_url)
        seen: set[str] = set()

        for element in soup.find_all("a"):
            result.anchors_seen += 1
            href = element.get("href")

            reason = skip_reason(href)
            if reason is not None:
                if reason == HrefSkipReason.ROOT and normalize_url(href, page_url) == page_key:
                    result.self_links += 1
                result.skipped_links += 1
                continue

            resolved = resolve_url(href, page_url)
            key = normalize_url(resolved)
            if resolved is None or key is None:
                result.rejected.append(InvalidLinkUrl(f"Invalid link URL: {href!r}", url=page_url))
                continue

            if key == page_key:
                result.self_links += 1
                result.skipped_links += 1
                continue

            if not settings.include_external_domains and not same_domain(key, page_url):
                result.skipped_links += 1
                continue

            if key in seen:
                continue
            seen.add(key)
            result.links.append(resolved)

    def _extract_images(
        self,
        soup: BeautifulSoup,
        page_url: str,
        settings: CrawlSettings,
        result: ParseResult,
    ) -> None:
        for index, element in enumerate(soup.find_all("img")):
            src = (element.get("src") or "").strip()
            if not src or src.lower().startswith("data:"):
                result.skipped_images += 1
                continue

            resolved = resolve_url(src, page_url)
            key = normalize_url(resolved)
            if resolved is None or key is None:
                result.rejected.append(InvalidImageUrl(f"Invalid image URL: {src!r}", url=page_url))
                continue

            image_type = ImageType.from_url(resolved)
            if image_type == ImageType.SVG and not settings.include_svg_images:
                result.skipped_images += 1
                continue

            result.images.append(
                ImageCandidate(
                    url=resolved,
                    key=key,
                    filename=self._filename_for(resolved, page_url, index),
                    source_url=page_url,
                    image_type=image_type,
                    width=self._dimension(element.get("width")),
                    height=self._dimension(element.get("height")),
                )
            )

    def _filename_for(self, image_url: str, page_url: str, index: int) -> str:
        filename = filename_from_url(image_url)
        if "." in filename:
            return filename
        # Cosmetic name only; the bytes may not be JPEG.
        slug = _NON_ALNUM_RE.sub("-", page_url)
        return f"image-{slug}-{index + 1}{self.config.fallback_extension}"

    @staticmethod
    def _dimension(value: str | None) -> int | None:
        if not value:
            return None
        match = _LEADING_INT_RE.match(str(value))
        if match is None:
            return None
        number = int(match.group(1))
        return number or None

    @staticmethod
    def _coerce_html_text(html: str | bytes) -> str:
        if isinstance(html, bytes):
            return html.decode("utf-8", errors="replace")
        return html


def extract(markup: str | bytes, page_url: str, settings: CrawlSettings) -> ParseResult:
    """Extract links and image candidates with the default parser config."""

    return HTMLParser().parse(markup, page_url, settings)


__all__ = [
    "HTMLParser",
    "HTMLParserConfig",
    "ParseResult",
    "extract",
]
