"""Typed crawl settings with JSON/YAML load/save helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore

from .constants import (
    DEFAULT_DELAY_BETWEEN_REQUESTS_MS,
    DEFAULT_HTTP_HEADERS,
    DEFAULT_IMAGE_FETCH_RETRIES,
    DEFAULT_IMAGE_TIMEOUT_SECONDS,
    DEFAULT_INCLUDE_EXTERNAL_DOMAINS,
    DEFAULT_INCLUDE_SVG_IMAGES,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_DOWNLOAD_WORKERS,
    DEFAULT_MAX_IMAGE_RETRIES,
    DEFAULT_MAX_PAGES,
    DEFAULT_PAGE_TIMEOUT_SECONDS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_SETTLE_SECONDS,
    DEFAULT_USER_AGENT,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
)
from .errors import InvalidSettings
from .types import JSONDict


# camelCase spellings accepted alongside the snake_case field names.
_KEY_ALIASES = {
    "maxDepth": "max_depth",
    "maxPages": "max_pages",
    "includeExternalDomains": "include_external_domains",
    "delayBetweenRequestsMs": "delay_between_requests_ms",
    "delayBetweenRequests": "delay_between_requests_ms",
    "includeSvgImages": "include_svg_images",
    "maxImageRetries": "max_image_retries",
}


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise InvalidSettings(f"Invalid int for '{key}': {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise InvalidSettings(f"Invalid int for '{key}': {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidSettings(f"Invalid int for '{key}': {value!r}") from exc


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool):
        raise InvalidSettings(f"Invalid float for '{key}': {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidSettings(f"Invalid float for '{key}': {value!r}") from exc


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise InvalidSettings(f"Invalid bool for '{key}': {value!r}")


@dataclass(frozen=True, slots=True)
class CrawlSettings:
    """Settings snapshot read once at session start.

    Out-of-range values are rejected here instead of being clamped mid-crawl.
    """

    max_depth: int = DEFAULT_MAX_DEPTH
    max_pages: int = DEFAULT_MAX_PAGES
    include_external_domains: bool = DEFAULT_INCLUDE_EXTERNAL_DOMAINS
    delay_between_requests_ms: int = DEFAULT_DELAY_BETWEEN_REQUESTS_MS
    include_svg_images: bool = DEFAULT_INCLUDE_SVG_IMAGES
    max_image_retries: int = DEFAULT_MAX_IMAGE_RETRIES

    page_timeout_seconds: float = DEFAULT_PAGE_TIMEOUT_SECONDS
    image_timeout_seconds: float = DEFAULT_IMAGE_TIMEOUT_SECONDS
    image_fetch_retries: int = DEFAULT_IMAGE_FETCH_RETRIES
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    max_download_workers: int = DEFAULT_MAX_DOWNLOAD_WORKERS
    settle_seconds: float = DEFAULT_SETTLE_SECONDS

    user_agent: str = DEFAULT_USER_AGENT
    default_headers: tuple[tuple[str, str], ...] = tuple(DEFAULT_HTTP_HEADERS.items())

    def __post_init__(self) -> None:
        # Headers are held as (name, value) pairs; mappings are converted here.
        headers = self.default_headers
        pairs = headers.items() if isinstance(headers, Mapping) else headers
        object.__setattr__(self, "default_headers", tuple((str(key), str(value)) for key, value in pairs))

        if self.max_depth < 1:
            raise InvalidSettings("max_depth must be >= 1")
        if self.max_pages < 1:
            raise InvalidSettings("max_pages must be >= 1")
        if self.delay_between_requests_ms < 0:
            raise InvalidSettings("delay_between_requests_ms must be >= 0")
        if self.max_image_retries < 0:
            raise InvalidSettings("max_image_retries must be >= 0")
        if self.page_timeout_seconds <= 0:
            raise InvalidSettings("page_timeout_seconds must be > 0")
        if self.image_timeout_seconds <= 0:
            raise InvalidSettings("image_timeout_seconds must be > 0")
        if self.image_fetch_retries < 0:
            raise InvalidSettings("image_fetch_retries must be >= 0")
        if self.retry_backoff_seconds < 0:
            raise InvalidSettings("retry_backoff_seconds must be >= 0")
        if self.max_download_workers < 1:
            raise InvalidSettings("max_download_workers must be >= 1")
        if self.settle_seconds < 0:
            raise InvalidSettings("settle_seconds must be >= 0")
        if not self.user_agent.strip():
            raise InvalidSettings("user_agent cannot be empty")

    @property
    def delay_seconds(self) -> float:
        return self.delay_between_requests_ms / 1000.0

    def headers(self) -> dict[str, str]:
        """Return request headers with the configured User-Agent applied."""

        merged = dict(self.default_headers)
        merged.setdefault("User-Agent", self.user_agent)
        return merged

    def replace(self, **overrides: Any) -> "CrawlSettings":
        """Return a validated copy with selected fields overridden."""

        payload = self.to_dict()
        payload.update({key: value for key, value in overrides.items() if value is not None})
        return CrawlSettings.from_dict(payload)

    def to_dict(self) -> JSONDict:
        """Serialize settings for manifests and reproducibility."""

        return {
            "max_depth": self.max_depth,
            "max_pages": self.max_pages,
            "include_external_domains": self.include_external_domains,
            "delay_between_requests_ms": self.delay_between_requests_ms,
            "include_svg_images": self.include_svg_images,
            "max_image_retries": self.max_image_retries,
            "page_timeout_seconds": self.page_timeout_seconds,
            "image_timeout_seconds": self.image_timeout_seconds,
            "image_fetch_retries": self.image_fetch_retries,
            "retry_backoff_seconds": self.retry_backoff_seconds,
            "max_download_workers": self.max_download_workers,
            "settle_seconds": self.settle_seconds,
            "user_agent": self.user_agent,
            "default_headers": dict(self.default_headers),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CrawlSettings":
        """Build settings from a parsed dictionary (snake_case or camelCase keys)."""

        normalized: dict[str, Any] = {}
        for raw_key, value in payload.items():
            key = _KEY_ALIASES.get(str(raw_key), str(raw_key))
            normalized[key] = value

        known = {item.name for item in fields(cls)}
        unknown = sorted(set(normalized) - known)
        if unknown:
            raise InvalidSettings(f"Unknown settings keys: {', '.join(unknown)}")

        kwargs: dict[str, Any] = {}
        for key in ("max_depth", "max_pages", "delay_between_requests_ms", "max_image_retries",
                    "image_fetch_retries", "max_download_workers"):
            if key in normalized:
                kwargs[key] = _as_int(normalized[key], key)
        for key in ("page_timeout_seconds", "image_timeout_seconds", "retry_backoff_seconds",
                    "settle_seconds"):
            if key in normalized:
                kwargs[key] = _as_float(normalized[key], key)
        for key in ("include_external_domains", "include_svg_images"):
            if key in normalized:
                kwargs[key] = _as_bool(normalized[key], key)
        if "user_agent" in normalized:
            kwargs["user_agent"] = str(normalized["user_agent"])
        if "default_headers" in normalized:
            headers = normalized["default_headers"] or {}
            if not isinstance(headers, Mapping):
                raise InvalidSettings(f"Invalid mapping for 'default_headers': {headers!r}")
            kwargs["default_headers"] = tuple((str(k), str(v)) for k, v in headers.items())

        return cls(**kwargs)


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidSettings(f"YAML config at {path} must be a mapping at top level")
    return data


def load_payload(path: str | Path) -> dict[str, Any]:
    """Read a raw JSON/YAML config mapping without validating it."""

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise InvalidSettings(
            f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
        )

    try:
        if suffix == ".json":
            payload = json.loads(config_path.read_text(encoding="utf-8"))
        else:
            payload = _load_yaml(config_path)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise InvalidSettings(f"Malformed config at {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise InvalidSettings(f"Config at {config_path} must be a mapping")
    return payload


def load_settings(path: str | Path) -> CrawlSettings:
    """Load CrawlSettings from a JSON/YAML path.

    A top-level `seed` key is allowed in the file and ignored here; the CLI
    reads it separately.
    """

    payload = load_payload(path)
    payload.pop("seed", None)
    return CrawlSettings.from_dict(payload)


def save_settings(settings: CrawlSettings, path: str | Path) -> None:
    """Save CrawlSettings as JSON or YAML based on file extension."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = settings.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise InvalidSettings(
        f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
    )


__all__ = [
    "CrawlSettings",
    "load_payload",
    "load_settings",
    "save_settings",
]
