"""URL normalization, resolution, and domain comparison helpers."""

from __future__ import annotations

import re
from enum import Enum
from typing import Sequence
from urllib.parse import urljoin, urlsplit, urlunsplit


DEFAULT_ALLOWED_SCHEMES = ("http", "https")
SKIP_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "data:")

_SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*):")


class HrefSkipReason(str, Enum):
    """Why an href/src is discarded before normalization is attempted."""

    EMPTY = "empty"
    FRAGMENT = "fragment"
    NON_HTTP_SCHEME = "non_http_scheme"
    ROOT = "root"


def skip_reason(href: str | None, *, allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES) -> HrefSkipReason | None:
    """Return the reason an anchor href is ignored, or None if it should be resolved."""

    if href is None:
        return HrefSkipReason.EMPTY

    candidate = href.strip()
    if not candidate:
        return HrefSkipReason.EMPTY
    if candidate.startswith("#"):
        return HrefSkipReason.FRAGMENT

    lowered = candidate.lower()
    if any(lowered.startswith(prefix) for prefix in SKIP_HREF_PREFIXES):
        return HrefSkipReason.NON_HTTP_SCHEME

    match = _SCHEME_RE.match(candidate)
    if match and match.group(1).lower() not in {scheme.lower() for scheme in allowed_schemes}:
        return HrefSkipReason.NON_HTTP_SCHEME

    if candidate == "/":
        return HrefSkipReason.ROOT
    return None


def host_from_url(url: str) -> str:
    """Extract the lower-cased host of a URL ("" when missing or unparsable)."""

    try:
        parsed = urlsplit(url)
        host = parsed.hostname or ""
    except ValueError:
        return ""
    return host.strip().lower().strip(".")


def same_domain(url_a: str, url_b: str) -> bool:
    """Return True when both URLs have the same non-empty host."""

    host_a = host_from_url(url_a)
    return bool(host_a) and host_a == host_from_url(url_b)


def _has_default_port(scheme: str, port: int | None) -> bool:
    if port is None:
        return False
    return (scheme == "http" and port == 80) or (scheme == "https" and port == 443)


def _normalize_netloc(parsed_url, scheme: str) -> str:  # urllib.parse.SplitResult
    host = (parsed_url.hostname or "").lower().strip(".")
    if ":" in host:
        host = f"[{host}]"

    userinfo = ""
    if parsed_url.username:
        userinfo = parsed_url.username
        if parsed_url.password:
            userinfo += ":" + parsed_url.password
        userinfo += "@"

    port = parsed_url.port
    if port is not None and not _has_default_port(scheme, port):
        return f"{userinfo}{host}:{port}"
    return f"{userinfo}{host}"


def resolve_url(
    raw: str | None,
    base: str | None = None,
    *,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Resolve relative, protocol-relative, or absolute input to an absolute URL.

    The fragment is dropped and path casing is preserved, so the result is the
    URL to request. Returns `None` for anything malformed or non-HTTP.
    """

    if raw is None:
        return None

    candidate = raw.strip()
    if not candidate:
        return None

    try:
        absolute = urljoin(base, candidate) if base else candidate
        parsed = urlsplit(absolute)
        # Accessing .port validates the port component.
        parsed.port
    except ValueError:
        return None

    scheme = parsed.scheme.lower()
    if scheme not in {item.lower() for item in allowed_schemes}:
        return None

    host = parsed.hostname
    if not host or any(ch.isspace() for ch in host):
        return None

    return urlunsplit((scheme, parsed.netloc, parsed.path, parsed.query, ""))


def normalize_url(
    raw: str | None,
    base: str | None = None,
    *,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Canonicalize any URL form to a comparable key.

    Key = scheme + host + lower-cased path without trailing slash + original
    query string. The fragment is always dropped. Returns `None` (never raises)
    for malformed input; the function is idempotent on its own output.
    """

    resolved = resolve_url(raw, base, allowed_schemes=allowed_schemes)
    if resolved is None:
        return None

    parsed = urlsplit(resolved)
    scheme = parsed.scheme.lower()
    netloc = _normalize_netloc(parsed, scheme)
    path = parsed.path.lower().rstrip("/")

    return urlunsplit((scheme, netloc, path, parsed.query, ""))


def loop_signature(key: str) -> str:
    """Scheme + host + path of a normalized key; the query is ignored."""

    parsed = urlsplit(key)
    return urlunsplit((parsed.scheme, parsed.netloc, parsed.path, "", ""))


def filename_from_url(url: str) -> str:
    """Return the last path segment of a URL without its query string."""

    path = urlsplit(url).path
    return path.rsplit("/", maxsplit=1)[-1]


__all__ = [
    "DEFAULT_ALLOWED_SCHEMES",
    "HrefSkipReason",
    "SKIP_HREF_PREFIXES",
    "filename_from_url",
    "host_from_url",
    "loop_signature",
    "normalize_url",
    "resolve_url",
    "same_domain",
    "skip_reason",
]
