"""Parser package exports."""

from .html_parser import HTMLParser, HTMLParserConfig, ParseResult, extract

__all__ = [
    "HTMLParser",
    "HTMLParserConfig",
    "ParseResult",
    "extract",
]
