"""
crawlkit search module.

Search engine result pages acquired through the crawler backends and parsed
into structured results.
"""

from crawlkit.search.models import (
    SearchEngine,
    SearchOptions,
    SearchResponse,
    SearchResult,
    SearchType,
)
from crawlkit.search.orchestrator import SearchOrchestrator
from crawlkit.search.parsers import (
    BaseSearchParser,
    BingParser,
    DuckDuckGoParser,
    GoogleParser,
    ImageResultParser,
    get_parser,
    parse_search_results,
    register_parser,
)
from crawlkit.search.url_builder import build_search_url

__all__ = [
    "BaseSearchParser",
    "BingParser",
    "DuckDuckGoParser",
    "GoogleParser",
    "ImageResultParser",
    "SearchEngine",
    "SearchOptions",
    "SearchOrchestrator",
    "SearchResponse",
    "SearchResult",
    "SearchType",
    "build_search_url",
    "get_parser",
    "parse_search_results",
    "register_parser",
]
