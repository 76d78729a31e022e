"""
Search result page parsers.

Each engine parser turns a result page's HTML into SearchResult objects with
positions numbered from 1. Engine-internal links (ads, navigation, related
searches) are skipped and redirect wrappers are unwrapped to the destination.
"""

import base64
import binascii
from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from crawlkit.search.models import SearchEngine, SearchResult, SearchType
from crawlkit.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ParsedResult:
    """A single result before positions are assigned."""

    title: str
    url: str
    snippet: str | None = None
    display_url: str | None = None
    date: str | None = None
    thumbnail: str | None = None

    def to_search_result(self, position: int, source: str) -> SearchResult:
        return SearchResult(
            title=self.title,
            url=self.url,
            position=position,
            snippet=self.snippet or None,
            thumbnail=self.thumbnail,
            display_url=self.display_url or None,
            date=self.date or None,
            source=source,
        )


# =============================================================================
# Base Parser
# =============================================================================


class BaseSearchParser(ABC):
    """
    Base class for result page parsers.

    Subclasses implement ``_extract_results`` and list their own domains in
    ``internal_domains``.
    """

    engine_name: str = ""
    base_url: str = ""
    internal_domains: tuple[str, ...] = ()

    def parse(self, html: str, max_results: int = 10) -> list[SearchResult]:
        """Parse ``html`` into at most ``max_results`` results."""
        if not html:
            return []
        soup = BeautifulSoup(html, "html.parser")
        parsed = self._extract_results(soup)
        results = [
            item.to_search_result(position, self.engine_name)
            for position, item in enumerate(parsed[:max_results], start=1)
        ]
        logger.debug("Parsed result page", engine=self.engine_name, count=len(results))
        return results

    @abstractmethod
    def _extract_results(self, soup: BeautifulSoup) -> list[ParsedResult]:
        pass

    def _extract_text(self, element: Tag | None, default: str = "") -> str:
        if element is None:
            return default
        return element.get_text(" ", strip=True) or default

    def _extract_href(self, element: Tag | None) -> str | None:
        if element is None:
            return None
        href = element.get("href")
        if href:
            return str(href)
        link = element.find("a")
        if isinstance(link, Tag) and link.get("href"):
            return str(link["href"])
        return None

    def _normalize_url(self, url: str | None) -> str | None:
        """Absolute http(s) URL outside the engine's own domains, else None."""
        if not url:
            return None
        if url.startswith(("javascript:", "mailto:", "#")):
            return None
        if url.startswith("//"):
            url = "https:" + url
        elif not url.startswith(("http://", "https://")):
            url = urljoin(self.base_url, url)

        if self._is_internal_url(urlparse(url).netloc):
            return None
        return url

    def _is_internal_url(self, netloc: str) -> bool:
        netloc = netloc.lower()
        return any(domain in netloc for domain in self.internal_domains)


# =============================================================================
# DuckDuckGo Parser
# =============================================================================


class DuckDuckGoParser(BaseSearchParser):
    """Parser for the DuckDuckGo HTML-only result page."""

    engine_name = SearchEngine.DUCKDUCKGO.value
    base_url = "https://html.duckduckgo.com"
    internal_domains = ("duckduckgo.com", "duck.co")

    def _extract_results(self, soup: BeautifulSoup) -> list[ParsedResult]:
        containers = soup.select("div.result:not(.result--ad)")
        if not containers:
            containers = soup.select("[data-testid='result'], .web-result")

        results = []
        for container in containers:
            result = self._extract_single_result(container)
            if result:
                results.append(result)
        return results

    def _extract_single_result(self, container: Tag) -> ParsedResult | None:
        title_elem = container.select_one("a.result__a, a[data-testid='result-title-a'], h2 a")
        if title_elem is None:
            return None
        title = self._extract_text(title_elem)
        url = self._normalize_url(self._unwrap_redirect(self._extract_href(title_elem)))
        if not title or not url:
            return None

        snippet_elem = container.select_one(".result__snippet, [data-testid='result-snippet']")
        display_elem = container.select_one(".result__url")
        date_elem = container.select_one(".result__timestamp, time")
        return ParsedResult(
            title=title,
            url=url,
            snippet=self._extract_text(snippet_elem),
            display_url=self._extract_text(display_elem),
            date=self._extract_text(date_elem) or None,
        )

    def _unwrap_redirect(self, url: str | None) -> str | None:
        """``/l/?uddg=<target>`` links point at the real destination."""
        if url and "/l/?" in url:
            params = parse_qs(urlparse(url).query)
            if "uddg" in params:
                return params["uddg"][0]
        return url


# =============================================================================
# Google Parser
# =============================================================================


class GoogleParser(BaseSearchParser):
    """Parser for Google result pages. Titles are the h3 inside each result link."""

    engine_name = SearchEngine.GOOGLE.value
    base_url = "https://www.google.com"
    internal_domains = ("google.com", "gstatic.com", "googleapis.com")

    def _extract_results(self, soup: BeautifulSoup) -> list[ParsedResult]:
        results = []
        seen: set[str] = set()
        for heading in soup.find_all("h3"):
            anchor = heading.find_parent("a")
            if anchor is None:
                continue
            url = self._normalize_url(self._clean_google_url(self._extract_href(anchor)))
            title = self._extract_text(heading)
            if not url or not title or url in seen:
                continue
            if "youtube.com/results" in url:
                continue
            seen.add(url)

            container = anchor.find_parent("div", class_="g")
            snippet = None
            if container is not None:
                snippet = self._extract_text(container.select_one(".VwiC3b, .IsZvec"))
            display = anchor.select_one("cite")
            results.append(
                ParsedResult(
                    title=title,
                    url=url,
                    snippet=snippet,
                    display_url=self._extract_text(display),
                )
            )
        return results

    def _clean_google_url(self, url: str | None) -> str | None:
        if url and url.startswith("/url?"):
            params = parse_qs(urlparse(url).query)
            for name in ("q", "url"):
                if name in params:
                    return params[name][0]
        return url


# =============================================================================
# Bing Parser
# =============================================================================


class BingParser(BaseSearchParser):
    """Parser for Bing organic results (``li.b_algo``)."""

    engine_name = SearchEngine.BING.value
    base_url = "https://www.bing.com"
    internal_domains = ("bing.com", "bing.net")

    def _extract_results(self, soup: BeautifulSoup) -> list[ParsedResult]:
        results = []
        for container in soup.select("li.b_algo"):
            result = self._extract_single_result(container)
            if result:
                results.append(result)
        return results

    def _extract_single_result(self, container: Tag) -> ParsedResult | None:
        title_elem = container.select_one("h2 a, .b_title a")
        if title_elem is None:
            return None
        title = self._extract_text(title_elem)
        url = self._normalize_url(self._clean_bing_url(self._extract_href(title_elem)))
        if not title or not url:
            return None

        snippet_elem = container.select_one(".b_caption p, .b_lineclamp2, p")
        date_elem = container.select_one(".news_dt")
        return ParsedResult(
            title=title,
            url=url,
            snippet=self._extract_text(snippet_elem),
            display_url=self._extract_text(container.select_one("cite")),
            date=self._extract_text(date_elem) or None,
        )

    def _clean_bing_url(self, url: str | None) -> str | None:
        """Decode ``/ck/a?u=a1<base64>`` click-tracking links."""
        if not url or "/ck/a" not in url:
            return url
        params = parse_qs(urlparse(url).query)
        encoded = params.get("u", [""])[0]
        if not encoded.startswith("a1"):
            return encoded or None
        payload = encoded[2:]
        payload += "=" * (-len(payload) % 4)
        try:
            return base64.urlsafe_b64decode(payload).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None


# =============================================================================
# Image Parser
# =============================================================================


class ImageResultParser(BaseSearchParser):
    """Engine-agnostic parser for image verticals: every absolute ``img`` on the page."""

    engine_name = "image"
    skip_markers = ("icon", "logo", "sprite")

    def __init__(self, engine_name: str | None = None):
        if engine_name:
            self.engine_name = engine_name

    def _extract_results(self, soup: BeautifulSoup) -> list[ParsedResult]:
        results = []
        seen: set[str] = set()
        for img in soup.find_all("img"):
            src = str(img.get("src") or img.get("data-src") or "")
            if not src.startswith(("http://", "https://")) or src in seen:
                continue
            if any(marker in src.lower() for marker in self.skip_markers):
                continue
            seen.add(src)
            title = str(img.get("alt") or "").strip() or f"Image {len(results) + 1}"
            results.append(ParsedResult(title=title, url=src, thumbnail=src))
        return results


# =============================================================================
# Parser Registry
# =============================================================================


_parser_registry: dict[str, type[BaseSearchParser]] = {
    SearchEngine.DUCKDUCKGO.value: DuckDuckGoParser,
    SearchEngine.GOOGLE.value: GoogleParser,
    SearchEngine.BING.value: BingParser,
}


def get_parser(engine: SearchEngine | str) -> BaseSearchParser:
    """Parser instance for ``engine``; unknown engines get the DuckDuckGo parser."""
    name = engine.value if isinstance(engine, SearchEngine) else str(engine).lower()
    parser_class = _parser_registry.get(name)
    if parser_class is None:
        logger.warning("No parser for engine, using duckduckgo", engine=name)
        parser_class = DuckDuckGoParser
    return parser_class()


def register_parser(engine_name: str, parser_class: type[BaseSearchParser]) -> None:
    if not issubclass(parser_class, BaseSearchParser):
        raise TypeError("Parser must inherit from BaseSearchParser")
    _parser_registry[engine_name.lower()] = parser_class
    logger.info("Registered parser", engine=engine_name)


def parse_search_results(
    html: str,
    engine: SearchEngine | str,
    max_results: int = 10,
    search_type: SearchType | str = SearchType.WEB,
) -> list[SearchResult]:
    """Parse a result page. Image verticals use the image parser for every engine."""
    if SearchType(search_type) is SearchType.IMAGE:
        name = engine.value if isinstance(engine, SearchEngine) else str(engine)
        return ImageResultParser(name).parse(html, max_results)
    return get_parser(engine).parse(html, max_results)
