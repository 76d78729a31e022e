"""
Default content extraction.

Turns raw HTML into text, markdown, links, media and metadata. Backends call
``build_result`` so every backend produces the same AcquisitionResult shape.
"""

import json
import re
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urljoin, urlparse

import trafilatura
from bs4 import BeautifulSoup

from crawlkit.crawler.models import (
    AcquisitionOptions,
    AcquisitionResult,
    ExtractedAudio,
    ExtractedImage,
    ExtractedMedia,
    ExtractedVideo,
    Link,
    PageMetadata,
)
from crawlkit.utils.logging import get_logger

logger = get_logger(__name__)

_VIDEO_PROVIDERS = {
    "youtube.com": "youtube",
    "youtube-nocookie.com": "youtube",
    "youtu.be": "youtube",
    "vimeo.com": "vimeo",
    "dailymotion.com": "dailymotion",
}


@runtime_checkable
class ContentExtractor(Protocol):
    """Narrow contract backends depend on."""

    def to_text(self, html: str) -> str: ...

    def to_markdown(self, html: str) -> str: ...

    def extract_links(self, html: str, base_url: str) -> list[Link]: ...

    def extract_media(self, html: str, base_url: str) -> ExtractedMedia: ...

    def extract_metadata(self, html: str) -> PageMetadata: ...


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _plain_text(soup: BeautifulSoup) -> str:
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return re.sub(r"\s+", " ", soup.get_text(" ")).strip()


class DefaultContentExtractor:
    """trafilatura for main content, BeautifulSoup for everything structural."""

    def to_text(self, html: str) -> str:
        if not html:
            return ""
        extracted = trafilatura.extract(
            html,
            include_comments=False,
            include_tables=True,
            include_links=False,
            include_images=False,
            output_format="txt",
        )
        if extracted:
            return extracted
        # trafilatura returns None for pages without a main-content block
        return _plain_text(_soup(html))

    def to_markdown(self, html: str) -> str:
        if not html:
            return ""
        extracted = trafilatura.extract(
            html,
            include_comments=False,
            include_tables=True,
            include_links=True,
            include_images=True,
            include_formatting=True,
            output_format="markdown",
        )
        return extracted or self.to_text(html)

    def extract_links(self, html: str, base_url: str) -> list[Link]:
        origin = urlparse(base_url).netloc
        links: list[Link] = []
        seen: set[str] = set()

        for anchor in _soup(html).find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.startswith(("#", "javascript:", "mailto:", "tel:")):
                continue
            absolute = urljoin(base_url, href)
            if absolute in seen:
                continue
            seen.add(absolute)
            rel = anchor.get("rel")
            links.append(
                Link(
                    href=absolute,
                    text=anchor.get_text(" ", strip=True),
                    title=anchor.get("title"),
                    rel=" ".join(rel) if isinstance(rel, list) else rel,
                    is_external=urlparse(absolute).netloc != origin,
                )
            )

        return links

    def extract_media(self, html: str, base_url: str) -> ExtractedMedia:
        soup = _soup(html)
        media = ExtractedMedia()

        for img in soup.find_all("img"):
            src = img.get("src") or img.get("data-src")
            if not src or src.startswith("data:"):
                continue
            media.images.append(
                ExtractedImage(
                    src=urljoin(base_url, src),
                    alt=img.get("alt"),
                    title=img.get("title"),
                    width=_as_int(img.get("width")),
                    height=_as_int(img.get("height")),
                )
            )

        for video in soup.find_all("video"):
            src = video.get("src")
            if not src:
                source = video.find("source", src=True)
                src = source["src"] if source else None
            if src:
                media.videos.append(
                    ExtractedVideo(
                        src=urljoin(base_url, src),
                        title=video.get("title"),
                        thumbnail=video.get("poster"),
                    )
                )

        for iframe in soup.find_all("iframe", src=True):
            src = urljoin(base_url, iframe["src"])
            host = urlparse(src).netloc.lower().removeprefix("www.")
            provider = next((p for d, p in _VIDEO_PROVIDERS.items() if host.endswith(d)), None)
            if provider:
                media.videos.append(
                    ExtractedVideo(
                        src=src, embed_url=src, provider=provider, title=iframe.get("title")
                    )
                )

        for audio in soup.find_all("audio"):
            src = audio.get("src")
            if not src:
                source = audio.find("source", src=True)
                src = source["src"] if source else None
            if src:
                media.audio.append(
                    ExtractedAudio(src=urljoin(base_url, src), title=audio.get("title"))
                )

        return media

    def extract_metadata(self, html: str) -> PageMetadata:
        soup = _soup(html)

        def meta(*names: str) -> str | None:
            for name in names:
                tag = soup.find("meta", attrs={"name": name}) or soup.find(
                    "meta", attrs={"property": name}
                )
                if tag and tag.get("content"):
                    return tag["content"].strip()
            return None

        keywords = meta("keywords")
        canonical = soup.find("link", rel="canonical")
        html_tag = soup.find("html")

        structured: list[dict[str, Any]] = []
        for script in soup.find_all("script", type="application/ld+json"):
            try:
                data = json.loads(script.string or "")
            except (json.JSONDecodeError, TypeError):
                continue
            if isinstance(data, dict):
                structured.append(data)
            elif isinstance(data, list):
                structured.extend(d for d in data if isinstance(d, dict))

        return PageMetadata(
            title=soup.title.get_text(strip=True) if soup.title else None,
            description=meta("description"),
            keywords=[k.strip() for k in keywords.split(",") if k.strip()] if keywords else [],
            author=meta("author"),
            published_time=meta("article:published_time"),
            modified_time=meta("article:modified_time"),
            og_title=meta("og:title"),
            og_description=meta("og:description"),
            og_image=meta("og:image"),
            og_type=meta("og:type"),
            twitter_card=meta("twitter:card"),
            canonical=canonical.get("href") if canonical else None,
            lang=html_tag.get("lang") if html_tag else None,
            structured_data=structured,
        )


def _as_int(value: Any) -> int | None:
    try:
        return int(str(value).strip().rstrip("px"))
    except (TypeError, ValueError):
        return None


def extract_title(html: str) -> str:
    soup = _soup(html)
    if soup.title:
        return soup.title.get_text(strip=True)
    h1 = soup.find("h1")
    return h1.get_text(strip=True) if h1 else ""


_default_extractor: DefaultContentExtractor | None = None


def get_default_extractor() -> DefaultContentExtractor:
    global _default_extractor
    if _default_extractor is None:
        _default_extractor = DefaultContentExtractor()
    return _default_extractor


def build_result(
    url: str,
    html: str,
    options: AcquisitionOptions,
    *,
    extractor: ContentExtractor | None = None,
    title: str | None = None,
    status_code: int | None = None,
    content_type: str | None = None,
    load_time_ms: float = 0.0,
    etag: str | None = None,
    last_modified: str | None = None,
    max_age: float | None = None,
) -> AcquisitionResult:
    """Assemble an AcquisitionResult from raw HTML and response facts.

    Links, media and metadata are only computed when the matching option is
    enabled, and are None otherwise.
    """
    extractor = extractor or get_default_extractor()

    result = AcquisitionResult(
        url=url,
        title=title if title is not None else extract_title(html),
        html=html,
        content=extractor.to_text(html),
        markdown=extractor.to_markdown(html),
        status_code=status_code,
        content_type=content_type,
        load_time_ms=load_time_ms,
        etag=etag,
        last_modified=last_modified,
        max_age=max_age,
    )
    if options.extract_links:
        result.links = extractor.extract_links(html, url)
    if options.extract_media:
        result.media = extractor.extract_media(html, url)
    if options.extract_metadata:
        result.metadata = extractor.extract_metadata(html)

    logger.debug(
        "Extraction complete",
        url=url,
        text_length=len(result.content),
        link_count=len(result.links or []),
    )
    return result
