"""
Interactive UI tool discovery.

Pure functions that read a page's HTML and describe what a user can do on it
(forms, search boxes, buttons, navigation menus) as SemanticTool entries, plus
the same-origin link and glob helpers the semantic crawl needs.
"""

import re
from urllib.parse import urldefrag, urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from crawlkit.crawler.semantic_models import (
    PropertyType,
    SemanticTool,
    ToolInputSchema,
    ToolProperty,
)

FORM_CONFIDENCE = 0.9
SEARCH_CONFIDENCE = 0.85
NAVIGATION_CONFIDENCE = 0.75
BUTTON_CONFIDENCE = 0.7

SLUG_MAX_LENGTH = 60

_SKIPPED_HREF_PREFIXES = ("#", "javascript:", "mailto:")
_SKIPPED_INPUT_TYPES = ("hidden", "submit")


# ============================================================================
# Helpers
# ============================================================================


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a URL glob.

    ``**`` matches anything, ``*`` matches within one path segment and ``?``
    matches a single character. The whole URL must match.

    Examples:
        >>> bool(glob_to_regex("https://a.test/docs/*").match("https://a.test/docs/x"))
        True
        >>> bool(glob_to_regex("https://a.test/docs/*").match("https://a.test/docs/x/y"))
        False
    """
    escaped = re.escape(pattern)
    escaped = escaped.replace(r"\*\*", "\0").replace(r"\*", "[^/]*")
    escaped = escaped.replace("\0", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$")


def matches_patterns(url: str, patterns: list[str] | tuple[str, ...]) -> bool:
    return any(glob_to_regex(p).match(url) for p in patterns)


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")
    return slug[:SLUG_MAX_LENGTH]


def _attr(tag: Tag, *names: str) -> str | None:
    """First non-empty attribute among ``names``."""
    for name in names:
        value = tag.get(name)
        if isinstance(value, list):
            value = " ".join(value)
        if value:
            return value
    return None


def _input_type(html_type: str | None) -> PropertyType:
    kind = (html_type or "").lower()
    if kind in ("number", "range"):
        return "number"
    if kind == "checkbox":
        return "boolean"
    return "string"


# ============================================================================
# Tool extraction
# ============================================================================


def _form_tools(soup: BeautifulSoup) -> list[SemanticTool]:
    tools: list[SemanticTool] = []
    for form in soup.find_all("form"):
        form_name = _attr(form, "aria-label", "name", "id")
        if not form_name:
            continue

        properties: dict[str, ToolProperty] = {}
        required: list[str] = []

        for field in form.find_all("input"):
            field_type = (_attr(field, "type") or "text").lower()
            if field_type in _SKIPPED_INPUT_TYPES:
                continue
            name = _attr(field, "name", "id", "aria-label")
            if not name:
                continue
            properties[name] = ToolProperty(
                type=_input_type(field_type),
                description=_attr(field, "placeholder", "aria-label"),
            )
            if field.has_attr("required"):
                required.append(name)

        for area in form.find_all("textarea"):
            name = _attr(area, "name", "id", "aria-label")
            if name:
                properties[name] = ToolProperty(
                    type="string", description=_attr(area, "placeholder")
                )

        for select in form.find_all("select"):
            name = _attr(select, "name", "id", "aria-label")
            if name:
                properties[name] = ToolProperty(type="string")

        if not properties:
            continue

        tools.append(
            SemanticTool(
                name=f"form_{slugify(form_name)}",
                description=f"Form: {form_name}",
                input_schema=ToolInputSchema(properties=properties, required=required or None),
                confidence=FORM_CONFIDENCE,
                category="form",
            )
        )
    return tools


def _search_tools(soup: BeautifulSoup) -> list[SemanticTool]:
    tools: list[SemanticTool] = []
    for field in soup.find_all("input"):
        if _attr(field, "type") != "search" and _attr(field, "role") != "search":
            continue
        label = _attr(field, "aria-label", "name", "id") or "query"
        field_name = _attr(field, "name", "id", "aria-label") or "query"
        placeholder = _attr(field, "placeholder")

        tools.append(
            SemanticTool(
                name=f"search_{slugify(label)}",
                description=f"Search: {placeholder}" if placeholder else f"Search input: {label}",
                input_schema=ToolInputSchema(
                    properties={
                        field_name: ToolProperty(
                            type="string", description=placeholder or "Search query"
                        )
                    },
                    required=[field_name],
                ),
                confidence=SEARCH_CONFIDENCE,
                category="search",
            )
        )
    return tools


def _button_tools(soup: BeautifulSoup) -> list[SemanticTool]:
    tools: list[SemanticTool] = []
    for button in soup.find_all("button"):
        # Submit and reset buttons belong to their form's tool.
        if _attr(button, "type") in ("submit", "reset"):
            continue
        label = _attr(button, "aria-label") or button.get_text(" ", strip=True)
        if not label:
            continue
        tools.append(
            SemanticTool(
                name=f"button_{slugify(label)}",
                description=f"Button: {label}",
                confidence=BUTTON_CONFIDENCE,
                category="button",
            )
        )
    return tools


def _navigation_tools(soup: BeautifulSoup) -> list[SemanticTool]:
    tools: list[SemanticTool] = []
    for nav in soup.find_all("nav"):
        label = _attr(nav, "aria-label", "id") or "navigation"
        items: list[str] = []
        for anchor in nav.find_all("a"):
            text = _attr(anchor, "aria-label") or anchor.get_text(" ", strip=True)
            if text:
                items.append(text)
        if not items:
            continue
        tools.append(
            SemanticTool(
                name=f"nav_{slugify(label)}",
                description=f"Navigation: {label} ({len(items)} items)",
                input_schema=ToolInputSchema(
                    properties={
                        "item": ToolProperty(
                            type="string", description=f"One of: {', '.join(items)}"
                        )
                    },
                    required=["item"],
                ),
                confidence=NAVIGATION_CONFIDENCE,
                category="navigation",
            )
        )
    return tools


def extract_tools(html: str) -> list[SemanticTool]:
    """Forms, search inputs, buttons and nav menus on a page.

    Tools are returned in that order; a name seen twice keeps the first.
    """
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    tools = _form_tools(soup) + _search_tools(soup) + _button_tools(soup) + _navigation_tools(soup)

    seen: set[str] = set()
    unique: list[SemanticTool] = []
    for tool in tools:
        if tool.name in seen:
            continue
        seen.add(tool.name)
        unique.append(tool)
    return unique


def extract_internal_links(html: str, base_url: str) -> list[str]:
    """Same-origin links on a page, fragments removed, in document order."""
    base = urlsplit(base_url)
    origin = (base.scheme, base.netloc)
    links: dict[str, None] = {}

    for anchor in BeautifulSoup(html, "html.parser").find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(_SKIPPED_HREF_PREFIXES):
            continue
        try:
            resolved, _ = urldefrag(urljoin(base_url, href))
            parts = urlsplit(resolved)
        except ValueError:
            continue
        if (parts.scheme, parts.netloc) != origin:
            continue
        links[resolved] = None

    return list(links)
