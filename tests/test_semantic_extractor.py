"""
Tests for interactive UI tool discovery helpers.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-SX-N-01 | Named form with inputs, textarea, select | Equivalence – normal | form_ tool, typed properties, required list | |
| TC-SX-B-01 | Form without name / without usable fields | Boundary – skipped | No form tool | |
| TC-SX-N-02 | input type=search / role=search | Equivalence – normal | search_ tool with required field | |
| TC-SX-N-03 | Plain, submit and aria-labelled buttons | Equivalence – normal | Only non-submit buttons | |
| TC-SX-N-04 | nav with links | Equivalence – normal | nav_ tool listing items | |
| TC-SX-B-02 | Empty nav / empty HTML | Boundary – empty | No tools | |
| TC-SX-B-03 | Two tools with the same slug | Boundary – duplicate | First kept | |
| TC-SX-N-05 | Links across origins, fragments, schemes | Equivalence – normal | Same-origin, defragmented, unique | |
| TC-SX-N-06 | Globs with *, ** and ? | Equivalence – normal | Segment-aware matching | |
| TC-SX-N-07 | slugify | Equivalence – normal | Lowercase underscore slug, 60 chars max | |
"""

import pytest

pytestmark = pytest.mark.unit

from crawlkit.crawler.semantic_extractor import (
    extract_internal_links,
    extract_tools,
    glob_to_regex,
    matches_patterns,
    slugify,
)

FORM_PAGE = """
<form aria-label="Contact us">
  <input type="hidden" name="csrf" value="x">
  <input type="email" name="email" placeholder="you@example.com" required>
  <input type="number" name="age">
  <input type="checkbox" id="subscribe" aria-label="Subscribe">
  <input type="text">
  <textarea name="message" placeholder="Say hi"></textarea>
  <select name="topic"><option>Sales</option></select>
  <button type="submit">Send</button>
</form>
<form><input name="anonymous"></form>
<form id="empty"><input type="submit" name="go"></form>
"""


def by_name(tools):
    return {t.name: t for t in tools}


class TestFormTools:
    def test_named_form(self):
        """Form fields become typed properties (TC-SX-N-01)."""
        # When
        tools = by_name(extract_tools(FORM_PAGE))

        # Then
        form = tools["form_contact_us"]
        schema = form.input_schema
        assert form.description == "Form: Contact us"
        assert form.category == "form"
        assert form.confidence == 0.9
        assert set(schema.properties) == {"email", "age", "subscribe", "message", "topic"}
        assert schema.properties["email"].type == "string"
        assert schema.properties["email"].description == "you@example.com"
        assert schema.properties["age"].type == "number"
        assert schema.properties["subscribe"].type == "boolean"
        assert schema.properties["subscribe"].description == "Subscribe"
        assert schema.properties["message"].description == "Say hi"
        assert schema.required == ["email"]

    def test_unusable_forms_skipped(self):
        """Unnamed forms and forms with no usable field yield nothing (TC-SX-B-01)."""
        names = [t.name for t in extract_tools(FORM_PAGE)]

        assert "form_empty" not in names
        assert [n for n in names if n.startswith("form_")] == ["form_contact_us"]


class TestOtherTools:
    def test_search_inputs(self):
        """Search boxes become single-field tools (TC-SX-N-02)."""
        html = """
        <input type="search" name="q" placeholder="Search docs">
        <input role="search" aria-label="Site search">
        """

        tools = by_name(extract_tools(html))

        docs = tools["search_q"]
        assert docs.description == "Search: Search docs"
        assert docs.input_schema.required == ["q"]
        assert docs.input_schema.properties["q"].description == "Search docs"
        site = tools["search_site_search"]
        assert site.description == "Search input: Site search"
        assert site.input_schema.required == ["Site search"]
        assert site.input_schema.properties["Site search"].description == "Search query"

    def test_buttons(self):
        """Submit/reset buttons are left to their forms (TC-SX-N-03)."""
        html = """
        <button>Open <b>menu</b></button>
        <button aria-label="Close dialog">X</button>
        <button type="submit">Send</button>
        <button type="reset">Clear</button>
        <button></button>
        """

        tools = extract_tools(html)

        assert [t.name for t in tools] == ["button_open_menu", "button_close_dialog"]
        assert tools[0].description == "Button: Open menu"
        assert tools[0].input_schema.properties == {}
        assert tools[0].confidence == 0.7

    def test_navigation(self):
        """Navigation menus list their items (TC-SX-N-04)."""
        html = """
        <nav aria-label="Main">
          <a href="/">Home</a><a href="/docs">Docs</a><a href="/x" aria-label="Pricing"></a>
        </nav>
        """

        (nav,) = extract_tools(html)

        assert nav.name == "nav_main"
        assert nav.description == "Navigation: Main (3 items)"
        assert nav.input_schema.properties["item"].description == "One of: Home, Docs, Pricing"
        assert nav.input_schema.required == ["item"]

    @pytest.mark.parametrize("html", ["", "<nav><a href='/'></a></nav>", "<p>static</p>"])
    def test_nothing_interactive(self, html):
        """Pages without tools give an empty list (TC-SX-B-02)."""
        assert extract_tools(html) == []

    def test_duplicate_names_keep_first(self):
        """Tools are unique by name (TC-SX-B-03)."""
        html = "<button>Save</button><button aria-label='save'>S</button>"

        tools = extract_tools(html)

        assert len(tools) == 1
        assert tools[0].description == "Button: Save"


class TestLinksAndPatterns:
    def test_internal_links(self):
        """Only same-origin links, without fragments, once each (TC-SX-N-05)."""
        html = """
        <a href="/docs#intro">Docs</a>
        <a href="https://example.com/docs">Docs again</a>
        <a href="pricing">Pricing</a>
        <a href="https://other.example/">Other</a>
        <a href="http://example.com/insecure">Other scheme</a>
        <a href="#top">Top</a>
        <a href="javascript:void(0)">JS</a>
        <a href="mailto:a@example.com">Mail</a>
        """

        links = extract_internal_links(html, "https://example.com/guide/")

        assert links == ["https://example.com/docs", "https://example.com/guide/pricing"]

    @pytest.mark.parametrize(
        "pattern, url, expected",
        [
            ("https://a.test/docs/*", "https://a.test/docs/intro", True),
            ("https://a.test/docs/*", "https://a.test/docs/intro/deep", False),
            ("https://a.test/docs/**", "https://a.test/docs/intro/deep", True),
            ("https://a.test/v?/*", "https://a.test/v2/x", True),
            ("https://a.test/a+b", "https://a.test/a+b", True),
            ("https://a.test/a+b", "https://a.test/aab", False),
        ],
    )
    def test_globs(self, pattern, url, expected):
        """Globs are anchored and segment-aware (TC-SX-N-06)."""
        assert bool(glob_to_regex(pattern).match(url)) is expected

    def test_matches_patterns(self):
        assert matches_patterns("https://a.test/blog/x", ["https://a.test/docs/*", "**/blog/*"])
        assert not matches_patterns("https://a.test/shop", ["**/blog/*"])

    def test_slugify(self):
        """Slugs are lowercase, underscore-joined and bounded (TC-SX-N-07)."""
        assert slugify("  Contact Us!  ") == "contact_us"
        assert slugify("Über-Menü") == "ber_men"
        assert len(slugify("x" * 100)) == 60
