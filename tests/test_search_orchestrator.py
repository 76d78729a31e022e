"""
Tests for SearchOrchestrator.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-SO-N-01 | DuckDuckGo query | Equivalence – normal | Parsed response over HTTP | |
| TC-SO-N-02 | Google query | Equivalence – normal | Browser backend used | browser_engines |
| TC-SO-N-03 | use_browser=True on DuckDuckGo | Equivalence – normal | Browser backend used | |
| TC-SO-N-04 | Same query twice | Equivalence – normal | Fetched twice | Never cached |
| TC-SO-N-05 | Acquisition options | Equivalence – normal | domcontentloaded, no links/metadata | |
| TC-SO-N-06 | Image vertical | Equivalence – normal | Media extraction on | |
| TC-SO-B-01 | No options | Boundary – default | Configured engine and limit | |
| TC-SO-A-01 | Backend fails | Abnormal – error | Error propagated | |
| TC-SO-N-07 | search_many with one failing query | Equivalence – normal | Responses keyed by query, one failure | |
| TC-SO-N-08 | is_available | Equivalence – normal | True with a backend, False without | |
"""

import pytest

pytestmark = pytest.mark.unit

from crawlkit.crawler.backend import BackendKind
from crawlkit.crawler.models import AcquisitionResult, BatchOptions
from crawlkit.crawler.orchestrator import AcquisitionOrchestrator
from crawlkit.search.models import SearchEngine, SearchOptions, SearchResponse, SearchType
from crawlkit.search.orchestrator import SearchOrchestrator
from crawlkit.search.url_builder import build_search_url
from crawlkit.utils.errors import NavigationError

DDG_PAGE = """
<div class="result"><a class="result__a" href="https://one.example/">One</a>
  <a class="result__snippet">First hit</a></div>
<div class="result"><a class="result__a" href="https://two.example/">Two</a></div>
<div class="result"><a class="result__a" href="https://three.example/">Three</a></div>
"""

GOOGLE_PAGE = """
<div class="g"><a href="https://g1.example/"><h3>G1</h3></a></div>
<div class="g"><a href="https://g2.example/"><h3>G2</h3></a></div>
"""


def serp(html: str):
    def factory(url, options):
        return AcquisitionResult(url=url, html=html, status_code=200)

    return factory


@pytest.fixture
def backends(registry, make_backend):
    http = make_backend("http", BackendKind.HTTP, result_factory=serp(DDG_PAGE))
    browser = make_backend("browser", BackendKind.BROWSER, result_factory=serp(GOOGLE_PAGE))
    registry.register(browser)
    registry.register(http)
    return http, browser


@pytest.fixture
def search(registry, backends, fast_settings) -> SearchOrchestrator:
    acquisition = AcquisitionOrchestrator(registry, settings=fast_settings)
    return SearchOrchestrator(acquisition, settings=fast_settings)


class TestSearch:
    """Tests for search()."""

    async def test_duckduckgo_over_http(self, search, backends):
        """DuckDuckGo pages are fetched over HTTP and parsed (TC-SO-N-01)."""
        # Given
        http, browser = backends

        # When
        response = await search.search("python", SearchOptions(max_results=2))

        # Then
        assert isinstance(response, SearchResponse)
        assert response.engine is SearchEngine.DUCKDUCKGO
        assert [r.title for r in response.results] == ["One", "Two"]
        assert response.total_results == 2
        assert response.results[0].snippet == "First hit"
        assert http.call_urls == [build_search_url("python", "duckduckgo")]
        assert browser.calls == []

    async def test_google_uses_browser(self, search, backends):
        """Engines listed as browser engines are rendered (TC-SO-N-02)."""
        http, browser = backends

        response = await search.search("python", SearchOptions(engine="google", lang="en"))

        assert [r.url for r in response.results] == ["https://g1.example/", "https://g2.example/"]
        assert browser.call_urls == [build_search_url("python", "google", lang="en")]
        assert http.calls == []

    async def test_use_browser_flag(self, search, backends):
        """use_browser forces rendering for any engine (TC-SO-N-03)."""
        _, browser = backends

        await search.search("python", SearchOptions(use_browser=True))

        assert len(browser.calls) == 1

    async def test_never_cached(self, search, backends):
        """Result pages are fetched fresh every time (TC-SO-N-04)."""
        http, _ = backends

        await search.search("python")
        await search.search("python")

        assert len(http.calls) == 2


class TestAcquisitionOptions:
    def test_web_options(self, search):
        """Result pages skip links and metadata (TC-SO-N-05)."""
        options = search.acquisition_options(SearchOptions(timeout=12))

        assert options.wait_until == "domcontentloaded"
        assert options.use_cache is False
        assert options.extract_links is False
        assert options.extract_metadata is False
        assert options.extract_media is False
        assert options.prefer_browser is False
        assert options.timeout == 12

    def test_image_options(self, search):
        """Image and video verticals keep media extraction (TC-SO-N-06)."""
        options = search.acquisition_options(
            SearchOptions(engine=SearchEngine.BING, type=SearchType.IMAGE)
        )

        assert options.extract_media is True
        assert options.prefer_browser is True

    def test_default_options(self, search, fast_settings):
        """Defaults come from settings (TC-SO-B-01)."""
        options = search.default_options()

        assert options.engine.value == fast_settings.search.default_engine
        assert options.max_results == fast_settings.search.max_results


class TestFailuresAndBatches:
    async def test_backend_failure_propagates(self, registry, make_backend, fast_settings):
        """Acquisition errors reach the caller (TC-SO-A-01)."""
        registry.register(
            make_backend("http", always_fail=True, error=NavigationError("HTTP 503"))
        )
        search = SearchOrchestrator(
            AcquisitionOrchestrator(registry, settings=fast_settings), settings=fast_settings
        )

        with pytest.raises(NavigationError):
            await search.search("python")

    async def test_search_many(self, search, backends):
        """Responses are keyed by query; failures are isolated (TC-SO-N-07)."""
        # Given
        http, _ = backends
        http.failing = {build_search_url("broken", "duckduckgo")}

        # When
        result = await search.search_many(
            ["python", "rust", "broken"],
            BatchOptions(concurrency=2, retries=1, retry_delay=0),
        )

        # Then
        assert set(result.results) == {"python", "rust"}
        assert all(isinstance(r, SearchResponse) for r in result.results.values())
        assert result.results["rust"].query == "rust"
        assert set(result.failures) == {"broken"}
        assert result.failures["broken"].attempts == 2

    async def test_is_available(self, search, registry, fast_settings):
        """Available when any backend answers (TC-SO-N-08)."""
        from crawlkit.crawler.backend import BackendRegistry

        assert await search.is_available() is True
        empty = SearchOrchestrator(
            AcquisitionOrchestrator(BackendRegistry(), settings=fast_settings),
            settings=fast_settings,
        )
        assert await empty.is_available() is False
