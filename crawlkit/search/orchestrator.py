"""
Search orchestrator.

Builds the engine result page URL, acquires it through the acquisition
orchestrator (always fresh, never cached) and hands the raw HTML to the
engine's parser.
"""

import time
from collections.abc import Sequence

from crawlkit.crawler.batch import run_windowed
from crawlkit.crawler.models import AcquisitionOptions, BatchOptions, BatchResult
from crawlkit.crawler.orchestrator import AcquisitionOrchestrator
from crawlkit.search.models import SearchOptions, SearchResponse, SearchType
from crawlkit.search.parsers import parse_search_results
from crawlkit.search.url_builder import build_search_url
from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.config import Settings, get_settings
from crawlkit.utils.logging import get_logger

logger = get_logger(__name__)


class SearchOrchestrator:
    """
    Web search over the acquisition backends.

    Engines listed in ``search.browser_engines`` (google and bing by default)
    are rendered in a browser backend; DuckDuckGo's HTML endpoint works over
    plain HTTP.
    """

    def __init__(
        self,
        acquisition: AcquisitionOrchestrator,
        *,
        settings: Settings | None = None,
    ):
        self._acquisition = acquisition
        self._settings = settings or get_settings()

    def default_options(self) -> SearchOptions:
        config = self._settings.search
        return SearchOptions(engine=config.default_engine, max_results=config.max_results)

    def acquisition_options(self, options: SearchOptions) -> AcquisitionOptions:
        """Acquisition options used to fetch one result page."""
        needs_browser = (
            options.use_browser or options.engine.value in self._settings.search.browser_engines
        )
        return AcquisitionOptions(
            timeout=options.timeout,
            wait_until="domcontentloaded",
            use_cache=False,
            extract_links=False,
            extract_metadata=False,
            extract_media=options.type in (SearchType.IMAGE, SearchType.VIDEO),
            prefer_browser=needs_browser,
        )

    async def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        token: CancellationToken | None = None,
    ) -> SearchResponse:
        """Run one query.

        Raises:
            AcquisitionError: When the result page cannot be acquired.
        """
        options = options or self.default_options()
        started = time.perf_counter()
        url = build_search_url(
            query,
            options.engine,
            options.type,
            lang=options.lang,
            region=options.region,
            page=options.page,
        )
        logger.info(
            "Search started",
            query=query[:80],
            engine=options.engine.value,
            search_type=options.type.value,
        )

        response = await self._acquisition.acquire(url, self.acquisition_options(options), token)
        page = response.result
        results = parse_search_results(
            page.html or page.content,
            options.engine,
            options.max_results,
            options.type,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Search finished",
            query=query[:80],
            engine=options.engine.value,
            results=len(results),
            backend=response.source,
        )
        return SearchResponse(
            query=query,
            engine=options.engine,
            results=results,
            total_results=len(results),
            search_time_ms=elapsed_ms,
        )

    async def search_many(
        self,
        queries: Sequence[str],
        batch_options: BatchOptions | None = None,
        options: SearchOptions | None = None,
        token: CancellationToken | None = None,
    ) -> BatchResult:
        """Run many queries in windows. ``results`` maps query to SearchResponse."""
        config = self._settings.search
        batch_options = batch_options or BatchOptions(
            concurrency=config.concurrency,
            retries=config.retries,
            retry_delay=config.retry_delay,
        )

        async def worker(query: str) -> SearchResponse:
            return await self.search(query, options, token)

        return await run_windowed(
            queries,
            worker,
            concurrency=batch_options.concurrency,
            retries=batch_options.retries,
            retry_delay=batch_options.retry_delay,
            window_delay=(config.window_delay_min, config.window_delay_max),
            token=token,
        )

    async def is_available(self) -> bool:
        return bool(await self._acquisition.get_available_backends())
