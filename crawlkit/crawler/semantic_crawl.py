"""
Semantic crawl.

Walks a site breadth-first from its entry points through the acquisition
orchestrator and records the interactive UI tools (forms, search boxes,
buttons, navigation menus) found on each page. The crawl stays on the entry
points' origins, honours include/exclude URL globs and stops at ``max_pages``
visited URLs, ``max_depth`` link hops, or cancellation.
"""

import time
from collections import deque
from collections.abc import Callable

from crawlkit.crawler.models import AcquisitionOptions
from crawlkit.crawler.orchestrator import AcquisitionOrchestrator
from crawlkit.crawler.semantic_extractor import (
    extract_internal_links,
    extract_tools,
    matches_patterns,
)
from crawlkit.crawler.semantic_models import CrawlProgress, CrawlTarget, SemanticCrawlResult
from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.errors import AcquisitionCancelledError, AcquisitionError
from crawlkit.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[CrawlProgress], None]


def default_crawl_options() -> AcquisitionOptions:
    """Raw HTML is all the crawl reads; skip the extraction it does not use."""
    return AcquisitionOptions(extract_links=False, extract_media=False, extract_metadata=False)


class SemanticCrawler:
    """
    Discovers interactive UI tools by crawling a site's pages.

    One crawl runs at a time per instance. ``cancel()`` stops it before the
    next page; the page being fetched finishes first.
    """

    def __init__(
        self,
        orchestrator: AcquisitionOrchestrator,
        *,
        options: AcquisitionOptions | None = None,
    ):
        self._orchestrator = orchestrator
        self._options = options or default_crawl_options()
        self._token: CancellationToken | None = None

    @property
    def is_running(self) -> bool:
        return self._token is not None

    def cancel(self, reason: str = "Semantic crawl cancelled") -> None:
        if self._token is not None:
            self._token.cancel(reason)

    async def crawl(
        self,
        target: CrawlTarget,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> SemanticCrawlResult:
        """Crawl ``target`` and collect tools per page.

        Args:
            target: Entry points and limits.
            on_progress: Called after every page that returned HTML.
            token: Optional caller token; ``cancel()`` sets the same token.

        Returns:
            SemanticCrawlResult. Pages that failed to load are listed in
            ``errors`` as ``"<url>: <message>"``; they never abort the crawl.

        Raises:
            RuntimeError: If a crawl is already running on this instance.
        """
        if self._token is not None:
            raise RuntimeError("A semantic crawl is already running")

        run_token = token if token is not None else CancellationToken()
        self._token = run_token
        started = time.perf_counter()
        result = SemanticCrawlResult(site=target.site)
        visited: set[str] = set()
        queue: deque[tuple[str, int]] = deque((url, 0) for url in target.entry_points)

        with LogContext(crawl_site=target.site):
            logger.info(
                "Semantic crawl started",
                entry_points=len(target.entry_points),
                max_pages=target.max_pages,
                max_depth=target.max_depth,
            )
            try:
                while queue and len(visited) < target.max_pages:
                    if run_token.cancelled:
                        result.cancelled = True
                        break

                    url, depth = queue.popleft()
                    if url in visited:
                        continue
                    visited.add(url)

                    # Filtered URLs still count as visited.
                    if target.include_patterns and not matches_patterns(
                        url, target.include_patterns
                    ):
                        continue
                    if target.exclude_patterns and matches_patterns(url, target.exclude_patterns):
                        continue

                    try:
                        response = await self._orchestrator.acquire(url, self._options, run_token)
                    except AcquisitionCancelledError:
                        result.cancelled = True
                        break
                    except AcquisitionError as e:
                        logger.warning("Crawl page failed", url=url[:80], error_code=e.code.value)
                        result.errors.append(f"{url}: {e.message}")
                        continue

                    html = response.result.html or response.result.content
                    if not html:
                        continue

                    tools = extract_tools(html)
                    if tools:
                        result.tools_by_page[url] = tools
                        result.tools_discovered += len(tools)

                    if on_progress is not None:
                        on_progress(
                            CrawlProgress(
                                pages_scanned=len(visited),
                                pages_total=min(len(visited) + len(queue), target.max_pages),
                                current_url=url,
                                tools_found=result.tools_discovered,
                                errors=len(result.errors),
                            )
                        )

                    if depth < target.max_depth:
                        for link in extract_internal_links(html, url):
                            if link not in visited and len(visited) + len(queue) < target.max_pages:
                                queue.append((link, depth + 1))
            finally:
                self._token = None

            result.pages_scanned = len(visited)
            result.duration_ms = (time.perf_counter() - started) * 1000
            logger.info(
                "Semantic crawl finished",
                pages_scanned=result.pages_scanned,
                tools_discovered=result.tools_discovered,
                errors=len(result.errors),
                cancelled=result.cancelled,
            )
        return result
