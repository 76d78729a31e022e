"""
Playwright-rendered acquisition backend.

Launches one headless Chromium per backend and gives every acquisition its
own browser context and page, both closed on every exit path.
"""

import asyncio
import time
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from crawlkit.crawler.backend import BackendKind, BaseAcquisitionBackend
from crawlkit.crawler.extraction import ContentExtractor, build_result
from crawlkit.crawler.models import AcquisitionOptions, AcquisitionResult, BackendName
from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.config import BrowserConfig, get_settings
from crawlkit.utils.errors import (
    AcquisitionError,
    AcquisitionTimeoutError,
    ElementNotFoundError,
    EvaluationError,
    NavigationError,
    wrap_exception,
)
from crawlkit.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = get_logger(__name__)


class BrowserRenderedBackend(BaseAcquisitionBackend):
    """
    Headless browser backend.

    Supports:
    - Wait policies (load, domcontentloaded, networkidle)
    - Waiting for a selector
    - Running a custom script before content capture
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        *,
        extractor: ContentExtractor | None = None,
    ):
        super().__init__(BackendName.BROWSER.value, BackendKind.BROWSER)
        self._config = config or get_settings().browser
        self._extractor = extractor
        self._playwright: "Playwright | None" = None
        self._browser: "Browser | None" = None
        self._launch_lock = asyncio.Lock()

    async def _ensure_browser(self) -> "Browser":
        async with self._launch_lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._playwright is None:
                self._playwright = await async_playwright().start()
                logger.info("Playwright initialized")
            self._browser = await self._playwright.chromium.launch(
                headless=self._config.headless,
                args=self._config.launch_args,
            )
            logger.info("Browser launched", headless=self._config.headless)
            return self._browser

    async def _check_availability(self) -> bool:
        await self._ensure_browser()
        return True

    async def _new_context(self, options: AcquisitionOptions) -> "BrowserContext":
        browser = await self._ensure_browser()
        kwargs: dict[str, Any] = {
            "viewport": {
                "width": self._config.viewport_width,
                "height": self._config.viewport_height,
            },
        }
        if options.headers:
            kwargs["extra_http_headers"] = options.headers
        return await browser.new_context(**kwargs)

    async def acquire(
        self,
        url: str,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> AcquisitionResult:
        self._check_closed()
        options = options or AcquisitionOptions()
        wait_until = options.wait_until or self._config.default_wait_until
        timeout_ms = int(options.timeout * 1000)
        started = time.perf_counter()

        context: "BrowserContext | None" = None
        page: "Page | None" = None
        try:
            context = await self._new_context(options)
            page = await context.new_page()

            try:
                response = await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
            except PlaywrightTimeoutError as e:
                raise AcquisitionTimeoutError(
                    f"Navigation timed out: {url}", timeout=options.timeout, details={"url": url}
                ) from e
            except PlaywrightError as e:
                raise NavigationError(str(e), url=url) from e

            if options.wait_for_selector:
                try:
                    await page.wait_for_selector(options.wait_for_selector, timeout=timeout_ms)
                except PlaywrightTimeoutError as e:
                    raise ElementNotFoundError(options.wait_for_selector) from e

            if options.script:
                try:
                    await page.evaluate(options.script)
                except PlaywrightError as e:
                    raise EvaluationError(str(e), details={"url": url}) from e
                await asyncio.sleep(self._config.script_settle_seconds)

            html = await page.content()
            title = await page.title()
            content_type = None
            if response is not None:
                content_type = (await response.all_headers()).get("content-type")

            result = build_result(
                page.url or url,
                html,
                options,
                extractor=self._extractor,
                title=title,
                status_code=response.status if response else None,
                content_type=content_type,
                load_time_ms=(time.perf_counter() - started) * 1000,
            )
            logger.info(
                "Browser acquisition success",
                url=url[:80],
                status=result.status_code,
                content_length=len(html),
            )
            return result

        except AcquisitionError:
            raise
        except Exception as e:
            logger.warning("Browser acquisition error", url=url[:80], error=str(e))
            raise wrap_exception(e, url=url) from e
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception as e:
                    logger.debug("Page close failed", error=str(e))
            if context is not None:
                try:
                    await context.close()
                except Exception as e:
                    logger.debug("Context close failed", error=str(e))

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug("Browser close failed", error=str(e))
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("Playwright stop failed", error=str(e))
            self._playwright = None

        await super().close()
        logger.info("Browser backend closed")
