"""
Attach-to-running-browser backend.

Opens a tab in a browser that is already listening on its debugging port,
drives it over the wire protocol, then closes the tab. The browser itself is
never launched or quit.
"""

import asyncio
import json
import time

from crawlkit.crawler.backend import BackendKind, BaseAcquisitionBackend
from crawlkit.crawler.extraction import ContentExtractor, build_result
from crawlkit.crawler.models import AcquisitionOptions, AcquisitionResult, BackendName
from crawlkit.crawler.remote_debug import DebugTarget, RemoteDebugClient, RemoteDebugEndpoint
from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.config import BrowserConfig, RemoteDebugConfig, get_settings
from crawlkit.utils.errors import (
    AcquisitionError,
    ConnectionFailureError,
    ElementNotFoundError,
    wrap_exception,
)
from crawlkit.utils.logging import get_logger

logger = get_logger(__name__)


class RemoteDebugBackend(BaseAcquisitionBackend):
    """Acquire pages through a user's running browser."""

    def __init__(
        self,
        config: RemoteDebugConfig | None = None,
        *,
        browser_config: BrowserConfig | None = None,
        endpoint: RemoteDebugEndpoint | None = None,
        extractor: ContentExtractor | None = None,
    ):
        super().__init__(BackendName.REMOTE_DEBUG.value, BackendKind.BROWSER)
        settings = get_settings()
        self._config = config or settings.remote_debug
        self._browser_config = browser_config or settings.browser
        self._endpoint = endpoint or RemoteDebugEndpoint(config=self._config)
        self._extractor = extractor

    async def _check_availability(self) -> bool:
        version = await self._endpoint.get_browser_version()
        logger.info("Debuggable browser found", browser=version.get("Browser"))
        return True

    def _client_for(self, target: DebugTarget) -> RemoteDebugClient:
        if not target.web_socket_debugger_url:
            raise ConnectionFailureError(
                "Target has no websocket URL", details={"target_id": target.id}
            )
        return RemoteDebugClient(target.web_socket_debugger_url, config=self._config)

    async def _wait_for_selector(
        self, client: RemoteDebugClient, selector: str, timeout: float
    ) -> None:
        expression = f"document.querySelector({json.dumps(selector)}) !== null"
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if await client.evaluate(expression):
                return
            await asyncio.sleep(self._config.poll_interval)
        raise ElementNotFoundError(selector)

    async def acquire(
        self,
        url: str,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> AcquisitionResult:
        self._check_closed()
        options = options or AcquisitionOptions()
        started = time.perf_counter()

        target: DebugTarget | None = None
        client: RemoteDebugClient | None = None
        try:
            target = await self._endpoint.open_target("about:blank")
            client = self._client_for(target)
            await client.connect()
            await client.set_viewport(
                self._browser_config.viewport_width, self._browser_config.viewport_height
            )

            await client.navigate(url, timeout=options.timeout, token=token)

            if options.wait_for_selector:
                await self._wait_for_selector(client, options.wait_for_selector, options.timeout)

            if options.script:
                await client.evaluate(options.script)
                await asyncio.sleep(self._browser_config.script_settle_seconds)

            html = await client.get_html()
            title = await client.get_title()
            final_url = await client.evaluate("location.href") or url

            result = build_result(
                final_url,
                html,
                options,
                extractor=self._extractor,
                title=title,
                load_time_ms=(time.perf_counter() - started) * 1000,
            )
            logger.info(
                "Remote debug acquisition success",
                url=url[:80],
                content_length=len(html),
            )
            return result

        except AcquisitionError:
            raise
        except Exception as e:
            logger.warning("Remote debug acquisition error", url=url[:80], error=str(e))
            raise wrap_exception(e, url=url) from e
        finally:
            if client is not None:
                await client.close()
            if target is not None:
                try:
                    await self._endpoint.close_target(target.id)
                except Exception as e:
                    logger.debug("Tab close failed", target_id=target.id, error=str(e))

    async def close(self) -> None:
        """Detach; the browser keeps running."""
        await self._endpoint.close()
        await super().close()
