"""
Acquisition orchestrator.

Single entry point for page acquisition: cache lookup, backend selection with
ordered fallback, conditional revalidation of stale entries, cache write, and
windowed batch acquisition with retries.
"""

import time
from collections.abc import Sequence

from crawlkit.crawler.backend import AcquisitionBackend, BackendKind, BackendRegistry
from crawlkit.crawler.batch import run_windowed
from crawlkit.crawler.models import (
    AcquisitionOptions,
    AcquisitionRequest,
    AcquisitionResponse,
    AcquisitionResult,
    BackendName,
    BatchOptions,
    BatchResult,
    CacheValidators,
)
from crawlkit.crawler.result_cache import CacheEntry, ResultCache, fingerprint
from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.config import Settings, get_settings
from crawlkit.utils.errors import (
    AcquisitionError,
    ConnectionFailureError,
    NavigationError,
    wrap_exception,
)
from crawlkit.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PREFERENCE_ORDER = [
    BackendName.REMOTE_DEBUG.value,
    BackendName.BROWSER.value,
    BackendName.POOLED.value,
    BackendName.DIRECT.value,
]


class AcquisitionOrchestrator:
    """
    Chooses a backend per request and applies caching and fallback.

    Browser-class backends are used when the options require rendering
    (``prefer_browser`` or an explicit ``networkidle`` wait). HTTP-class
    backends serve everything else and are the last resort when browser
    backends fail and fallback is allowed.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        *,
        cache: ResultCache[AcquisitionResult] | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or get_settings()
        self._registry = registry
        cache_config = self._settings.cache
        self._cache_enabled = cache_config.enabled
        self._cache: ResultCache[AcquisitionResult] = cache or ResultCache(
            max_size=cache_config.max_size, ttl=cache_config.ttl_seconds
        )

    @property
    def registry(self) -> BackendRegistry:
        return self._registry

    @property
    def cache(self) -> ResultCache[AcquisitionResult]:
        return self._cache

    # =========================================================================
    # Single acquisition
    # =========================================================================

    async def execute(self, request: AcquisitionRequest) -> AcquisitionResponse:
        return await self.acquire(request.url, request.options, request.token)

    async def acquire(
        self,
        url: str,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> AcquisitionResponse:
        """Acquire one page.

        Raises:
            AcquisitionCancelledError: If ``token`` is already cancelled.
            AcquisitionError: From the last backend tried, or
                ConnectionFailureError when no backend is available.
        """
        options = options or AcquisitionOptions()
        started = time.perf_counter()
        key = fingerprint(url, options.script, options.wait_for_selector)
        use_cache = self._cache_enabled and options.use_cache

        stale_candidate: CacheEntry[AcquisitionResult] | None = None
        if use_cache:
            # get() drops expired entries, so keep the stale copy for revalidation.
            stale_candidate = self._cache.get_stale(key)
            entry = self._cache.get(key)
            if entry is not None:
                logger.debug("Cache hit", url=url[:80])
                return AcquisitionResponse(
                    result=entry.data.model_copy(deep=True),
                    cached=True,
                    duration_ms=(time.perf_counter() - started) * 1000,
                    source="cache",
                )

        if token is not None:
            token.raise_if_cancelled()

        last_error: AcquisitionError | None = None

        # fallback_allowed only governs browser failures; with no browser
        # available at all the request degrades to HTTP.
        if options.requires_browser:
            for backend in self._registry.ordered(BackendKind.BROWSER):
                if not await backend.is_available():
                    logger.debug("Skipping unavailable backend", backend=backend.name)
                    continue
                try:
                    result = await backend.acquire(url, options, token)
                except Exception as e:
                    last_error = wrap_exception(e, url=url)
                    logger.warning(
                        "Backend failed",
                        backend=backend.name,
                        url=url[:80],
                        error_code=last_error.code.value,
                        error=last_error.message,
                    )
                    if not options.fallback_allowed:
                        raise last_error from e
                    continue
                return self._finish(key, result, backend.name, started, use_cache)

        stale: CacheEntry[AcquisitionResult] | None = None
        http_options = options
        if use_cache and options.validators is None:
            if stale_candidate is not None and stale_candidate.has_validators:
                stale = stale_candidate
                http_options = options.model_copy(
                    update={
                        "validators": CacheValidators(
                            etag=stale.etag, last_modified=stale.last_modified
                        )
                    }
                )

        for backend in self._registry.ordered(BackendKind.HTTP):
            if not await backend.is_available():
                continue
            try:
                result = await backend.acquire(url, http_options, token)
            except Exception as e:
                last_error = wrap_exception(e, url=url)
                logger.warning(
                    "Backend failed",
                    backend=backend.name,
                    url=url[:80],
                    error_code=last_error.code.value,
                    error=last_error.message,
                )
                if not options.fallback_allowed:
                    raise last_error from e
                continue

            if result.not_modified:
                if stale is not None:
                    return self._revalidated(key, stale, result, backend.name, started, url)
                if options.validators is None:
                    raise NavigationError("304 Not Modified without a cached copy", url=url)
                # Caller supplied its own validators and keeps its own copy.
                return AcquisitionResponse(
                    result=result,
                    duration_ms=(time.perf_counter() - started) * 1000,
                    source=backend.name,
                )
            return self._finish(key, result, backend.name, started, use_cache)

        if last_error is not None:
            raise last_error
        raise ConnectionFailureError("No acquisition backend available", details={"url": url})

    def _finish(
        self,
        key: str,
        result: AcquisitionResult,
        source: str,
        started: float,
        use_cache: bool,
    ) -> AcquisitionResponse:
        if use_cache:
            self._cache.put(
                key,
                result.model_copy(deep=True),
                etag=result.etag,
                last_modified=result.last_modified,
                ttl=result.max_age,
            )
        return AcquisitionResponse(
            result=result,
            cached=False,
            duration_ms=(time.perf_counter() - started) * 1000,
            source=source,
        )

    def _revalidated(
        self,
        key: str,
        stale: CacheEntry[AcquisitionResult],
        result: AcquisitionResult,
        source: str,
        started: float,
        url: str,
    ) -> AcquisitionResponse:
        if self._cache.get_stale(key) is not stale:
            self._cache.set(key, stale)
        if result.max_age is not None:
            stale.ttl = result.max_age
        self._cache.touch(key)
        logger.info("Cache entry revalidated", url=url[:80], backend=source)
        return AcquisitionResponse(
            result=stale.data.model_copy(deep=True),
            cached=True,
            duration_ms=(time.perf_counter() - started) * 1000,
            source=source,
        )

    # =========================================================================
    # Batches
    # =========================================================================

    async def acquire_many(
        self,
        urls: Sequence[str],
        batch_options: BatchOptions | None = None,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> BatchResult:
        """Acquire many pages in windows of ``batch_options.concurrency``.

        ``results`` maps each URL to its AcquisitionResult.
        """
        batch_config = self._settings.batch
        batch_options = batch_options or BatchOptions(
            concurrency=batch_config.concurrency,
            retries=batch_config.retries,
            retry_delay=batch_config.retry_delay,
        )

        async def worker(url: str) -> AcquisitionResult:
            response = await self.acquire(url, options, token)
            return response.result

        return await run_windowed(
            urls,
            worker,
            concurrency=batch_options.concurrency,
            retries=batch_options.retries,
            retry_delay=batch_options.retry_delay,
            window_delay=(batch_config.window_delay_min, batch_config.window_delay_max),
            token=token,
        )

    async def get_available_backends(self) -> list[str]:
        """Names of registered backends whose availability check succeeds, in preference order."""
        available = []
        for backend in self._registry.ordered():
            if await backend.is_available():
                available.append(backend.name)
        return available

    async def close(self) -> None:
        await self._registry.close_all()


def create_default_registry(settings: Settings | None = None) -> BackendRegistry:
    """Registry with all four built-in backends in default preference order."""
    from crawlkit.crawler.browser_backend import BrowserRenderedBackend
    from crawlkit.crawler.direct_backend import DirectRequestBackend
    from crawlkit.crawler.pooled_backend import PooledRequestBackend
    from crawlkit.crawler.remote_debug_backend import RemoteDebugBackend

    settings = settings or get_settings()
    backends: list[AcquisitionBackend] = [
        RemoteDebugBackend(settings.remote_debug, browser_config=settings.browser),
        BrowserRenderedBackend(settings.browser),
        PooledRequestBackend(settings.http),
        DirectRequestBackend(settings.http),
    ]
    registry = BackendRegistry()
    for backend in backends:
        registry.register(backend)
    registry.set_preference_order(DEFAULT_PREFERENCE_ORDER)
    return registry


def create_orchestrator(settings: Settings | None = None) -> AcquisitionOrchestrator:
    settings = settings or get_settings()
    return AcquisitionOrchestrator(create_default_registry(settings), settings=settings)
