"""
Connection-pooled request backend.

Keeps one httpx.AsyncClient per origin so repeated requests to a host reuse
keep-alive connections. Identical requests issued while one is still in
flight share its response instead of opening another connection; each caller
still builds its own result from its own options.
"""

import asyncio
import hashlib
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

from crawlkit.crawler.backend import BackendKind, BaseAcquisitionBackend
from crawlkit.crawler.direct_backend import build_http_result, prepare_headers
from crawlkit.crawler.extraction import ContentExtractor
from crawlkit.crawler.models import AcquisitionOptions, AcquisitionResult, BackendName
from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.config import HTTPConfig, get_settings
from crawlkit.utils.errors import AcquisitionError, NavigationError, wrap_exception
from crawlkit.utils.logging import get_logger
from crawlkit.utils.sweeper import PeriodicSweeper

logger = get_logger(__name__)


@dataclass(frozen=True)
class _RawResponse:
    status_code: int
    headers: dict[str, str]
    text: str
    final_url: str
    started: float


@dataclass
class _InFlight:
    task: asyncio.Task
    started_at: float = field(default_factory=time.monotonic)


def origin_of(url: str) -> str:
    """scheme://host[:port] of a URL.

    Raises:
        NavigationError: If the URL has no scheme or host.
    """
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise NavigationError(f"Invalid URL: {url}", url=url)
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def _request_key(url: str, headers: dict[str, str], timeout: float) -> str:
    material = url + "\n" + "\n".join(f"{k.lower()}:{v}" for k, v in sorted(headers.items()))
    material += f"\n{timeout}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class PooledRequestBackend(BaseAcquisitionBackend):
    """Per-origin keep-alive pools built on httpx."""

    def __init__(
        self,
        config: HTTPConfig | None = None,
        *,
        extractor: ContentExtractor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(BackendName.POOLED.value, BackendKind.HTTP)
        self._config = config or get_settings().http
        self._extractor = extractor
        self._transport = transport
        self._pools: dict[str, httpx.AsyncClient] = {}
        self._in_flight: dict[str, _InFlight] = {}
        self._sweeper = PeriodicSweeper(
            "pooled_in_flight",
            self._config.inflight_stale_seconds,
            self.sweep_stale,
        )

    @property
    def pool_count(self) -> int:
        return len(self._pools)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def origins(self) -> Sequence[str]:
        return list(self._pools)

    def get_pool(self, origin: str) -> httpx.AsyncClient:
        """Return the client for ``origin``, creating it on first use.

        No await between lookup and insert, so concurrent callers always get
        the same client.
        """
        pool = self._pools.get(origin)
        if pool is None:
            limits = httpx.Limits(
                max_connections=self._config.pool_max_connections,
                max_keepalive_connections=self._config.pool_keepalive_connections,
                keepalive_expiry=self._config.pool_keepalive_expiry,
            )
            pool = httpx.AsyncClient(
                base_url=origin,
                limits=limits,
                follow_redirects=self._config.follow_redirects,
                transport=self._transport,
            )
            self._pools[origin] = pool
            logger.debug("Connection pool created", origin=origin)
        return pool

    async def acquire(
        self,
        url: str,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> AcquisitionResult:
        self._check_closed()
        options = options or AcquisitionOptions()
        headers = prepare_headers(self._config, options)
        key = _request_key(url, headers, options.timeout)

        self._sweeper.start()

        entry = self._in_flight.get(key)
        if entry is not None:
            logger.debug("Joining in-flight request", url=url[:80])
            raw = await asyncio.shield(entry.task)
        else:
            task = asyncio.create_task(self._request(url, headers, options.timeout))
            self._in_flight[key] = _InFlight(task=task)
            try:
                raw = await asyncio.shield(task)
            finally:
                current = self._in_flight.get(key)
                if current is not None and current.task is task:
                    del self._in_flight[key]

        result = build_http_result(
            url,
            raw.status_code,
            raw.headers,
            raw.text,
            options,
            started=raw.started,
            final_url=raw.final_url,
            extractor=self._extractor,
        )
        logger.info(
            "Pooled request success",
            url=url[:80],
            status=raw.status_code,
            content_length=len(result.html),
        )
        return result

    async def _request(
        self,
        url: str,
        headers: dict[str, str],
        timeout: float,
    ) -> _RawResponse:
        pool = self.get_pool(origin_of(url))
        started = time.perf_counter()

        try:
            response = await pool.get(url, headers=headers, timeout=timeout)
        except AcquisitionError:
            raise
        except Exception as e:
            logger.warning("Pooled request failed", url=url[:80], error=str(e))
            raise wrap_exception(e, url=url) from e

        return _RawResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            text=response.text,
            final_url=str(response.url),
            started=started,
        )

    def sweep_stale(self) -> int:
        """Drop in-flight entries older than the staleness threshold."""
        threshold = self._config.inflight_stale_seconds
        now = time.monotonic()
        stale = [k for k, e in self._in_flight.items() if now - e.started_at > threshold]
        for key in stale:
            del self._in_flight[key]
        return len(stale)

    async def close(self) -> None:
        await super().close()
        await self._sweeper.stop()
        pools = list(self._pools.values())
        self._pools.clear()
        self._in_flight.clear()
        results = await asyncio.gather(*(p.aclose() for p in pools), return_exceptions=True)
        for error in results:
            if isinstance(error, Exception):
                logger.debug("Pool close failed", error=str(error))
        logger.info("Pooled backend closed", pools=len(pools))
