"""Plain request backend using curl_cffi."""

import time
from collections.abc import Mapping

from curl_cffi.requests import AsyncSession

from crawlkit.crawler.backend import BackendKind, BaseAcquisitionBackend
from crawlkit.crawler.extraction import ContentExtractor, build_result
from crawlkit.crawler.models import AcquisitionOptions, AcquisitionResult, BackendName
from crawlkit.crawler.result_cache import parse_cache_control_max_age
from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.config import HTTPConfig, get_settings
from crawlkit.utils.errors import AcquisitionError, NavigationError, wrap_exception
from crawlkit.utils.logging import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS_MIN = 500
TOO_MANY_REQUESTS = 429


def default_request_headers(config: HTTPConfig) -> dict[str, str]:
    return {
        "User-Agent": config.user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }


def prepare_headers(config: HTTPConfig, options: AcquisitionOptions) -> dict[str, str]:
    """Default headers, then conditional validators, then caller headers."""
    headers = default_request_headers(config)
    if options.validators is not None:
        headers.update(options.validators.to_request_headers())
    headers.update(options.headers)
    return headers


def _header(headers: Mapping[str, str], name: str) -> str | None:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def build_http_result(
    url: str,
    status_code: int,
    headers: Mapping[str, str],
    body: str,
    options: AcquisitionOptions,
    *,
    started: float,
    final_url: str | None = None,
    extractor: ContentExtractor | None = None,
) -> AcquisitionResult:
    """Turn an HTTP response into an AcquisitionResult.

    Raises:
        NavigationError: On 5xx and 429 responses.
    """
    if status_code >= RETRYABLE_STATUS_MIN or status_code == TOO_MANY_REQUESTS:
        raise NavigationError(
            f"HTTP {status_code}",
            url=url,
            details={"status_code": status_code},
        )

    elapsed_ms = (time.perf_counter() - started) * 1000
    etag = _header(headers, "ETag")
    last_modified = _header(headers, "Last-Modified")
    max_age = parse_cache_control_max_age(_header(headers, "Cache-Control"))
    content_type = _header(headers, "Content-Type")

    if status_code == 304:
        logger.info("HTTP 304 Not Modified", url=url[:80])
        validators = options.validators
        return AcquisitionResult(
            url=url,
            status_code=304,
            content_type=content_type,
            load_time_ms=elapsed_ms,
            etag=etag or (validators.etag if validators else None),
            last_modified=last_modified or (validators.last_modified if validators else None),
            max_age=max_age,
        )

    return build_result(
        final_url or url,
        body,
        options,
        extractor=extractor,
        status_code=status_code,
        content_type=content_type,
        load_time_ms=elapsed_ms,
        etag=etag,
        last_modified=last_modified,
        max_age=max_age,
    )


class DirectRequestBackend(BaseAcquisitionBackend):
    """One request per call with Chrome TLS impersonation.

    Features:
    - curl_cffi browser impersonation for fingerprint consistency
    - Conditional requests (If-None-Match / If-Modified-Since) for 304 reuse
    """

    def __init__(
        self,
        config: HTTPConfig | None = None,
        *,
        extractor: ContentExtractor | None = None,
    ):
        super().__init__(BackendName.DIRECT.value, BackendKind.HTTP)
        self._config = config or get_settings().http
        self._extractor = extractor

    async def acquire(
        self,
        url: str,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> AcquisitionResult:
        self._check_closed()
        options = options or AcquisitionOptions()
        headers = prepare_headers(self._config, options)
        started = time.perf_counter()

        try:
            async with AsyncSession() as session:
                response = await session.get(
                    url,
                    headers=headers,
                    impersonate=self._config.impersonate,
                    timeout=options.timeout,
                    allow_redirects=self._config.follow_redirects,
                )
        except AcquisitionError:
            raise
        except Exception as e:
            logger.warning("Direct request failed", url=url[:80], error=str(e))
            raise wrap_exception(e, url=url) from e

        result = build_http_result(
            url,
            response.status_code,
            dict(response.headers),
            response.text,
            options,
            started=started,
            final_url=str(response.url),
            extractor=self._extractor,
        )
        logger.info(
            "Direct request success",
            url=url[:80],
            status=response.status_code,
            content_length=len(result.html),
        )
        return result
