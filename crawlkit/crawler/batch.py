"""
Windowed batch execution with per-target retries.

Shared by AcquisitionOrchestrator.acquire_many, the backends' acquire_many and
SearchOrchestrator.search_many.

Targets are processed in fixed-size windows. All members of a window start
together and the window completes when every member has finished; windows run
one after another with a random pause in between. Each target gets up to
``retries + 1`` attempts with a linearly growing delay.
"""

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from crawlkit.crawler.models import BatchFailure, BatchResult
from crawlkit.utils.backoff import RetryDelayConfig, calculate_retry_delay, calculate_window_delay
from crawlkit.utils.cancellation import CancellationToken, is_cancelled
from crawlkit.utils.errors import AcquisitionError, wrap_exception
from crawlkit.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

Worker = Callable[[str], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[Any]]


async def _run_with_retry(
    target: str,
    worker: Worker,
    *,
    retries: int,
    delay_config: RetryDelayConfig,
    token: CancellationToken | None,
    sleep: Sleeper,
    results: dict[str, Any],
    failures: dict[str, BatchFailure],
) -> None:
    last_error: AcquisitionError | None = None
    attempts = 0

    for attempt in range(1, retries + 2):
        if is_cancelled(token):
            break
        attempts = attempt
        try:
            results[target] = await worker(target)
            return
        except Exception as e:
            last_error = wrap_exception(e, url=target)
            logger.debug(
                "Batch attempt failed",
                target=target,
                attempt=attempt,
                error_code=last_error.code.value,
                error=last_error.message,
            )
            if attempt <= retries:
                await sleep(calculate_retry_delay(attempt, delay_config))

    if last_error is not None:
        failures[target] = BatchFailure(target=target, error=last_error, attempts=attempts)


async def run_windowed(
    targets: Sequence[str],
    worker: Worker,
    *,
    concurrency: int = 3,
    retries: int = 2,
    retry_delay: float = 1.0,
    window_delay: tuple[float, float] = (0.5, 1.5),
    token: CancellationToken | None = None,
    sleep: Sleeper = asyncio.sleep,
) -> BatchResult:
    """Run ``worker`` over ``targets`` in windows of ``concurrency``.

    Args:
        targets: Items to process; duplicates are processed once.
        worker: Coroutine function taking one target.
        concurrency: Window size.
        retries: Extra attempts per target after the first.
        retry_delay: Base seconds between attempts, multiplied by attempt number.
        window_delay: (min, max) seconds paused between windows.
        token: Checked at each window start and each retry-loop top.
        sleep: Injectable sleep for tests.

    Returns:
        BatchResult. Errors never propagate out of this function.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")
    if retries < 0:
        raise ValueError("retries must be >= 0")

    unique = list(dict.fromkeys(targets))
    results: dict[str, Any] = {}
    failures: dict[str, BatchFailure] = {}
    delay_config = RetryDelayConfig(base_delay=retry_delay)
    cancelled = False
    started = time.perf_counter()
    batch_id = uuid.uuid4().hex[:12]

    with LogContext(batch_id=batch_id):
        logger.info(
            "Batch started",
            targets=len(unique),
            concurrency=concurrency,
            retries=retries,
        )

        for offset in range(0, len(unique), concurrency):
            if is_cancelled(token):
                cancelled = True
                logger.info("Batch cancelled", processed=offset, remaining=len(unique) - offset)
                break

            window = unique[offset : offset + concurrency]
            await asyncio.gather(
                *(
                    _run_with_retry(
                        target,
                        worker,
                        retries=retries,
                        delay_config=delay_config,
                        token=token,
                        sleep=sleep,
                        results=results,
                        failures=failures,
                    )
                    for target in window
                )
            )

            if offset + concurrency < len(unique):
                await sleep(calculate_window_delay(*window_delay))

        if is_cancelled(token):
            cancelled = True

        total_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Batch finished",
            succeeded=len(results),
            failed=len(failures),
            cancelled=cancelled,
            total_duration_ms=round(total_ms, 1),
        )

    return BatchResult(
        results=results,
        failures=failures,
        total_duration_ms=total_ms,
        cancelled=cancelled,
    )
