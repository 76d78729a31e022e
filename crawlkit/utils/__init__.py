"""
crawlkit utilities module.
"""

from crawlkit.utils.backoff import (
    RetryDelayConfig,
    calculate_retry_delay,
    calculate_window_delay,
)
from crawlkit.utils.cancellation import CancellationToken, is_cancelled
from crawlkit.utils.config import ensure_directories, get_project_root, get_settings
from crawlkit.utils.errors import (
    AcquisitionCancelledError,
    AcquisitionError,
    AcquisitionErrorCode,
    AcquisitionTimeoutError,
    ConnectionFailureError,
    ElementNotFoundError,
    EvaluationError,
    NavigationError,
    UnknownAcquisitionError,
    UploadError,
    wrap_exception,
)
from crawlkit.utils.logging import (
    LogContext,
    bind_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from crawlkit.utils.sweeper import PeriodicSweeper

__all__ = [
    "RetryDelayConfig",
    "calculate_retry_delay",
    "calculate_window_delay",
    "CancellationToken",
    "is_cancelled",
    "ensure_directories",
    "get_project_root",
    "get_settings",
    "AcquisitionCancelledError",
    "AcquisitionError",
    "AcquisitionErrorCode",
    "AcquisitionTimeoutError",
    "ConnectionFailureError",
    "ElementNotFoundError",
    "EvaluationError",
    "NavigationError",
    "UnknownAcquisitionError",
    "UploadError",
    "wrap_exception",
    "LogContext",
    "bind_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
    "PeriodicSweeper",
]
