"""
crawlkit crawler module.

Page acquisition backends (plain request, pooled request, rendered browser,
remote debugging), the result cache, batch execution, browser sessions and
the semantic crawl.
"""

from crawlkit.crawler.backend import (
    AcquisitionBackend,
    BackendKind,
    BackendRegistry,
    BaseAcquisitionBackend,
)
from crawlkit.crawler.batch import run_windowed
from crawlkit.crawler.browser_backend import BrowserRenderedBackend
from crawlkit.crawler.direct_backend import DirectRequestBackend
from crawlkit.crawler.extraction import ContentExtractor, DefaultContentExtractor
from crawlkit.crawler.models import (
    AcquisitionOptions,
    AcquisitionRequest,
    AcquisitionResponse,
    AcquisitionResult,
    BackendName,
    BatchFailure,
    BatchOptions,
    BatchResult,
    CacheValidators,
)
from crawlkit.crawler.orchestrator import (
    AcquisitionOrchestrator,
    create_default_registry,
    create_orchestrator,
)
from crawlkit.crawler.pooled_backend import PooledRequestBackend
from crawlkit.crawler.remote_debug import RemoteDebugClient, RemoteDebugEndpoint
from crawlkit.crawler.remote_debug_backend import RemoteDebugBackend
from crawlkit.crawler.result_cache import CacheEntry, ResultCache, fingerprint
from crawlkit.crawler.semantic_crawl import SemanticCrawler
from crawlkit.crawler.semantic_models import (
    CrawlProgress,
    CrawlTarget,
    SemanticCrawlResult,
    SemanticTool,
)
from crawlkit.crawler.session_manager import Session, SessionManager, resolve_debugger_url

__all__ = [
    "AcquisitionBackend",
    "AcquisitionOptions",
    "AcquisitionOrchestrator",
    "AcquisitionRequest",
    "AcquisitionResponse",
    "AcquisitionResult",
    "BackendKind",
    "BackendName",
    "BackendRegistry",
    "BaseAcquisitionBackend",
    "BatchFailure",
    "BatchOptions",
    "BatchResult",
    "BrowserRenderedBackend",
    "CacheEntry",
    "CacheValidators",
    "ContentExtractor",
    "CrawlProgress",
    "CrawlTarget",
    "DefaultContentExtractor",
    "DirectRequestBackend",
    "PooledRequestBackend",
    "RemoteDebugBackend",
    "RemoteDebugClient",
    "RemoteDebugEndpoint",
    "ResultCache",
    "SemanticCrawlResult",
    "SemanticCrawler",
    "SemanticTool",
    "Session",
    "SessionManager",
    "create_default_registry",
    "create_orchestrator",
    "fingerprint",
    "resolve_debugger_url",
    "run_windowed",
]
