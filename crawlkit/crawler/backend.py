"""
Acquisition backend abstraction.

Every way of getting a page (plain request, pooled request, headless browser,
attach-to-running-browser) implements the same contract so the orchestrator
can pick and fall back between them.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from typing import Protocol, runtime_checkable

from crawlkit.crawler.batch import run_windowed
from crawlkit.crawler.models import (
    AcquisitionOptions,
    AcquisitionResult,
    BatchOptions,
    BatchResult,
)
from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.errors import ConnectionFailureError
from crawlkit.utils.logging import get_logger

logger = get_logger(__name__)


class BackendKind(str, Enum):
    """Capability class of a backend."""

    HTTP = "http"  # fetch-only, no script execution
    BROWSER = "browser"  # renders pages and runs scripts


# ============================================================================
# Backend contract
# ============================================================================


@runtime_checkable
class AcquisitionBackend(Protocol):
    """
    Protocol for acquisition backends.

    Example:
        class MyBackend:
            name = "mine"
            kind = BackendKind.HTTP

            async def acquire(self, url, options=None, token=None) -> AcquisitionResult:
                ...
    """

    @property
    def name(self) -> str: ...

    @property
    def kind(self) -> BackendKind: ...

    async def acquire(
        self,
        url: str,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> AcquisitionResult: ...

    async def acquire_many(
        self,
        urls: Sequence[str],
        batch_options: BatchOptions | None = None,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> BatchResult: ...

    async def is_available(self) -> bool: ...

    async def close(self) -> None: ...


class BaseAcquisitionBackend(ABC):
    """
    Shared behaviour for backends: name/kind, closed-state tracking, a cached
    availability check and the windowed ``acquire_many``.
    """

    def __init__(self, name: str, kind: BackendKind):
        self._name = name
        self._kind = kind
        self._is_closed = False
        self._available: bool | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> BackendKind:
        return self._kind

    @property
    def is_closed(self) -> bool:
        return self._is_closed

    @abstractmethod
    async def acquire(
        self,
        url: str,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> AcquisitionResult:
        pass

    async def acquire_many(
        self,
        urls: Sequence[str],
        batch_options: BatchOptions | None = None,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> BatchResult:
        batch_options = batch_options or BatchOptions()

        async def worker(url: str) -> AcquisitionResult:
            return await self.acquire(url, options, token)

        return await run_windowed(
            urls,
            worker,
            concurrency=batch_options.concurrency,
            retries=batch_options.retries,
            retry_delay=batch_options.retry_delay,
            token=token,
        )

    async def is_available(self) -> bool:
        """Checked once per backend instance; the answer is cached."""
        if self._is_closed:
            return False
        if self._available is None:
            try:
                self._available = await self._check_availability()
            except Exception as e:
                logger.debug("Backend availability check failed", backend=self._name, error=str(e))
                self._available = False
        return self._available

    async def _check_availability(self) -> bool:
        return True

    async def close(self) -> None:
        self._is_closed = True

    def _check_closed(self) -> None:
        if self._is_closed:
            raise ConnectionFailureError(f"Backend '{self._name}' is closed")


# ============================================================================
# Registry
# ============================================================================


class BackendRegistry:
    """
    Named backends with an explicit preference order.

    The preference order is the order in which backends of the same kind are
    tried. Registration appends to it; ``set_preference_order`` replaces it.
    """

    def __init__(self) -> None:
        self._backends: dict[str, AcquisitionBackend] = {}
        self._order: list[str] = []

    def register(self, backend: AcquisitionBackend) -> None:
        """
        Register a backend.

        Raises:
            ValueError: If a backend with the same name is already registered.
        """
        name = backend.name
        if name in self._backends:
            raise ValueError(f"Backend '{name}' already registered")

        self._backends[name] = backend
        self._order.append(name)
        logger.info("Backend registered", backend=name, kind=backend.kind.value)

    def unregister(self, name: str) -> AcquisitionBackend | None:
        backend = self._backends.pop(name, None)
        if backend is not None:
            self._order.remove(name)
            logger.info("Backend unregistered", backend=name)
        return backend

    def get(self, name: str) -> AcquisitionBackend | None:
        return self._backends.get(name)

    def list_backends(self) -> list[str]:
        """Registered names in preference order."""
        return list(self._order)

    def set_preference_order(self, order: list[str]) -> None:
        """
        Set the preference order.

        Names left out keep their relative order after the listed ones.

        Raises:
            ValueError: If any name is not registered.
        """
        for name in order:
            if name not in self._backends:
                raise ValueError(f"Backend '{name}' not registered")

        rest = [n for n in self._order if n not in order]
        self._order = list(dict.fromkeys(order)) + rest
        logger.info("Backend preference order updated", order=self._order)

    def ordered(self, kind: BackendKind | None = None) -> list[AcquisitionBackend]:
        backends = [self._backends[n] for n in self._order]
        if kind is None:
            return backends
        return [b for b in backends if b.kind == kind]

    def __len__(self) -> int:
        return len(self._backends)

    def __contains__(self, name: object) -> bool:
        return name in self._backends

    async def close_all(self) -> None:
        """Close every backend, logging and continuing past failures."""
        for name, backend in self._backends.items():
            try:
                await backend.close()
            except Exception as e:
                logger.error("Failed to close backend", backend=name, error=str(e))

        self._backends.clear()
        self._order.clear()
        logger.info("All backends closed")
