"""
Pytest fixtures and configuration for crawlkit tests.

Markers:
- @pytest.mark.unit: Single class/function, no external dependencies.
  Tests without a marker are auto-classified as unit.
- @pytest.mark.integration: Several components wired together, externals faked.
- @pytest.mark.e2e: Real browsers or network. Excluded by default
  (run with `pytest -m e2e`).

Mock strategy:
- Browsers (Playwright, remote debugging): always faked.
- HTTP: httpx.MockTransport for the pooled backend, patched AsyncSession
  for the direct backend.
- File I/O: tmp_path.
"""

import asyncio
import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import aiohttp
import pytest

# Point settings at the repository config before anything reads it
os.environ["CRAWLKIT_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")

from crawlkit.crawler.backend import BackendKind, BackendRegistry, BaseAcquisitionBackend
from crawlkit.crawler.models import AcquisitionOptions, AcquisitionResult
from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.config import BatchConfig, SearchConfig, Settings, get_settings


def pytest_collection_modifyitems(config, items):
    """Tests without a classification marker are unit tests."""
    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Each test reads settings fresh so env overrides do not leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with zero pacing delays so batches run instantly."""
    return Settings(
        batch=BatchConfig(retry_delay=0.0, window_delay_min=0.0, window_delay_max=0.0),
        search=SearchConfig(retry_delay=0.0, window_delay_min=0.0, window_delay_max=0.0),
    )


# =============================================================================
# Fake backends
# =============================================================================


class FakeBackend(BaseAcquisitionBackend):
    """In-memory backend.

    ``pages`` maps URL to HTML. URLs listed in ``failing`` (or every URL
    when ``always_fail``) raise ``error`` on every call.
    """

    def __init__(
        self,
        name: str = "fake",
        kind: BackendKind = BackendKind.HTTP,
        *,
        pages: dict[str, str] | None = None,
        failing: set[str] | None = None,
        error: Exception | None = None,
        available: bool = True,
        always_fail: bool = False,
        result_factory: Callable[[str, AcquisitionOptions], AcquisitionResult] | None = None,
    ):
        super().__init__(name, kind)
        self.pages = pages or {}
        self.failing = failing or set()
        self.error = error
        self.available = available
        self.always_fail = always_fail
        self.result_factory = result_factory
        self.calls: list[tuple[str, AcquisitionOptions]] = []

    async def _check_availability(self) -> bool:
        return self.available

    async def acquire(
        self,
        url: str,
        options: AcquisitionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> AcquisitionResult:
        self._check_closed()
        options = options or AcquisitionOptions()
        self.calls.append((url, options))
        await asyncio.sleep(0)

        if self.always_fail or url in self.failing:
            raise self.error or RuntimeError(f"boom: {url}")

        if self.result_factory is not None:
            return self.result_factory(url, options)
        html = self.pages.get(url, f"<html><head><title>{url}</title></head><body></body></html>")
        return AcquisitionResult(url=url, title=url, html=html, content=url, status_code=200)

    @property
    def call_urls(self) -> list[str]:
        return [url for url, _ in self.calls]


@pytest.fixture
def make_backend() -> Callable[..., FakeBackend]:
    def _make(*args: Any, **kwargs: Any) -> FakeBackend:
        return FakeBackend(*args, **kwargs)

    return _make


@pytest.fixture
def registry() -> BackendRegistry:
    return BackendRegistry()


# =============================================================================
# Fake websocket for the remote-debugging client
# =============================================================================


class FakeWSMessage:
    def __init__(self, msg_type: aiohttp.WSMsgType, data: Any = None):
        self.type = msg_type
        self.data = data


class FakeWebSocket:
    """Stands in for aiohttp.ClientWebSocketResponse.

    Frames written by the client land in ``sent``. ``responder`` (if set)
    is called with each decoded command and may return a reply dict which
    is fed back as a TEXT frame.
    """

    def __init__(self, responder: Callable[[dict[str, Any]], dict[str, Any] | None] | None = None):
        self.sent: list[dict[str, Any]] = []
        self.responder = responder
        self.closed = False
        self._queue: asyncio.Queue[FakeWSMessage] = asyncio.Queue()

    def feed(self, payload: dict[str, Any] | str) -> None:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        self._queue.put_nowait(FakeWSMessage(aiohttp.WSMsgType.TEXT, data))

    def feed_close(self) -> None:
        self._queue.put_nowait(FakeWSMessage(aiohttp.WSMsgType.CLOSED))

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("websocket closed")
        message = json.loads(data)
        self.sent.append(message)
        if self.responder is not None:
            reply = self.responder(message)
            if reply is not None:
                self.feed(reply)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.feed_close()

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> FakeWSMessage:
        message = await self._queue.get()
        if message.type == aiohttp.WSMsgType.CLOSED:
            raise StopAsyncIteration
        return message


@pytest.fixture
def fake_ws_factory() -> Callable[..., FakeWebSocket]:
    def _make(responder=None) -> FakeWebSocket:
        return FakeWebSocket(responder)

    return _make


@pytest.fixture
def ready_state_responder() -> Callable[..., Callable[[dict[str, Any]], dict[str, Any]]]:
    """Responder that answers every command, with canned Runtime.evaluate values.

    ``extra`` maps an evaluated expression to the value returned for it.
    """

    def _make(
        ready_state: str = "complete", extra: dict[str, Any] | None = None
    ) -> Callable[[dict[str, Any]], dict[str, Any]]:
        values = {"document.readyState": ready_state, **(extra or {})}

        def respond(message: dict[str, Any]) -> dict[str, Any]:
            if message["method"] == "Runtime.evaluate":
                expression = message["params"]["expression"]
                value = values.get(expression)
                return {"id": message["id"], "result": {"result": {"value": value}}}
            if message["method"] == "Page.navigate":
                return {"id": message["id"], "result": {"frameId": "F1"}}
            return {"id": message["id"], "result": {}}

        return respond

    return _make
