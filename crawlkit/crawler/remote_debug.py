"""
Remote-debugging wire protocol client.

Speaks the browser debugging protocol over an aiohttp websocket: each command
gets an incrementing id and a pending future, a reader task resolves futures
by id, and a periodic sweep expires correlations that never got a reply.

Also provides RemoteDebugEndpoint for the HTTP side of the debugging port
(/json/version, /json/list, /json/new, /json/close).
"""

import asyncio
import itertools
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote

import aiohttp

from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.config import RemoteDebugConfig, get_settings
from crawlkit.utils.errors import (
    AcquisitionError,
    AcquisitionTimeoutError,
    ConnectionFailureError,
    EvaluationError,
    NavigationError,
)
from crawlkit.utils.logging import get_logger
from crawlkit.utils.sweeper import PeriodicSweeper

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


@dataclass
class PendingCorrelation:
    """A command waiting for its reply."""

    future: asyncio.Future
    method: str
    started_at: float = field(default_factory=time.monotonic)


def protocol_error(method: str, error: dict[str, Any]) -> AcquisitionError:
    """Map a protocol ``error`` object to the acquisition taxonomy."""
    message = str(error.get("message") or "Protocol error")
    details = {"method": method, "protocol_code": error.get("code")}
    if method.startswith("Runtime."):
        return EvaluationError(message, details=details)
    return NavigationError(message, details=details)


class RemoteDebugClient:
    """
    One websocket connection to one debugging target (usually a tab).

    States: CONNECTING -> READY -> CLOSED. Commands are only accepted while
    READY. Closing, for any reason, rejects every pending command with
    ConnectionFailureError.
    """

    def __init__(
        self,
        ws_url: str,
        *,
        config: RemoteDebugConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.ws_url = ws_url
        self._config = config or get_settings().remote_debug
        self._session = session
        self._owns_session = session is None
        self._ws: Any = None
        self._reader_task: asyncio.Task | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, PendingCorrelation] = {}
        self._state = ConnectionState.CONNECTING
        self._sweeper = PeriodicSweeper(
            "remote_debug_pending",
            self._config.sweep_interval,
            self.sweep_stale,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self) -> "RemoteDebugClient":
        """Open the websocket and enable the Page, Network and Runtime domains."""
        if self._state is not ConnectionState.CONNECTING:
            raise ConnectionFailureError(f"Cannot connect from state {self._state.value}")

        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            ws = await asyncio.wait_for(
                self._session.ws_connect(self.ws_url, max_msg_size=0),
                timeout=self._config.connect_timeout,
            )
        except Exception as e:
            await self.close()
            raise ConnectionFailureError(
                f"Debugger connection failed: {e}", details={"ws_url": self.ws_url}
            ) from e

        self._attach(ws)
        for domain in ("Page", "Network", "Runtime"):
            await self.send(f"{domain}.enable")

        logger.info("Debugger connected", ws_url=self.ws_url)
        return self

    def _attach(self, ws: Any) -> None:
        self._ws = ws
        self._state = ConnectionState.READY
        self._reader_task = asyncio.create_task(self._read_loop(), name="remote_debug_reader")
        self._sweeper.start()

    async def _read_loop(self) -> None:
        try:
            async for message in self._ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    self.handle_message(message.data)
                elif message.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Debugger reader failed", error=str(e))
        finally:
            if self._state is not ConnectionState.CLOSED:
                self._state = ConnectionState.CLOSED
                self._reject_all("Debugger transport closed")
                logger.info("Debugger transport closed", ws_url=self.ws_url)

    def handle_message(self, raw: str) -> None:
        """Resolve or reject the pending command a reply belongs to.

        Events (no id) and replies whose id is unknown or not an integer are
        ignored.
        """
        try:
            message = json.loads(raw)
        except ValueError:
            logger.debug("Discarding malformed frame", length=len(raw))
            return
        if not isinstance(message, dict):
            return

        message_id = message.get("id")
        if not isinstance(message_id, int) or isinstance(message_id, bool):
            return

        pending = self._pending.pop(message_id, None)
        if pending is None or pending.future.done():
            return

        if "error" in message:
            pending.future.set_exception(protocol_error(pending.method, message["error"] or {}))
        else:
            pending.future.set_result(message.get("result") or {})

    def _reject_all(self, reason: str) -> None:
        pending, self._pending = self._pending, {}
        for correlation in pending.values():
            if not correlation.future.done():
                correlation.future.set_exception(
                    ConnectionFailureError(reason, details={"method": correlation.method})
                )

    async def close(self) -> None:
        """Close the transport. Safe to call more than once."""
        self._state = ConnectionState.CLOSED
        await self._sweeper.stop()
        self._reject_all("Debugger connection closed")

        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug("Websocket close failed", error=str(e))
            self._ws = None

        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "RemoteDebugClient":
        return await self.connect()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Commands
    # =========================================================================

    async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send one command and wait for its reply.

        Raises:
            ConnectionFailureError: If not READY or the transport closes.
            EvaluationError / NavigationError: On a protocol error reply.
        """
        if self._state is not ConnectionState.READY:
            raise ConnectionFailureError(
                f"Debugger not ready ({self._state.value})", details={"method": method}
            )

        message_id = next(self._ids)
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[message_id] = PendingCorrelation(future=future, method=method)

        payload: dict[str, Any] = {"id": message_id, "method": method, "params": params or {}}
        try:
            await self._ws.send_str(json.dumps(payload))
        except Exception as e:
            self._pending.pop(message_id, None)
            raise ConnectionFailureError(
                f"Send failed: {e}", details={"method": method}
            ) from e

        return await future

    def sweep_stale(self) -> int:
        """Reject and drop correlations older than the staleness threshold."""
        threshold = self._config.stale_after
        now = time.monotonic()
        stale = [i for i, p in self._pending.items() if now - p.started_at > threshold]
        for message_id in stale:
            correlation = self._pending.pop(message_id)
            if not correlation.future.done():
                correlation.future.set_exception(
                    AcquisitionTimeoutError(
                        f"No reply to {correlation.method}",
                        timeout=threshold,
                        details={"method": correlation.method},
                    )
                )
        return len(stale)

    async def navigate(
        self,
        url: str,
        timeout: float = 30.0,
        token: CancellationToken | None = None,
    ) -> None:
        """Navigate and wait until ``document.readyState`` is complete.

        Raises:
            NavigationError: If the browser reports a navigation error.
            AcquisitionTimeoutError: If the page is not ready within ``timeout``.
            AcquisitionCancelledError: If ``token`` is cancelled while polling.
        """
        result = await self.send("Page.navigate", {"url": url})
        if result.get("errorText"):
            raise NavigationError(result["errorText"], url=url)

        poll = asyncio.create_task(self._poll_ready_state(token))
        deadline = asyncio.create_task(asyncio.sleep(timeout))
        try:
            done, _ = await asyncio.wait({poll, deadline}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (poll, deadline):
                if not task.done():
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass

        if poll in done:
            poll.result()
            return
        raise AcquisitionTimeoutError(
            f"Navigation timed out: {url}", timeout=timeout, details={"url": url}
        )

    async def _poll_ready_state(self, token: CancellationToken | None) -> None:
        while True:
            if token is not None:
                token.raise_if_cancelled()
            if await self.evaluate("document.readyState") == "complete":
                return
            await asyncio.sleep(self._config.poll_interval)

    async def evaluate(self, expression: str) -> Any:
        """Evaluate an expression and return its value by value.

        Raises:
            EvaluationError: If the expression throws.
        """
        result = await self.send(
            "Runtime.evaluate", {"expression": expression, "returnByValue": True}
        )
        if result.get("exceptionDetails"):
            details = result["exceptionDetails"]
            exception = details.get("exception") or {}
            text = exception.get("description") or details.get("text") or "Evaluation failed"
            raise EvaluationError(text, details={"expression": expression[:200]})
        return (result.get("result") or {}).get("value")

    async def get_html(self) -> str:
        return await self.evaluate("document.documentElement.outerHTML") or ""

    async def get_title(self) -> str:
        return await self.evaluate("document.title") or ""

    async def set_viewport(self, width: int, height: int) -> None:
        await self.send(
            "Emulation.setDeviceMetricsOverride",
            {"width": width, "height": height, "deviceScaleFactor": 1, "mobile": False},
        )

    async def set_user_agent(self, user_agent: str) -> None:
        await self.send("Network.setUserAgentOverride", {"userAgent": user_agent})

    async def set_cookies(self, cookies: list[dict[str, Any]]) -> None:
        await self.send("Network.setCookies", {"cookies": cookies})


# =============================================================================
# HTTP endpoint of the debugging port
# =============================================================================


@dataclass
class DebugTarget:
    id: str
    type: str
    title: str
    url: str
    web_socket_debugger_url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DebugTarget":
        return cls(
            id=data.get("id", ""),
            type=data.get("type", ""),
            title=data.get("title", ""),
            url=data.get("url", ""),
            web_socket_debugger_url=data.get("webSocketDebuggerUrl"),
        )


class RemoteDebugEndpoint:
    """Target discovery over ``http://host:port/json/*``."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        config: RemoteDebugConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        config = config or get_settings().remote_debug
        self.base_url = (base_url or config.http_endpoint).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=config.connect_timeout)
        self._session = session
        self._owns_session = session is None

    async def _request(self, method: str, path: str) -> Any:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        try:
            async with self._session.request(method, f"{self.base_url}{path}") as response:
                if response.status >= 400:
                    raise ConnectionFailureError(
                        f"Debug endpoint returned HTTP {response.status}",
                        details={"path": path, "status_code": response.status},
                    )
                text = await response.text()
        except AcquisitionError:
            raise
        except Exception as e:
            raise ConnectionFailureError(
                f"Debug endpoint unreachable: {e}", details={"base_url": self.base_url}
            ) from e
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def get_browser_version(self) -> dict[str, Any]:
        return await self._request("GET", "/json/version")

    async def list_targets(self) -> list[DebugTarget]:
        data = await self._request("GET", "/json/list")
        return [DebugTarget.from_dict(d) for d in data if isinstance(d, dict)]

    async def open_target(self, url: str = "about:blank") -> DebugTarget:
        data = await self._request("PUT", f"/json/new?{quote(url, safe=':/?&=%#')}")
        if not isinstance(data, dict):
            raise ConnectionFailureError("Unexpected reply from /json/new")
        return DebugTarget.from_dict(data)

    async def close_target(self, target_id: str) -> None:
        await self._request("GET", f"/json/close/{target_id}")

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
