"""
Persistent browser sessions keyed by identity (profile).

Each identity owns at most one Session. A session is either launched
(persistent Playwright context under ``<profiles_dir>/<identity>/browser-data``
so logins survive restarts) or attached to an already running browser over
its debugging endpoint. Idle sessions are closed by a periodic sweep.
"""

import asyncio
import base64
import json
import os
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from playwright.async_api import async_playwright

from crawlkit.storage.port import StoragePort
from crawlkit.utils.config import SessionConfig, get_project_root, get_settings
from crawlkit.utils.errors import ConnectionFailureError, wrap_exception
from crawlkit.utils.logging import get_logger
from crawlkit.utils.sweeper import PeriodicSweeper

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = get_logger(__name__)

DEVTOOLS_ACTIVE_PORT = "DevToolsActivePort"
COOKIE_KEY_PREFIX = "cookies:"


@dataclass
class Session:
    """One live browser session."""

    identity: str
    context: "BrowserContext"
    page: "Page"
    created_at: float
    last_activity: float
    browser: "Browser | None" = None  # set only in attach mode
    headless: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def attached(self) -> bool:
        return self.browser is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
            "attached": self.attached,
            "url": "(closed)" if self.page.is_closed() else self.page.url,
        }


def browser_data_dirs() -> list[Path]:
    """Known user-data directories, Canary first, for the running platform."""
    home = Path.home()
    if sys.platform == "darwin":
        base = home / "Library" / "Application Support"
        names = [
            "Google/Chrome Canary",
            "Google/Chrome",
            "Google/Chrome Dev",
            "Google/Chrome Beta",
            "Chromium",
        ]
        return [base / n for n in names]
    if sys.platform.startswith("win"):
        base = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local"))
        names = [
            "Google/Chrome SxS/User Data",
            "Google/Chrome/User Data",
            "Google/Chrome Dev/User Data",
            "Google/Chrome Beta/User Data",
            "Chromium/User Data",
        ]
        return [base / n for n in names]
    base = Path(os.environ.get("XDG_CONFIG_HOME", home / ".config"))
    names = [
        "google-chrome-canary",
        "google-chrome",
        "google-chrome-unstable",
        "google-chrome-beta",
        "chromium",
    ]
    return [base / n for n in names]


def resolve_debugger_url(url: str, search_dirs: list[Path] | None = None) -> str:
    """Turn a debugger URL into a websocket endpoint.

    ws:// and wss:// URLs are returned unchanged. Otherwise the first
    readable DevToolsActivePort file (port line, then path line) yields
    ``ws://127.0.0.1:<port><path>``. Falls back to ``url`` itself.
    """
    if url.startswith(("ws://", "wss://")):
        return url

    for directory in search_dirs if search_dirs is not None else browser_data_dirs():
        try:
            lines = (directory / DEVTOOLS_ACTIVE_PORT).read_text(encoding="utf-8").split("\n")
        except OSError:
            continue
        port = lines[0].strip() if lines else ""
        path = lines[1].strip() if len(lines) > 1 else ""
        if port and path:
            return f"ws://127.0.0.1:{port}{path}"

    return url


class SessionManager:
    """
    Get-or-create browser sessions per identity.

    Example:
        manager = SessionManager()
        manager.start()
        page = await manager.get_page("work")
        ...
        await manager.stop()
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or get_settings().session
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._playwright: "Playwright | None" = None
        self._sweeper = PeriodicSweeper(
            "idle_sessions",
            self._config.cleanup_interval_seconds,
            self.cleanup_idle,
        )

    @property
    def profiles_dir(self) -> Path:
        path = Path(self._config.profiles_dir)
        return path if path.is_absolute() else get_project_root() / path

    def start(self) -> None:
        """Start the idle-session sweep."""
        self._sweeper.start()

    async def stop(self) -> None:
        """Stop the sweep and close every session."""
        await self._sweeper.stop()
        for identity in list(self._sessions):
            await self.close_session(identity)
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("Playwright stop failed", error=str(e))
            self._playwright = None
        logger.info("Session manager stopped")

    async def _ensure_playwright(self) -> "Playwright":
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return self._playwright

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    async def _reuse(self, session: Session) -> Session | None:
        """Touch a session, replacing a closed page.

        Returns None (after dropping the session) when its context can no
        longer open pages, so the caller creates a fresh one.
        """
        session.last_activity = self._clock()
        if session.page.is_closed():
            try:
                session.page = await session.context.new_page()
            except Exception as e:
                logger.warning("Dropping dead session", identity=session.identity, error=str(e))
                if self._sessions.get(session.identity) is session:
                    await self.close_session(session.identity)
                return None
        return session

    async def get_or_create_session(
        self,
        identity: str,
        *,
        headless: bool = True,
        debugger_url: str | None = None,
    ) -> Session:
        """Return the identity's session, creating it on first use.

        Concurrent callers for the same identity wait on one creation and all
        receive the same Session.
        """
        existing = self._sessions.get(identity)
        if existing is not None:
            reused = await self._reuse(existing)
            if reused is not None:
                return reused

        lock = self._locks.setdefault(identity, asyncio.Lock())
        async with lock:
            existing = self._sessions.get(identity)
            if existing is not None:
                reused = await self._reuse(existing)
                if reused is not None:
                    return reused

            try:
                if debugger_url:
                    session = await self._attach(identity, debugger_url)
                else:
                    session = await self._launch(identity, headless)
            except Exception as e:
                logger.error("Session creation failed", identity=identity, error=str(e))
                raise ConnectionFailureError(
                    f"Could not open session '{identity}': {e}",
                    details={"identity": identity},
                ) from e

            self._sessions[identity] = session
            logger.info(
                "Session created",
                identity=identity,
                attached=session.attached,
                headless=session.headless,
            )
            return session

    async def _launch(self, identity: str, headless: bool) -> Session:
        playwright = await self._ensure_playwright()
        user_data_dir = self.profiles_dir / identity / "browser-data"
        user_data_dir.mkdir(parents=True, exist_ok=True)

        context = await playwright.chromium.launch_persistent_context(
            str(user_data_dir),
            headless=headless,
            viewport={
                "width": self._config.attach_viewport_width,
                "height": self._config.attach_viewport_height,
            },
            args=["--no-first-run", "--no-default-browser-check"],
        )
        page = context.pages[0] if context.pages else await context.new_page()
        now = self._clock()
        return Session(
            identity=identity,
            context=context,
            page=page,
            created_at=now,
            last_activity=now,
            headless=headless,
        )

    async def _attach(self, identity: str, debugger_url: str) -> Session:
        playwright = await self._ensure_playwright()
        endpoint = resolve_debugger_url(debugger_url)
        logger.info("Attaching to running browser", identity=identity, endpoint=endpoint)

        browser = await playwright.chromium.connect_over_cdp(endpoint)
        context = browser.contexts[0] if browser.contexts else await browser.new_context()
        page = context.pages[0] if context.pages else await context.new_page()
        # Attached windows can be minimised to a few pixels.
        await page.set_viewport_size(
            {
                "width": self._config.attach_viewport_width,
                "height": self._config.attach_viewport_height,
            }
        )
        now = self._clock()
        return Session(
            identity=identity,
            context=context,
            page=page,
            created_at=now,
            last_activity=now,
            browser=browser,
            headless=False,
        )

    async def close_session(self, identity: str) -> bool:
        """Close one session. Attached sessions only detach.

        Returns:
            False if the identity had no session.
        """
        session = self._sessions.pop(identity, None)
        lock = self._locks.get(identity)
        if lock is not None and not lock.locked():
            del self._locks[identity]
        if session is None:
            return False
        try:
            if session.browser is not None:
                # Disconnects from a connect_over_cdp browser without quitting it.
                await session.browser.close()
            else:
                await session.context.close()
        except Exception as e:
            logger.debug("Session close failed", identity=identity, error=str(e))
        logger.info("Session closed", identity=identity)
        return True

    async def cleanup_idle(self) -> int:
        """Close sessions idle for longer than the idle timeout."""
        now = self._clock()
        timeout = self._config.idle_timeout_seconds
        expired = [i for i, s in self._sessions.items() if now - s.last_activity > timeout]
        for identity in expired:
            logger.info("Closing idle session", identity=identity)
            await self.close_session(identity)
        return len(expired)

    def list_sessions(self) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self._sessions.values()]

    def has_session(self, identity: str) -> bool:
        return identity in self._sessions

    async def get_page(
        self,
        identity: str,
        *,
        headless: bool = True,
        debugger_url: str | None = None,
    ) -> "Page":
        session = await self.get_or_create_session(
            identity, headless=headless, debugger_url=debugger_url
        )
        return session.page

    # =========================================================================
    # Screenshots
    # =========================================================================

    async def capture_screenshot(
        self,
        identity: str,
        *,
        full_page: bool = False,
        selector: str | None = None,
        timeout: float = 30.0,
    ) -> str:
        """Screenshot the identity's page (or one element) as base64 PNG."""
        page = await self.get_page(identity)
        timeout_ms = int(timeout * 1000)
        if selector:
            data = await page.locator(selector).first.screenshot(timeout=timeout_ms)
        else:
            data = await page.screenshot(full_page=full_page, timeout=timeout_ms)
        return base64.b64encode(data).decode("ascii")

    async def error_screenshot(self, identity: str) -> str | None:
        """Best-effort screenshot for error reports."""
        if identity not in self._sessions:
            return None
        try:
            return await self.capture_screenshot(identity)
        except Exception as e:
            logger.debug("Error screenshot failed", identity=identity, error=str(e))
            return None

    # =========================================================================
    # Cookie persistence
    # =========================================================================

    async def save_cookies(self, identity: str, storage: StoragePort) -> int:
        """Write the session's cookies to storage as JSON.

        Returns:
            Number of cookies saved.
        """
        session = self._sessions.get(identity)
        if session is None:
            raise ConnectionFailureError(
                f"No session for '{identity}'", details={"identity": identity}
            )
        try:
            cookies = await session.context.cookies()
        except Exception as e:
            raise wrap_exception(e) from e
        await storage.set(f"{COOKIE_KEY_PREFIX}{identity}", json.dumps(cookies))
        logger.info("Cookies saved", identity=identity, count=len(cookies))
        return len(cookies)

    async def restore_cookies(self, identity: str, storage: StoragePort) -> int:
        """Load cookies saved for the identity into its session.

        Returns:
            Number of cookies restored (0 when nothing was saved).
        """
        raw = await storage.get(f"{COOKIE_KEY_PREFIX}{identity}")
        if not raw:
            return 0
        try:
            cookies = json.loads(raw)
        except ValueError:
            logger.warning("Stored cookies are not valid JSON", identity=identity)
            return 0

        session = await self.get_or_create_session(identity)
        await session.context.add_cookies(cookies)
        logger.info("Cookies restored", identity=identity, count=len(cookies))
        return len(cookies)
