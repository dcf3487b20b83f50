"""
BrowserSessionManager: Playwright lifecycle wrapper for the browser runner.

Owns at most one browser process per instance and every context/page it
creates. The browser is launched lazily on first use; concurrent callers
share a single launch.

Architecture:
    BrowserSessionManager
    +-- Playwright driver (playwright.async_api)
    +-- Browser (chromium / firefox / webkit)
    +-- BrowserContext per page (viewport, user agent, blocking routes)
    +-- EventLogger (diagnostics)

State machine:
    NOT_STARTED --ensure_started()--> RUNNING --close()--> CLOSED
    NOT_STARTED --close()--> CLOSED
CLOSED is terminal; create a new manager to browse again.

Usage:
    from runner.browser.session import BrowserSessionManager

    async with BrowserSessionManager(settings, events) as session:
        page = await session.new_page()
        await session.goto(page, settings.navigation.base_url)
        await session.wait_for_selector(page, "h1")
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from runner.config.schema import BrowserEngine, NavigationSettings, Settings
from runner.exceptions import (
    ElementTimeoutError,
    LaunchError,
    NavigationError,
    PageCreationError,
    SessionClosedError,
)
from runner.observability.logging_config import EventLogger


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    CLOSED = "closed"


# ─── Resource blocking ───────────────────────────────────────────────

IMAGE_PATTERNS = ("**/*.{png,jpg,jpeg,gif,svg,webp,ico,bmp}",)
STYLESHEET_PATTERNS = ("**/*.css", "**/*.woff", "**/*.woff2", "**/*.ttf")

MAXIMIZE_ARGS = ("--start-maximized",)


def resolve_engine(name: Optional[str]) -> BrowserEngine:
    """Match an engine name case-insensitively; anything unknown is chromium."""
    try:
        return BrowserEngine((name or "").strip().lower())
    except ValueError:
        return BrowserEngine.CHROMIUM


def blocked_resource_patterns(navigation: NavigationSettings) -> list[str]:
    """URL glob patterns to abort for the configured blocking flags."""
    patterns: list[str] = []
    if navigation.block_images:
        patterns.extend(IMAGE_PATTERNS)
    if navigation.block_stylesheets:
        patterns.extend(STYLESHEET_PATTERNS)
    return patterns


async def abort_route(route: Route) -> None:
    await route.abort()


class BrowserSessionManager:
    """
    Lifecycle manager for one Playwright browser and its pages.

    Provides:
    - Memoised, lock-serialised launch (at most one browser process)
    - Pages in isolated contexts with viewport, user agent and
      resource blocking applied before the first request
    - Bounded navigation and selector waits
    - Idempotent close that logs cleanup failures instead of raising

    Args:
        settings: Validated settings snapshot.
        events: EventLogger for diagnostics. If None, an unconfigured
            EventLogger is used (records still reach stdlib logging).
    """

    def __init__(
        self,
        settings: Settings,
        events: Optional[EventLogger] = None,
    ) -> None:
        self.settings = settings
        self.events = events or EventLogger()
        self.engine = resolve_engine(settings.navigation.browser)
        self._state = SessionState.NOT_STARTED
        self._lock = asyncio.Lock()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._pages: list[tuple[Page, BrowserContext]] = []

    # ─── Properties ──────────────────────────────────────────────────

    @property
    def navigation(self) -> NavigationSettings:
        return self.settings.navigation

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING and self._browser is not None

    @property
    def is_closed(self) -> bool:
        return self._state is SessionState.CLOSED

    @property
    def browser(self) -> Optional[Browser]:
        return self._browser

    @property
    def pages(self) -> list[Page]:
        return [page for page, _ in self._pages]

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def ensure_started(self) -> Browser:
        """
        Launch the browser if needed and return it.

        Concurrent callers wait on the same lock; only the first one
        launches, the rest receive the memoised browser.

        Raises:
            SessionClosedError: If the manager has been closed.
            LaunchError: If Playwright or the browser fails to start.
        """
        async with self._lock:
            if self._state is SessionState.CLOSED:
                raise SessionClosedError(
                    "Browser session has been closed and cannot be restarted",
                    operation="ensure_started",
                )
            if self._browser is not None:
                return self._browser
            return await self._launch()

    async def _launch(self) -> Browser:
        engine = self.engine
        self.events.info(
            f"Launching {engine.value} browser",
            engine=engine.value,
            headless=self.navigation.headless,
        )

        playwright = self._playwright
        try:
            if playwright is None:
                playwright = await async_playwright().start()
                # Owned from here on: close() stops it even if launch() is cancelled
                self._playwright = playwright
            browser_type = getattr(playwright, engine.value)
            browser = await browser_type.launch(**self._launch_options())
        except Exception as e:
            self.events.error(
                e,
                "BrowserSessionManager.ensure_started",
                engine=engine.value,
            )
            if playwright is not None:
                await self._stop_playwright(playwright)
                self._playwright = None
            raise LaunchError(
                f"Failed to launch {engine.value} browser: {e}",
                engine=engine.value,
            ) from e

        self._browser = browser
        self._state = SessionState.RUNNING
        self.events.info(f"Browser {engine.value} started", engine=engine.value)
        return browser

    def _launch_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "headless": self.navigation.headless,
            "timeout": self.navigation.timeout_ms,
        }
        if self._maximize():
            options["args"] = list(MAXIMIZE_ARGS)
        return options

    def _maximize(self) -> bool:
        # Only chromium understands --start-maximized
        return self.navigation.maximize_on_launch and self.engine is BrowserEngine.CHROMIUM

    def _context_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self._maximize():
            options["no_viewport"] = True
        else:
            options["viewport"] = self.navigation.get_viewport()
        user_agent = self.navigation.user_agent.strip()
        if user_agent:
            options["user_agent"] = user_agent
        return options

    async def close(self) -> None:
        """
        Close every page, the browser and the Playwright driver.

        Safe to call multiple times and before the browser was started.
        Cleanup failures are logged, never raised.
        """
        async with self._lock:
            if self._state is SessionState.CLOSED:
                return

            previous = self._state
            self._state = SessionState.CLOSED
            if previous is SessionState.NOT_STARTED:
                if self._playwright is not None:
                    # A cancelled launch left the driver running
                    await self._stop_playwright(self._playwright)
                    self._playwright = None
                    self.events.info("Playwright stopped")
                self.events.debug("Browser session closed before launch")
                return

            for _, context in self._pages:
                try:
                    await context.close()
                except Exception as e:
                    self.events.error(e, "BrowserSessionManager.close(context)")
            self._pages.clear()

            if self._browser is not None:
                try:
                    await self._browser.close()
                    self.events.info("Browser closed")
                except Exception as e:
                    self.events.error(e, "BrowserSessionManager.close(browser)")
                finally:
                    self._browser = None

            if self._playwright is not None:
                await self._stop_playwright(self._playwright)
                self._playwright = None

            self.events.info("Playwright stopped")

    async def _stop_playwright(self, playwright: Playwright) -> None:
        try:
            await playwright.stop()
        except Exception as e:
            self.events.error(e, "BrowserSessionManager.stop_playwright")

    async def __aenter__(self) -> "BrowserSessionManager":
        """Async context manager entry; the browser still launches lazily."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit: always closes the session."""
        await self.close()

    # ─── Pages ───────────────────────────────────────────────────────

    async def new_page(self) -> Page:
        """
        Create a page in a fresh, isolated browsing context.

        Blocking routes are registered on the context before the page
        exists, so blocked resources never load, not even on the first
        request.

        Raises:
            SessionClosedError: If the manager has been closed.
            LaunchError: If the lazy launch fails.
            PageCreationError: If the context or page cannot be created.
        """
        if self._state is SessionState.CLOSED:
            raise SessionClosedError(
                "Browser session is closed; create a new session",
                operation="new_page",
            )

        browser = await self.ensure_started()

        context: Optional[BrowserContext] = None
        try:
            context = await browser.new_context(**self._context_options())
            await self._apply_resource_blocking(context)
            page = await context.new_page()
            page.set_default_timeout(self.navigation.timeout_ms)
        except Exception as e:
            self.events.error(e, "BrowserSessionManager.new_page")
            if context is not None:
                await self._close_context(context)
            raise PageCreationError(
                f"Failed to create page: {e}",
                operation="new_page",
            ) from e

        if self._state is not SessionState.RUNNING:
            # close() ran while the page was being created
            await self._close_context(context)
            raise SessionClosedError(
                "Browser session closed while creating a page",
                operation="new_page",
            )

        self._pages.append((page, context))
        self.events.debug("New page created with configured options")
        return page

    async def _apply_resource_blocking(self, context: BrowserContext) -> None:
        patterns = blocked_resource_patterns(self.navigation)
        if not patterns:
            return

        for pattern in patterns:
            await context.route(pattern, abort_route)

        self.events.debug(
            f"Resource blocking configured: {', '.join(patterns)}",
            patterns=patterns,
        )

    async def close_page(self, page: Page) -> None:
        """Close a page together with its context. Unknown pages are ignored."""
        for index, (owned, context) in enumerate(self._pages):
            if owned is page:
                del self._pages[index]
                await self._close_context(context)
                return

    async def _close_context(self, context: BrowserContext) -> None:
        try:
            await context.close()
        except Exception as e:
            self.events.error(e, "BrowserSessionManager.close_page")

    # ─── Navigation ──────────────────────────────────────────────────

    async def goto(
        self,
        page: Page,
        url: str,
        *,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """
        Navigate and wait only for DOMContentLoaded.

        Slow subresources (often blocked anyway) never stall the run.

        Args:
            page: Page created by this manager.
            url: Target URL.
            timeout_ms: Override for the configured navigation timeout.

        Raises:
            NavigationError: On timeout or any navigation failure.
        """
        timeout = self.navigation.timeout_ms if timeout_ms is None else timeout_ms
        self.events.debug(f"Navigating to: {url}", url=url)

        try:
            await page.goto(url, timeout=timeout, wait_until="domcontentloaded")
        except PlaywrightError as e:
            self.events.error(e, f"BrowserSessionManager.goto({url})", timeout_ms=timeout)
            raise NavigationError(
                f"Navigation to {url} failed: {e}",
                url=url,
                details={"timeout_ms": timeout},
            ) from e

        self.events.info(f"Page loaded: {url}")

    async def wait_for_selector(
        self,
        page: Page,
        selector: str,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """
        Wait until `selector` is visible.

        Raises:
            ElementTimeoutError: If it is not visible within the timeout.
            NavigationError: If the page fails otherwise (e.g. closed).
        """
        timeout = self.navigation.timeout_ms if timeout_ms is None else timeout_ms
        context = f"BrowserSessionManager.wait_for_selector({selector})"

        try:
            await page.wait_for_selector(selector, timeout=timeout, state="visible")
        except PlaywrightTimeoutError as e:
            self.events.error(e, context, timeout_ms=timeout)
            raise ElementTimeoutError(
                f"Element '{selector}' not visible after {timeout} ms",
                selector=selector,
                timeout_ms=timeout,
            ) from e
        except PlaywrightError as e:
            self.events.error(e, context)
            raise NavigationError(
                f"Waiting for '{selector}' failed: {e}",
                url=page.url,
                operation="wait_for_selector",
            ) from e

    async def screenshot(
        self,
        page: Page,
        name: str,
        full_page: bool = True,
    ) -> Optional[Path]:
        """
        Save a debug screenshot under navigation.screenshot_dir.

        Returns:
            The written path, or None if the capture failed (logged).
        """
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        directory = Path(self.navigation.screenshot_dir)
        path = directory / f"debug_{timestamp}_{name}.png"

        try:
            directory.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=full_page)
        except (PlaywrightError, OSError) as e:
            self.events.error(e, "BrowserSessionManager.screenshot", screenshot=name)
            return None

        self.events.debug(f"Screenshot saved: {path}")
        return path

    # ─── Introspection ───────────────────────────────────────────────

    def describe(self) -> dict[str, Any]:
        """Current state plus the effective navigation options, for debugging."""
        nav = self.navigation
        return {
            "state": self._state.value,
            "browser_active": self._browser is not None,
            "playwright_active": self._playwright is not None,
            "open_pages": len(self._pages),
            "configuration": {
                "browser": self.engine.value,
                "headless": nav.headless,
                "timeout_seconds": nav.timeout_seconds,
                "viewport_width": nav.viewport_width,
                "viewport_height": nav.viewport_height,
                "block_images": nav.block_images,
                "block_stylesheets": nav.block_stylesheets,
                "maximize_on_launch": nav.maximize_on_launch,
            },
        }

    def __repr__(self) -> str:
        return (
            f"BrowserSessionManager(engine={self.engine.value!r}, "
            f"state={self._state.value!r}, "
            f"headless={self.navigation.headless})"
        )
