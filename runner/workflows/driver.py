"""
NavigationDriver: thin step API over one page, plus the workflow runner.

The driver issues goto / wait / fill / press / screenshot steps against a
page owned by a BrowserSessionManager. Retry policy lives here, in the
workflow layer: the session manager itself never retries.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError, Page

from runner.browser.session import BrowserSessionManager
from runner.config.schema import Settings
from runner.exceptions import ElementTimeoutError, NavigationError
from runner.observability.logging_config import EventLogger

RETRYABLE_ERRORS = (NavigationError, ElementTimeoutError)

_WINDOW_SIZE_SCRIPT = (
    "() => ({ width: window.outerWidth, height: window.outerHeight, "
    "screen: { width: screen.width, height: screen.height } })"
)


class NavigationDriver:
    """
    Step-by-step page driver used by workflows.

    Consecutive goto() calls are spaced by scraping.request_interval_ms.

    Args:
        page: Page created by `session`.
        session: Owning BrowserSessionManager.
    """

    def __init__(self, page: Page, session: BrowserSessionManager) -> None:
        self.page = page
        self.session = session
        self._last_navigation: Optional[float] = None

    @property
    def settings(self) -> Settings:
        return self.session.settings

    @property
    def events(self) -> EventLogger:
        return self.session.events

    async def goto(self, url: str, *, timeout_ms: Optional[int] = None) -> None:
        await self._pace()
        try:
            await self.session.goto(self.page, url, timeout_ms=timeout_ms)
        finally:
            self._last_navigation = time.monotonic()

    async def _pace(self) -> None:
        if self._last_navigation is None:
            return
        interval = self.settings.scraping.request_interval_ms / 1000
        remaining = interval - (time.monotonic() - self._last_navigation)
        if remaining > 0:
            await asyncio.sleep(remaining)

    async def wait_for(self, selector: str, timeout_ms: Optional[int] = None) -> None:
        await self.session.wait_for_selector(self.page, selector, timeout_ms)

    async def fill(self, selector: str, value: str) -> None:
        try:
            await self.page.fill(selector, value)
        except PlaywrightError as e:
            self.events.error(e, f"NavigationDriver.fill({selector})")
            raise NavigationError(
                f"Could not fill '{selector}': {e}",
                url=self.page.url,
                operation="fill",
            ) from e

    async def press(self, selector: str, key: str) -> None:
        try:
            await self.page.press(selector, key)
        except PlaywrightError as e:
            self.events.error(e, f"NavigationDriver.press({selector}, {key})")
            raise NavigationError(
                f"Could not press '{key}' on '{selector}': {e}",
                url=self.page.url,
                operation="press",
            ) from e

    async def title(self) -> str:
        return await self.page.title()

    async def window_size(self) -> dict[str, Any]:
        """Outer window and screen dimensions as reported by the page."""
        return await self.page.evaluate(_WINDOW_SIZE_SCRIPT)

    async def screenshot(self, name: str, full_page: bool = True) -> Optional[Path]:
        return await self.session.screenshot(self.page, name, full_page=full_page)

    async def close(self) -> None:
        await self.session.close_page(self.page)


Workflow = Callable[[NavigationDriver], Awaitable[None]]


async def run_workflow(
    session: BrowserSessionManager,
    workflow: Workflow,
    *,
    name: Optional[str] = None,
) -> None:
    """
    Run `workflow` on a fresh page, retrying navigation failures.

    NavigationError / ElementTimeoutError are retried up to
    scraping.max_retries times, waiting scraping.delay_after_error_ms
    between attempts. Each attempt gets its own page, which is always
    closed afterwards. Any other error, or the last failed attempt, is
    logged and re-raised.
    """
    scraping = session.settings.scraping
    events = session.events
    label = name or getattr(workflow, "__name__", "workflow")
    attempts = scraping.max_retries + 1

    for attempt in range(1, attempts + 1):
        page = await session.new_page()
        driver = NavigationDriver(page, session)
        try:
            events.info(f"Running {label} (attempt {attempt}/{attempts})", workflow=label)
            await workflow(driver)
            events.info(f"{label} finished", workflow=label)
            return
        except RETRYABLE_ERRORS as e:
            if attempt == attempts:
                events.error(e, f"run_workflow({label})", attempts=attempts)
                raise
            events.warn(
                f"Attempt {attempt} failed: {e}; retrying in {scraping.delay_after_error_ms} ms",
                f"run_workflow({label})",
                attempt=attempt,
            )
        except Exception as e:
            events.error(e, f"run_workflow({label})")
            raise
        finally:
            await driver.close()

        await asyncio.sleep(scraping.delay_after_error_ms / 1000)
