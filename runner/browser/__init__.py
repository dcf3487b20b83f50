"""
Browser session management for the browser runner.

Components:
- BrowserSessionManager: lazy, memoised Playwright browser with page
  creation, resource blocking and bounded navigation helpers
- SessionState: NOT_STARTED -> RUNNING -> CLOSED

Usage:
    from runner.browser import BrowserSessionManager

    async with BrowserSessionManager(settings, events) as session:
        page = await session.new_page()
        await session.goto(page, "https://example.com")
"""

from runner.browser.session import (
    BrowserSessionManager,
    SessionState,
    blocked_resource_patterns,
    resolve_engine,
)

__all__ = [
    "BrowserSessionManager",
    "SessionState",
    "blocked_resource_patterns",
    "resolve_engine",
]
