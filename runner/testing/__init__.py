"""Test doubles for running the browser layer without a real browser."""

from runner.testing.mock_browser import (
    MockBrowser,
    MockContext,
    MockPage,
    MockPlaywright,
    create_mock_playwright,
    patch_playwright,
)

__all__ = [
    "MockBrowser",
    "MockContext",
    "MockPage",
    "MockPlaywright",
    "create_mock_playwright",
    "patch_playwright",
]
