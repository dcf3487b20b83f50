"""
Custom exception hierarchy for the browser runner.

Structured error handling with clear categories:
- Configuration errors (fatal at startup, before any browser work)
- Browser lifecycle errors (launch / page creation, surfaced to the caller)
- Navigation errors (recoverable, the calling workflow decides)

Usage:
    from runner.exceptions import NavigationError

    try:
        await session.goto(page, url)
    except NavigationError as e:
        events.warn(str(e), "workflow", url=e.url)
"""

from __future__ import annotations

from typing import Optional


class RunnerError(Exception):
    """
    Base exception for all browser runner errors.

    All custom exceptions inherit from this, so you can catch
    `RunnerError` to handle any runner-specific error.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class ConfigurationError(RunnerError):
    """Raised when the settings document cannot be turned into a usable snapshot."""


class ConfigNotFoundError(ConfigurationError):
    """
    Raised when the settings file does not exist at the expected path.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.path = path


class ConfigParseError(ConfigurationError):
    """
    Raised when the settings file exists but is malformed.

    Examples:
    - YAML / JSON syntax errors
    - Empty document or a document that is not a mapping
    - Duplicate keys
    - Values of the wrong type (e.g. "abc" for a timeout)
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.path = path


class SettingsValidationError(ConfigurationError):
    """
    Raised when a parsed snapshot is missing required values.

    Carries every field-level message at once so the operator can
    fix the settings file in a single pass.
    """

    def __init__(
        self,
        errors: list[str],
        *,
        details: Optional[dict] = None,
    ):
        message = "Invalid settings:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(message, details=details)
        self.errors = list(errors)


class UnsupportedProviderError(ConfigurationError):
    """Raised when database.provider is not one of the known providers."""

    def __init__(
        self,
        provider: str,
        *,
        details: Optional[dict] = None,
    ):
        super().__init__(f"Provider '{provider}' is not supported", details=details)
        self.provider = provider


# ── Browser Errors ────────────────────────────────────────────────


class BrowserError(RunnerError):
    """
    Base class for failures raised by the browser session manager.

    `operation` names the manager method that failed so the log line
    is diagnosable without re-running.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.operation = operation


class LaunchError(BrowserError):
    """Raised when the browser process fails to launch."""

    def __init__(
        self,
        message: str,
        *,
        engine: Optional[str] = None,
        operation: Optional[str] = "ensure_started",
        details: Optional[dict] = None,
    ):
        super().__init__(message, operation=operation, details=details)
        self.engine = engine


class PageCreationError(BrowserError):
    """Raised when a browsing context or page cannot be created."""


class SessionClosedError(PageCreationError):
    """
    Raised when a closed session is asked for a new page or a relaunch.

    A closed session is terminal: create a new BrowserSessionManager.
    """


class NavigationError(BrowserError):
    """Raised when a page navigation fails or exceeds its timeout."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        operation: Optional[str] = "goto",
        details: Optional[dict] = None,
    ):
        super().__init__(message, operation=operation, details=details)
        self.url = url


class ElementTimeoutError(BrowserError):
    """Raised when an element does not become visible in time."""

    def __init__(
        self,
        message: str,
        *,
        selector: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        operation: Optional[str] = "wait_for_selector",
        details: Optional[dict] = None,
    ):
        super().__init__(message, operation=operation, details=details)
        self.selector = selector
        self.timeout_ms = timeout_ms
