"""
Pydantic settings schema for the browser runner.

A run is driven by one settings document (settings.yaml) whose top-level
sections map 1:1 onto the models below. The loaded Settings object is a
frozen snapshot: consumers receive it by reference and never mutate it.

Required values (base URL, timeout, database name/user, categories)
default to values that fail validation, so a missing entry is always
reported instead of being papered over by a default.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class BrowserEngine(str, Enum):
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class DatabaseProvider(str, Enum):
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    SQLSERVER = "sqlserver"


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class NavigationSettings(_Section):
    """Browser launch and page options."""
    base_url: str = Field("", description="Entry URL for the workflow")
    timeout_seconds: int = Field(
        0, description="Navigation / selector timeout; must be configured"
    )
    headless: bool = False
    browser: str = Field(
        "chromium", description="chromium, firefox or webkit (case-insensitive)"
    )
    viewport_width: int = Field(1920, ge=1)
    viewport_height: int = Field(1080, ge=1)
    user_agent: str = Field(
        "", description="User-Agent override; empty keeps the engine default"
    )
    block_images: bool = False
    block_stylesheets: bool = Field(
        False, description="Also blocks web fonts"
    )
    maximize_on_launch: bool = False
    screenshot_dir: str = "screenshots"

    @property
    def timeout_ms(self) -> int:
        return self.timeout_seconds * 1000

    def get_viewport(self) -> dict[str, int]:
        """Get viewport dimensions as dict for playwright."""
        return {
            "width": self.viewport_width,
            "height": self.viewport_height,
        }


class ScrapingSettings(_Section):
    """Pacing and retry policy used by workflows (never by the core)."""
    request_interval_ms: int = Field(2000, ge=0)
    max_retries: int = Field(3, ge=0)
    delay_after_error_ms: int = Field(5000, ge=0)


class DatabaseSettings(_Section):
    """Connection parameters; only rendered into a connection descriptor."""
    provider: str = "mysql"
    host: str = "localhost"
    port: int = Field(3306, ge=1, le=65535)
    name: str = ""
    user: str = ""
    password: str = ""
    connection_timeout: int = Field(30, ge=0)


class LoggingSettings(_Section):
    """Log sink locations and the minimum level."""
    directory: str = "logs"
    minimum_level: str = Field(
        "information",
        description="verbose, debug, information, warning, error or fatal",
    )
    success_file: str = Field(
        "success/log-{Date}.txt",
        description="Receives events below warning; {Date} becomes dd-mm-YYYY",
    )
    failure_file: str = Field(
        "failure/log-{Date}.txt",
        description="Receives warning and above",
    )
    console_format: Literal["text", "json"] = "text"


class SchedulingSettings(_Section):
    """Recorded for completeness; no scheduler runs these."""
    enabled: bool = True
    interval_minutes: int = Field(60, ge=1)
    run_on_start: bool = False


class ExportSettings(_Section):
    enabled: bool = True
    default_format: str = "excel"
    output_directory: str = "exports"


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------

class Settings(_Section):
    """
    Complete settings snapshot for one run.

    This is the top-level model that gets loaded from settings.yaml.
    """
    navigation: NavigationSettings = Field(default_factory=NavigationSettings)
    scraping: ScrapingSettings = Field(default_factory=ScrapingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    scheduling: SchedulingSettings = Field(default_factory=SchedulingSettings)
    export: ExportSettings = Field(default_factory=ExportSettings)
    categories: Mapping[str, str] = Field(
        default_factory=dict,
        validate_default=True,
        description="Category name -> value; at least one entry is required",
    )

    @field_validator("categories")
    @classmethod
    def strip_category_names(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        """Trim names; the snapshot holds a read-only view of the mapping."""
        stripped = {key.strip(): value for key, value in v.items()}
        if len(stripped) != len(v):
            raise ValueError("category names must be unique after trimming")
        return MappingProxyType(stripped)
