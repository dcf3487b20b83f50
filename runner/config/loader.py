"""
Settings loader for the browser runner.

Reads settings.yaml (or a .json file), applies environment overrides,
validates it against the Pydantic schema, and renders derived values such
as the database connection descriptor.

The file boundary reports "not found" / "malformed" through an explicit
SettingsLoadResult rather than raising, since both are operator mistakes
the CLI reports and exits on. load_settings() is the raising shortcut.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from runner.config.schema import DatabaseProvider, DatabaseSettings, Settings
from runner.exceptions import (
    ConfigNotFoundError,
    ConfigParseError,
    ConfigurationError,
    SettingsValidationError,
    UnsupportedProviderError,
)

SETTINGS_PATH_ENV = "RUNNER_SETTINGS_PATH"
DEFAULT_SETTINGS_FILE = "settings.yaml"
EXAMPLE_SETTINGS_FILE = "settings.example.yaml"


@dataclass(frozen=True)
class SettingsLoadResult:
    """Outcome of reading the settings file: either settings or an error."""

    path: Path
    settings: Optional[Settings] = None
    error: Optional[ConfigurationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.settings is not None

    def unwrap(self) -> Settings:
        """Return the settings or raise the carried error."""
        if self.error is not None:
            raise self.error
        assert self.settings is not None
        return self.settings


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses duplicate mapping keys instead of overwriting."""

    def construct_mapping(self, node, deep=False):
        seen: set[Any] = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if isinstance(key, Hashable) and key in seen:
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key {key!r}",
                    key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _reject_duplicate_pairs(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"duplicate key {key!r}")
        result[key] = value
    return result


def _parse_document(path: Path, text: str) -> Any:
    if path.suffix.lower() == ".json":
        return json.loads(text, object_pairs_hook=_reject_duplicate_pairs)
    return yaml.load(text, Loader=_UniqueKeyLoader)  # noqa: S506 - SafeLoader subclass


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Overlay a few environment variables on the parsed document.

    Reads:
        RUNNER_HEADLESS: "true"/"false" -> navigation.headless
        RUNNER_LOG_LEVEL: level name -> logging.minimum_level
        RUNNER_DB_PASSWORD: secret -> database.password
    """
    overrides: list[tuple[str, str, Any]] = []

    headless = os.environ.get("RUNNER_HEADLESS")
    if headless is not None and headless.strip():
        overrides.append(("navigation", "headless", _parse_bool(headless)))

    level = os.environ.get("RUNNER_LOG_LEVEL", "").strip()
    if level:
        overrides.append(("logging", "minimum_level", level))

    password = os.environ.get("RUNNER_DB_PASSWORD")
    if password:
        overrides.append(("database", "password", password))

    for section, key, value in overrides:
        current = raw.get(section)
        if current is None:
            raw[section] = {key: value}
        elif isinstance(current, dict):
            current[key] = value
        # A non-mapping section is left for the schema to reject.

    return raw


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def resolve_settings_path(path: Optional[str | Path] = None) -> Path:
    """Explicit path, else $RUNNER_SETTINGS_PATH, else ./settings.yaml."""
    if path is not None:
        return Path(path)
    env_path = os.environ.get(SETTINGS_PATH_ENV, "").strip()
    return Path(env_path or DEFAULT_SETTINGS_FILE)


def try_load_settings(path: Optional[str | Path] = None) -> SettingsLoadResult:
    """
    Read and parse the settings file without raising.

    Args:
        path: Optional explicit path. See resolve_settings_path().

    Returns:
        SettingsLoadResult holding either a Settings snapshot or a
        ConfigNotFoundError / ConfigParseError describing the problem.
        The snapshot is not validated yet; see validate_settings().
    """
    settings_path = resolve_settings_path(path)

    if not settings_path.is_file():
        return SettingsLoadResult(
            path=settings_path,
            error=ConfigNotFoundError(
                f"Settings file not found: {settings_path}\n"
                f"Copy '{EXAMPLE_SETTINGS_FILE}' to '{settings_path.name}' and configure it.",
                path=str(settings_path),
            ),
        )

    try:
        raw = _parse_document(settings_path, settings_path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, ValueError) as e:
        return SettingsLoadResult(
            path=settings_path,
            error=ConfigParseError(
                f"Could not parse settings file {settings_path}: {e}",
                path=str(settings_path),
            ),
        )

    if raw is None:
        return SettingsLoadResult(
            path=settings_path,
            error=ConfigParseError(
                f"Settings file is empty: {settings_path}", path=str(settings_path)
            ),
        )
    if not isinstance(raw, dict):
        return SettingsLoadResult(
            path=settings_path,
            error=ConfigParseError(
                f"Settings file must contain a mapping of sections, "
                f"got {type(raw).__name__}: {settings_path}",
                path=str(settings_path),
            ),
        )

    try:
        settings = Settings(**_apply_env_overrides(raw))
    except ValidationError as e:
        return SettingsLoadResult(
            path=settings_path,
            error=ConfigParseError(
                f"Invalid settings in {settings_path}:\n{e}",
                path=str(settings_path),
                details={"errors": e.errors(include_url=False)},
            ),
        )

    return SettingsLoadResult(path=settings_path, settings=settings)


def load_settings(path: Optional[str | Path] = None) -> Settings:
    """
    Load the settings snapshot, raising on a missing or malformed file.

    Raises:
        ConfigNotFoundError: If the file doesn't exist.
        ConfigParseError: If the file is not a valid settings document.
    """
    return try_load_settings(path).unwrap()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def collect_validation_errors(settings: Settings) -> list[str]:
    """Return every field-level problem; an empty list means valid."""
    errors: list[str] = []

    if not settings.navigation.base_url.strip():
        errors.append("navigation.base_url must not be empty")

    if settings.navigation.timeout_seconds <= 0:
        errors.append("navigation.timeout_seconds must be greater than zero")

    if not settings.categories:
        errors.append("categories must contain at least one entry")

    if not settings.database.name.strip():
        errors.append("database.name must not be empty")

    if not settings.database.user.strip():
        errors.append("database.user must not be empty")

    return errors


def validate_settings(settings: Settings) -> Settings:
    """
    Check required values, reporting all problems together.

    Raises:
        SettingsValidationError: With one message per invalid field.
    """
    errors = collect_validation_errors(settings)
    if errors:
        raise SettingsValidationError(errors)
    return settings


# ---------------------------------------------------------------------------
# Connection descriptor
# ---------------------------------------------------------------------------

def _mysql(db: DatabaseSettings) -> str:
    return (
        f"Server={db.host};Port={db.port};Database={db.name};"
        f"Uid={db.user};Pwd={db.password};Connection Timeout={db.connection_timeout};"
    )


def _postgresql(db: DatabaseSettings) -> str:
    return (
        f"Host={db.host};Port={db.port};Database={db.name};"
        f"Username={db.user};Password={db.password};Timeout={db.connection_timeout};"
    )


def _sqlserver(db: DatabaseSettings) -> str:
    return (
        f"Server={db.host},{db.port};Database={db.name};"
        f"User Id={db.user};Password={db.password};Connection Timeout={db.connection_timeout};"
    )


CONNECTION_FORMATTERS: dict[DatabaseProvider, Callable[[DatabaseSettings], str]] = {
    DatabaseProvider.MYSQL: _mysql,
    DatabaseProvider.POSTGRESQL: _postgresql,
    DatabaseProvider.SQLSERVER: _sqlserver,
}


def connection_descriptor(settings: Settings) -> str:
    """
    Render the provider-specific connection string.

    Raises:
        UnsupportedProviderError: If database.provider is not recognised.
    """
    raw_provider = settings.database.provider
    try:
        provider = DatabaseProvider(raw_provider.strip().lower())
    except ValueError:
        raise UnsupportedProviderError(raw_provider) from None
    return CONNECTION_FORMATTERS[provider](settings.database)
