"""
Tests for the settings schema and loader.

Validates:
- Loading YAML / JSON documents into a frozen Settings snapshot
- SettingsLoadResult for missing and malformed files
- Duplicate-key rejection and category name trimming
- RUNNER_* environment overrides
- validate_settings() reporting every missing required value
- connection_descriptor() provider dispatch
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from runner.config import (
    Settings,
    collect_validation_errors,
    connection_descriptor,
    load_settings,
    resolve_settings_path,
    try_load_settings,
    validate_settings,
)
from runner.config.schema import NavigationSettings
from runner.exceptions import (
    ConfigNotFoundError,
    ConfigParseError,
    SettingsValidationError,
    UnsupportedProviderError,
)


def _replace(settings: Settings, section: str, **values) -> Settings:
    """Copy of `settings` with fields of one section replaced."""
    if section == "categories":
        return settings.model_copy(update={"categories": values["value"]})
    updated = getattr(settings, section).model_copy(update=values)
    return settings.model_copy(update={section: updated})


# ─── Loading ─────────────────────────────────────────────────────────


class TestLoadSettings:
    """Tests for reading the settings file."""

    def test_loads_valid_yaml(self, settings_file):
        settings = load_settings(settings_file())

        assert settings.navigation.base_url == "https://example.com"
        assert settings.navigation.timeout_seconds == 30
        assert settings.database.name == "shop"
        assert settings.categories == {"books": "https://example.com/books"}

    def test_defaults_for_omitted_sections(self, settings_file):
        settings = load_settings(settings_file())

        assert settings.scheduling.interval_minutes == 60
        assert settings.export.default_format == "excel"
        assert settings.logging.success_file == "success/log-{Date}.txt"
        assert settings.logging.failure_file == "failure/log-{Date}.txt"
        assert settings.navigation.browser == "chromium"

    def test_loads_json_by_suffix(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({
            "navigation": {"base_url": "https://example.org", "timeout_seconds": 5},
            "categories": {"a": "1"},
        }))

        settings = load_settings(path)
        assert settings.navigation.base_url == "https://example.org"

    def test_settings_are_frozen(self, settings_file):
        settings = load_settings(settings_file())
        with pytest.raises(ValidationError):
            settings.navigation.base_url = "https://changed.example"

    def test_categories_are_read_only(self, settings_file):
        """The categories mapping cannot be changed through the snapshot."""
        settings = load_settings(settings_file())

        with pytest.raises(TypeError):
            settings.categories["injected"] = "x"
        with pytest.raises(TypeError):
            del settings.categories["books"]
        assert dict(settings.categories) == {"books": "https://example.com/books"}

    def test_default_categories_are_read_only(self):
        with pytest.raises(TypeError):
            Settings().categories["injected"] = "x"

    def test_env_var_selects_path(self, settings_file, monkeypatch):
        path = settings_file("custom.yaml")
        monkeypatch.setenv("RUNNER_SETTINGS_PATH", str(path))

        assert resolve_settings_path() == path
        assert load_settings().database.user == "root"

    def test_default_path(self):
        assert resolve_settings_path().name == "settings.yaml"


class TestSettingsLoadResult:
    """Tests for the non-raising file boundary."""

    def test_ok_result(self, settings_file):
        result = try_load_settings(settings_file())
        assert result.ok
        assert result.error is None
        assert result.unwrap() is result.settings

    def test_missing_file(self, tmp_path):
        result = try_load_settings(tmp_path / "nope.yaml")

        assert not result.ok
        assert isinstance(result.error, ConfigNotFoundError)
        assert result.error.path == str(tmp_path / "nope.yaml")
        assert "settings.example.yaml" in str(result.error)

    def test_unwrap_raises_carried_error(self, tmp_path):
        with pytest.raises(ConfigNotFoundError):
            try_load_settings(tmp_path / "nope.yaml").unwrap()

    def test_syntax_error(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("navigation: [unclosed\n")

        result = try_load_settings(path)
        assert isinstance(result.error, ConfigParseError)

    def test_empty_document(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")

        result = try_load_settings(path)
        assert isinstance(result.error, ConfigParseError)
        assert "empty" in str(result.error)

    def test_document_must_be_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("- navigation\n- categories\n")

        result = try_load_settings(path)
        assert isinstance(result.error, ConfigParseError)
        assert "list" in str(result.error)

    def test_wrong_type_reports_field(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("navigation:\n  timeout_seconds: abc\n")

        result = try_load_settings(path)
        assert isinstance(result.error, ConfigParseError)
        locations = [e["loc"] for e in result.error.details["errors"]]
        assert ("navigation", "timeout_seconds") in locations

    def test_unknown_section_rejected(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("navigaton:\n  base_url: https://example.com\n")

        result = try_load_settings(path)
        assert isinstance(result.error, ConfigParseError)


class TestDuplicateKeys:
    """Duplicate keys are parse errors, never silent overwrites."""

    def test_yaml_duplicate_key(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "categories:\n"
            "  books: a\n"
            "  books: b\n"
        )

        result = try_load_settings(path)
        assert isinstance(result.error, ConfigParseError)
        assert "duplicate key" in str(result.error)

    def test_json_duplicate_key(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text('{"categories": {"books": "a", "books": "b"}}')

        result = try_load_settings(path)
        assert isinstance(result.error, ConfigParseError)

    def test_category_names_trimmed(self, settings_file):
        path = settings_file(categories={"  music  ": "m"})
        settings = load_settings(path)
        assert "music" in settings.categories

    def test_categories_duplicate_after_trimming(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "categories:\n"
            "  'books': a\n"
            "  ' books ': b\n"
        )

        result = try_load_settings(path)
        assert isinstance(result.error, ConfigParseError)


class TestEnvOverrides:
    """RUNNER_* variables win over the file."""

    def test_headless_override(self, settings_file, monkeypatch):
        monkeypatch.setenv("RUNNER_HEADLESS", "false")
        assert load_settings(settings_file()).navigation.headless is False

    def test_log_level_override(self, settings_file, monkeypatch):
        monkeypatch.setenv("RUNNER_LOG_LEVEL", "warning")
        assert load_settings(settings_file()).logging.minimum_level == "warning"

    def test_db_password_override(self, settings_file, monkeypatch):
        monkeypatch.setenv("RUNNER_DB_PASSWORD", "s3cret")
        assert load_settings(settings_file()).database.password == "s3cret"

    def test_override_creates_missing_section(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text("categories:\n  a: '1'\n")
        monkeypatch.setenv("RUNNER_HEADLESS", "1")

        assert load_settings(path).navigation.headless is True


# ─── Validation ──────────────────────────────────────────────────────


class TestValidateSettings:
    """Tests for required-value validation."""

    def test_valid_settings_pass(self, settings):
        assert validate_settings(settings) is settings
        assert collect_validation_errors(settings) == []

    @pytest.mark.parametrize("section,values,message", [
        ("navigation", {"base_url": "  "}, "navigation.base_url must not be empty"),
        ("navigation", {"timeout_seconds": 0}, "navigation.timeout_seconds must be greater than zero"),
        ("categories", {"value": {}}, "categories must contain at least one entry"),
        ("database", {"name": ""}, "database.name must not be empty"),
        ("database", {"user": ""}, "database.user must not be empty"),
    ])
    def test_reports_exactly_the_missing_field(self, settings, section, values, message):
        broken = _replace(settings, section, **values)

        with pytest.raises(SettingsValidationError) as exc_info:
            validate_settings(broken)
        assert exc_info.value.errors == [message]

    def test_reports_all_problems_together(self):
        errors = collect_validation_errors(Settings())
        assert len(errors) == 5

    def test_negative_timeout_invalid(self, settings):
        broken = _replace(settings, "navigation", timeout_seconds=-5)
        assert collect_validation_errors(broken) == [
            "navigation.timeout_seconds must be greater than zero"
        ]


class TestNavigationSettings:
    def test_timeout_ms(self):
        assert NavigationSettings(timeout_seconds=30).timeout_ms == 30000

    def test_viewport(self):
        nav = NavigationSettings(viewport_width=800, viewport_height=600)
        assert nav.get_viewport() == {"width": 800, "height": 600}


# ─── Connection descriptor ───────────────────────────────────────────


class TestConnectionDescriptor:
    """Tests for provider-specific connection strings."""

    def test_mysql(self, settings):
        assert connection_descriptor(settings) == (
            "Server=db;Port=3306;Database=shop;Uid=root;Pwd=x;Connection Timeout=30;"
        )

    def test_provider_case_and_whitespace_insensitive(self, settings):
        variant = _replace(settings, "database", provider="  MySQL ")
        assert connection_descriptor(variant) == connection_descriptor(settings)

    def test_postgresql(self, settings):
        pg = _replace(settings, "database", provider="postgresql", port=5432)
        descriptor = connection_descriptor(pg)
        assert descriptor.startswith("Host=db;Port=5432;Database=shop;")
        assert "Username=root;Password=x;" in descriptor

    def test_sqlserver(self, settings):
        mssql = _replace(settings, "database", provider="sqlserver", port=1433)
        assert connection_descriptor(mssql).startswith("Server=db,1433;Database=shop;")

    def test_unknown_provider(self, settings):
        unknown = _replace(settings, "database", provider="unknown")

        with pytest.raises(UnsupportedProviderError) as exc_info:
            connection_descriptor(unknown)
        assert exc_info.value.provider == "unknown"
        assert "unknown" in str(exc_info.value)
