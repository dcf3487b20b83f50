"""
Shared fixtures for the browser runner tests.

Every test gets a clean RUNNER_* environment, and settings built here point
logs and screenshots into the test's tmp_path.
"""

from __future__ import annotations

import copy
import itertools
from pathlib import Path
from typing import Any, Optional

import pytest
import yaml

from runner.config.schema import Settings
from runner.observability.logging_config import EventLogger

_logger_ids = itertools.count()

VALID_SETTINGS: dict[str, Any] = {
    "navigation": {
        "base_url": "https://example.com",
        "timeout_seconds": 30,
        "headless": True,
    },
    "scraping": {
        "request_interval_ms": 0,
        "max_retries": 2,
        "delay_after_error_ms": 0,
    },
    "database": {
        "provider": "mysql",
        "host": "db",
        "port": 3306,
        "name": "shop",
        "user": "root",
        "password": "x",
        "connection_timeout": 30,
    },
    "logging": {
        "minimum_level": "debug",
    },
    "categories": {
        "books": "https://example.com/books",
    },
}


def settings_document(tmp_path: Path, **sections: dict[str, Any]) -> dict[str, Any]:
    """VALID_SETTINGS with per-section overrides and tmp_path directories."""
    document = copy.deepcopy(VALID_SETTINGS)
    document["navigation"]["screenshot_dir"] = str(tmp_path / "screenshots")
    document["logging"]["directory"] = str(tmp_path / "logs")
    for section, values in sections.items():
        if isinstance(values, dict) and isinstance(document.get(section), dict):
            document[section].update(values)
        else:
            document[section] = values
    return document


def build_settings(tmp_path: Path, **sections: dict[str, Any]) -> Settings:
    return Settings(**settings_document(tmp_path, **sections))


def write_settings(path: Path, document: Optional[dict[str, Any]]) -> Path:
    path.write_text(yaml.safe_dump(document), encoding="utf-8")
    return path


# ─── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Remove RUNNER_* overrides so the host environment never leaks in."""
    for name in (
        "RUNNER_SETTINGS_PATH",
        "RUNNER_HEADLESS",
        "RUNNER_LOG_LEVEL",
        "RUNNER_DB_PASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return build_settings(tmp_path)


@pytest.fixture
def make_settings(tmp_path):
    """Factory: make_settings(navigation={...}, ...) -> Settings."""
    def _make(**sections: dict[str, Any]) -> Settings:
        return build_settings(tmp_path, **sections)
    return _make


@pytest.fixture
def settings_file(tmp_path):
    """Factory: settings_file(**sections) -> path of a YAML settings file."""
    def _write(name: str = "settings.yaml", **sections: dict[str, Any]) -> Path:
        return write_settings(tmp_path / name, settings_document(tmp_path, **sections))
    return _write


@pytest.fixture
def events():
    """An unconfigured EventLogger on a logger name unique to the test."""
    logger = EventLogger(f"runner.test{next(_logger_ids)}")
    yield logger
    logger.close()
