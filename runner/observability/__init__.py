"""
Observability module for the browser runner.

Provides the severity-routed EventLogger: one console sink plus a
success file (below WARNING) and a failure file (WARNING and above).
"""

from runner.observability.logging_config import (
    EventLogger,
    LevelBandFilter,
    parse_level,
    resolve_log_paths,
)

__all__ = ["EventLogger", "LevelBandFilter", "parse_level", "resolve_log_paths"]
