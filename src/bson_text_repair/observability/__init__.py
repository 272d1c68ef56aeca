"""Public observability primitives: structured run logs, correlation, and redaction."""

from bson_text_repair.observability.logging import (
    JsonLinesFormatter,
    LogSettings,
    RunLog,
    active_run_log,
    correlation_scope,
    get_correlation_context,
    redact_text,
    redact_value,
    start_run_log,
    stop_run_log,
)

__all__ = [
    "JsonLinesFormatter",
    "LogSettings",
    "RunLog",
    "active_run_log",
    "correlation_scope",
    "get_correlation_context",
    "redact_text",
    "redact_value",
    "start_run_log",
    "stop_run_log",
]
