"""
DealDesk Logging System.

Structured, categorized logging for the data access layer:
- Capability fallbacks (degraded reads and writes)
- Schema drift errors
- Access-control denials during tenant resolution

Usage:
    from dealdesk.logging import LogCategory, LogLevel, StructuredLogger

    slog = StructuredLogger()
    slog.log(LogLevel.WARN, LogCategory.CAPABILITY_FALLBACK, "vendor embed dropped")
    slog.get_logs(category=LogCategory.CAPABILITY_FALLBACK)

The process-wide instance lives on dealdesk.services.get_services().logger.
"""

from .config import LogConfig, get_config, set_config
from .entries import LogCategory, LogEntry, LogLevel, now_iso, parse_timestamp
from .handlers import JSONLRotatingHandler, create_jsonl_logger
from .structured import CRITICAL_LOGS_KEY, StructuredLogger

__all__ = [
    # Logger
    "StructuredLogger",
    "CRITICAL_LOGS_KEY",
    # Log entries
    "LogEntry",
    "LogLevel",
    "LogCategory",
    # Utilities
    "now_iso",
    "parse_timestamp",
    "JSONLRotatingHandler",
    "create_jsonl_logger",
    # Config
    "LogConfig",
    "get_config",
    "set_config",
]
