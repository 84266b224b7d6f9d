"""
Structured Logger

Leveled, categorized in-memory log for capability fallbacks and data-layer
anomalies:

- Ring buffer of the last `max_buffer_size` entries (oldest evicted first)
- error/critical entries capture a stack trace and are appended to a
  durable overflow (`logs_critical`, JSON array) that survives clear_logs()
- Every entry is forwarded to the stdlib logger "dealdesk.events"
"""

import json
import logging
import traceback
from collections import deque
from datetime import datetime
from typing import Any

from dealdesk.logging.config import LogConfig
from dealdesk.logging.entries import LogCategory, LogEntry, LogLevel, now_iso, parse_timestamp
from dealdesk.logging.handlers import create_jsonl_logger
from dealdesk.storage import KeyValueStorage, NullStorage

logger = logging.getLogger(__name__)

CRITICAL_LOGS_KEY = "logs_critical"
EVENTS_LOGGER = "dealdesk.events"

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


class StructuredLogger:
    """
    Bounded structured log with a durable overflow for severe entries.

    Usage:
        slog = StructuredLogger(durable=SqliteStorage())
        slog.log_capability_fallback("jobPartsVendorRel", "MISSING_FK", table="job_parts")
        slog.get_logs(level=LogLevel.WARN)
    """

    def __init__(
        self,
        durable: KeyValueStorage | None = None,
        config: LogConfig | None = None,
    ):
        self.config = config or LogConfig()
        self._durable = durable or NullStorage()
        self._buffer: deque[LogEntry] = deque(maxlen=self.config.max_buffer_size)

        if self.config.file_enabled:
            self._events = create_jsonl_logger(EVENTS_LOGGER, self.config)
        else:
            self._events = logging.getLogger(EVENTS_LOGGER)

    def log(
        self,
        level: LogLevel | str,
        category: LogCategory | str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> LogEntry:
        """Record an entry and return it."""
        level = LogLevel(level)
        category = category.value if isinstance(category, LogCategory) else str(category)

        stack_trace = None
        if level.is_severe:
            # Drop this frame so the trace ends at the caller
            stack_trace = "".join(traceback.format_stack()[:-1])

        entry = LogEntry(
            timestamp=now_iso(),
            level=level.value,
            category=category,
            message=message,
            context=dict(context or {}),
            stack_trace=stack_trace,
        )

        self._buffer.append(entry)

        self._events.log(
            _STDLIB_LEVELS[level],
            f"[{level.value.upper()}][{category}] {message}",
            extra={"entry": entry.to_dict()},
        )

        if level.is_severe:
            self._append_critical(entry)

        return entry

    def debug(self, category: LogCategory | str, message: str, **context: Any) -> LogEntry:
        return self.log(LogLevel.DEBUG, category, message, context)

    def info(self, category: LogCategory | str, message: str, **context: Any) -> LogEntry:
        return self.log(LogLevel.INFO, category, message, context)

    def warn(self, category: LogCategory | str, message: str, **context: Any) -> LogEntry:
        return self.log(LogLevel.WARN, category, message, context)

    def error(self, category: LogCategory | str, message: str, **context: Any) -> LogEntry:
        return self.log(LogLevel.ERROR, category, message, context)

    def critical(self, category: LogCategory | str, message: str, **context: Any) -> LogEntry:
        return self.log(LogLevel.CRITICAL, category, message, context)

    def log_capability_fallback(self, capability: str, reason: str, **context: Any) -> LogEntry:
        """Warn that a capability fell back to a degraded path."""
        return self.log(
            LogLevel.WARN,
            LogCategory.CAPABILITY_FALLBACK,
            f"Capability fallback: {capability}",
            {"capability": capability, "reason": reason, **context},
        )

    def log_schema_error(self, error_type: str, message: str, **context: Any) -> LogEntry:
        return self.log(
            LogLevel.ERROR,
            LogCategory.SCHEMA_ERROR,
            message,
            {"error_type": error_type, **context},
        )

    def _append_critical(self, entry: LogEntry) -> None:
        if not self._durable.available:
            return
        existing = self.get_critical_logs()
        existing.append(entry.to_dict())
        existing = existing[-self.config.max_critical_size:]
        self._durable.set(CRITICAL_LOGS_KEY, json.dumps(existing, default=str))

    def get_logs(
        self,
        level: LogLevel | str | None = None,
        category: LogCategory | str | None = None,
        since: datetime | str | None = None,
    ) -> list[LogEntry]:
        """Buffered entries, oldest first, filtered by level, category and since (inclusive)."""
        entries = list(self._buffer)

        if level:
            level_value = LogLevel(level).value
            entries = [e for e in entries if e.level == level_value]

        if category:
            category_value = category.value if isinstance(category, LogCategory) else category
            entries = [e for e in entries if e.category == category_value]

        if since:
            since_dt = parse_timestamp(since)
            entries = [e for e in entries if e.created_at >= since_dt]

        return entries

    def get_critical_logs(self) -> list[dict[str, Any]]:
        """Entries from the durable overflow, oldest first."""
        raw = self._durable.get(CRITICAL_LOGS_KEY)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable critical log overflow")
            return []
        return data if isinstance(data, list) else []

    def clear_logs(self) -> None:
        """Empty the ring buffer. The durable overflow is left alone."""
        self._buffer.clear()

    def clear_critical_logs(self) -> None:
        self._durable.remove(CRITICAL_LOGS_KEY)

    def export_logs(self, include_critical: bool = True) -> str:
        data: dict[str, Any] = {
            "timestamp": now_iso(),
            "buffer_logs": [e.to_dict() for e in self._buffer],
        }
        if include_critical:
            data["critical_logs"] = self.get_critical_logs()
        return json.dumps(data, indent=2, default=str)

    def get_log_stats(self) -> dict[str, Any]:
        by_level: dict[str, int] = {}
        by_category: dict[str, int] = {}
        for entry in self._buffer:
            by_level[entry.level] = by_level.get(entry.level, 0) + 1
            by_category[entry.category] = by_category.get(entry.category, 0) + 1

        return {
            "total": len(self._buffer),
            "by_level": by_level,
            "by_category": by_category,
            "critical_count": len(self.get_critical_logs()),
        }
