"""
Log Entry Data Structures for DealDesk.

Defines the structured entry recorded for capability fallbacks, schema
errors and other data-layer anomalies.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class LogLevel(str, Enum):
    """Structured log severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def is_severe(self) -> bool:
        """Severe entries carry a stack trace and go to the durable overflow."""
        return self in (LogLevel.ERROR, LogLevel.CRITICAL)


class LogCategory(str, Enum):
    """Log categories for filtering."""

    CAPABILITY_FALLBACK = "capability_fallback"
    SCHEMA_ERROR = "schema_error"
    DATABASE_ERROR = "database_error"
    AUTHENTICATION = "authentication"
    PERFORMANCE = "performance"
    USER_ACTION = "user_action"


@dataclass(frozen=True)
class LogEntry:
    """A single structured log entry. Immutable once recorded."""

    timestamp: str  # ISO 8601, UTC
    level: str
    category: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    stack_trace: str | None = None

    @property
    def created_at(self) -> datetime:
        return parse_timestamp(self.timestamp)

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, omitting an absent stack trace."""
        data = asdict(self)
        if data["stack_trace"] is None:
            del data["stack_trace"]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def now_iso() -> str:
    """Get current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
