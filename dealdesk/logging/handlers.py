"""
JSONL file mirror for structured log entries.

StructuredLogger attaches each entry's dict to the stdlib record as
`record.entry`; the formatter below writes that dict as one JSON line.
Records from anywhere else are wrapped so the file stays valid JSONL.
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

from dealdesk.logging.config import LogConfig


class EntryFormatter(logging.Formatter):
    """Renders a record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = getattr(record, "entry", None)
        if not isinstance(entry, dict):
            entry = {
                "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                "level": record.levelname.lower(),
                "category": record.name,
                "message": record.getMessage(),
                "context": {},
            }
        return json.dumps(entry, default=str)


class JSONLRotatingHandler(RotatingFileHandler):
    """Size-rotated JSONL file; creates its directory on first use."""

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ):
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        self.setFormatter(EntryFormatter())


def create_jsonl_logger(name: str, config: LogConfig) -> logging.Logger:
    """
    Point logger `name` at the JSONL mirror described by `config`.

    Existing handlers are replaced so repeated setup never duplicates lines,
    and propagation is switched off to keep entries out of console output.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(
        JSONLRotatingHandler(
            config.events_log_path,
            max_bytes=config.max_file_size_bytes,
            backup_count=config.backup_count,
        )
    )
    logger.propagate = False
    return logger
