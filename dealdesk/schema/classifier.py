"""
Schema Error Classifier

Maps a remote store error to a schema drift code. Matching is done on
lowercased message substrings plus a few PostgREST/Postgres codes, so the
patterns below are coupled to that backend's wording. Treat them as a
versioned contract: a different backend gets a different pattern set.
"""

import re
from enum import Enum
from typing import Any

# Pattern contract version, bump when any pattern below changes
CLASSIFIER_PATTERNS_VERSION = 2

RELATIONSHIP_PHRASE = "a relationship"
SCHEMA_CACHE_PHRASES = ("schema cache", "cached schema")

MISSING_COLUMN_PATTERNS = (
    re.compile(r"column\s+.*does not exist"),
    re.compile(r"could not find the\s+.*\s+column"),
    re.compile(r"pgrst\d*.*column"),
)

MISSING_FK_CODES = {"pgrst200"}
MISSING_COLUMN_CODES = {"pgrst204", "42703"}

_COLUMN_NAME_PATTERNS = (
    re.compile(r"column\s+[\"']?([\w.]+)[\"']?\s+does not exist", re.IGNORECASE),
    re.compile(r"could not find the\s+[\"']([\w]+)[\"']\s+column", re.IGNORECASE),
)
_RELATIONSHIP_PATTERN = re.compile(
    r"relationship between\s+[\"'](\w+)[\"']\s+and\s+[\"'](\w+)[\"']", re.IGNORECASE
)


class SchemaErrorCode(str, Enum):
    """Schema drift classification codes."""

    MISSING_COLUMN = "MISSING_COLUMN"
    MISSING_FK = "MISSING_FK"
    STALE_CACHE = "STALE_CACHE"
    GENERIC = "GENERIC"


def error_message(error: Any) -> str:
    """Best-effort message text for an exception, mapping or string."""
    if error is None:
        return ""
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        return str(error.get("message") or "")
    message = getattr(error, "message", None)
    if isinstance(message, str):
        return message
    try:
        return str(error)
    except Exception:
        return ""


def error_code(error: Any) -> str:
    """Store error code (e.g. '42501', 'PGRST204') or empty string."""
    if error is None or isinstance(error, str):
        return ""
    if isinstance(error, dict):
        code = error.get("code")
    else:
        code = getattr(error, "code", None)
    return str(code) if code is not None else ""


def classify_schema_error(error: Any) -> SchemaErrorCode:
    """
    Classify an error by schema drift type.

    Rules, in priority order:
    1. MISSING_FK: "a relationship" could not be found, with a schema cache mention
    2. MISSING_COLUMN: column-not-found wording or a missing-field status code
    3. STALE_CACHE: schema cache mention without the relationship phrase
    4. GENERIC: everything else, including empty input

    Never raises.
    """
    try:
        msg = error_message(error).lower()
        code = error_code(error).lower()
    except Exception:
        return SchemaErrorCode.GENERIC

    mentions_cache = any(phrase in msg for phrase in SCHEMA_CACHE_PHRASES)

    if (RELATIONSHIP_PHRASE in msg and mentions_cache) or code in MISSING_FK_CODES:
        return SchemaErrorCode.MISSING_FK

    if code in MISSING_COLUMN_CODES or any(p.search(msg) for p in MISSING_COLUMN_PATTERNS):
        return SchemaErrorCode.MISSING_COLUMN

    if mentions_cache:
        return SchemaErrorCode.STALE_CACHE

    return SchemaErrorCode.GENERIC


def is_missing_column_error(error: Any) -> bool:
    return classify_schema_error(error) is SchemaErrorCode.MISSING_COLUMN


def is_missing_relationship_error(error: Any) -> bool:
    return classify_schema_error(error) is SchemaErrorCode.MISSING_FK


def is_stale_cache_error(error: Any) -> bool:
    return classify_schema_error(error) is SchemaErrorCode.STALE_CACHE


def is_schema_drift(code: SchemaErrorCode) -> bool:
    """True for the codes that mean an optional schema feature is unavailable."""
    return code in (SchemaErrorCode.MISSING_COLUMN, SchemaErrorCode.MISSING_FK)


def extract_error_details(error: Any) -> dict[str, str]:
    """
    Pull the column name or relationship tables out of a drift message.

    Returns:
        {"column": ...}, {"from_table": ..., "to_table": ...} or {}
    """
    msg = error_message(error)

    for pattern in _COLUMN_NAME_PATTERNS:
        match = pattern.search(msg)
        if match:
            # Postgres reports qualified names like job_parts.vendor_id
            return {"column": match.group(1).split(".")[-1]}

    match = _RELATIONSHIP_PATTERN.search(msg)
    if match:
        return {"from_table": match.group(1), "to_table": match.group(2)}

    return {}
