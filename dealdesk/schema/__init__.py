"""Schema drift detection."""

from dealdesk.schema.classifier import (
    SchemaErrorCode,
    classify_schema_error,
    error_code,
    error_message,
    extract_error_details,
    is_missing_column_error,
    is_missing_relationship_error,
    is_schema_drift,
    is_stale_cache_error,
)

__all__ = [
    "SchemaErrorCode",
    "classify_schema_error",
    "error_code",
    "error_message",
    "extract_error_details",
    "is_missing_column_error",
    "is_missing_relationship_error",
    "is_schema_drift",
    "is_stale_cache_error",
]
