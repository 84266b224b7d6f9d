"""
Remote store error mapping.

Turns a REST error body ({code, message, details, hint}) into the typed
exception hierarchy, and answers the one question every caller asks first:
was this an access-policy denial?
"""

import re
from typing import Any

from dealdesk.exceptions import (
    AccessDeniedError,
    MissingColumnError,
    MissingRelationshipError,
    RemoteStoreError,
    StaleCacheError,
)
from dealdesk.schema import (
    SchemaErrorCode,
    classify_schema_error,
    error_code,
    error_message,
    extract_error_details,
)

INSUFFICIENT_PRIVILEGE_CODE = "42501"
# PostgREST group 3: JWT / authentication failures
AUTH_CODE_PATTERN = re.compile(r"^pgrst3\d\d$", re.IGNORECASE)
DENIAL_PATTERNS = (
    re.compile(r"row[- ]level security"),
    re.compile(r"\brls\b"),
    re.compile(r"violates .*policy"),
    re.compile(r"permission denied"),
    re.compile(r"insufficient[_ ]privilege"),
)


def is_access_denied(error: Any) -> bool:
    """
    True when an error is an access-control denial rather than schema drift
    or a business constraint.

    Matches the insufficient-privilege code (42501), the PostgREST auth code
    family (PGRST3xx) and policy/permission wording in the message.
    """
    if error is None:
        return False
    if isinstance(error, AccessDeniedError):
        return True

    code = error_code(error)
    if code == INSUFFICIENT_PRIVILEGE_CODE or AUTH_CODE_PATTERN.match(code):
        return True

    msg = error_message(error).lower()
    return any(p.search(msg) for p in DENIAL_PATTERNS)


def build_store_error(
    payload: dict[str, Any] | None,
    status: int | None = None,
) -> RemoteStoreError:
    """
    Build the most specific exception for an error body.

    Drift classification wins over access denial so a missing column behind
    a policy still triggers the degraded path.
    """
    payload = payload or {}
    message = str(payload.get("message") or f"Remote store request failed ({status})")
    code = payload.get("code")
    code = str(code) if code is not None else None
    hint = payload.get("hint")
    details = {"store_details": payload["details"]} if payload.get("details") else None
    kwargs = {"code": code, "status": status, "hint": hint, "details": details}

    probe = {"message": message, "code": code}
    classification = classify_schema_error(probe)

    if classification is SchemaErrorCode.MISSING_FK:
        return MissingRelationshipError(message, **kwargs)
    if classification is SchemaErrorCode.MISSING_COLUMN:
        column = extract_error_details(message).get("column")
        return MissingColumnError(message, column=column, **kwargs)
    if classification is SchemaErrorCode.STALE_CACHE:
        return StaleCacheError(message, **kwargs)
    if is_access_denied(probe) or status == 403:
        return AccessDeniedError(message, **kwargs)
    return RemoteStoreError(message, **kwargs)
