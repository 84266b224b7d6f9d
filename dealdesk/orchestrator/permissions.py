"""
Write-path permission error remapping.

A write that trips an access policy referencing the identity table
(auth.users) fails with a bare "permission denied for table users". That
message is useless to an operator, so it is replaced by one carrying the
remediation steps. Every other error passes through unchanged.
"""

import re
from typing import Any, NoReturn

from dealdesk.exceptions import PermissionRemediationError, RemoteStoreError
from dealdesk.schema import error_message

IDENTITY_TABLE_DENIAL = re.compile(r"permission denied for (table|relation) users\b", re.IGNORECASE)

REMEDIATION_DOCS = ("docs/MCP-NOTES.md", ".artifacts/mcp-introspect/INTROSPECTION.md")

REMEDIATION_MESSAGE = (
    "Failed to save: RLS prevented update on auth.users. "
    "Likely a policy references auth.users. "
    "Remediation: (1) reload the schema cache with NOTIFY pgrst, 'reload schema'; "
    "(2) update policy to reference public.user_profiles with tenant-scoped conditions "
    "instead of auth.users; "
    f"(3) see {REMEDIATION_DOCS[0]} and {REMEDIATION_DOCS[1]}."
)


def remap_permission_error(error: Any) -> BaseException:
    """
    Return the exception a write path should raise for `error`.

    Identity-table denials become PermissionRemediationError; other
    exceptions are returned as-is; non-exception inputs are wrapped.
    """
    if IDENTITY_TABLE_DENIAL.search(error_message(error)):
        original = error if isinstance(error, BaseException) else None
        return PermissionRemediationError(REMEDIATION_MESSAGE, original=original)

    if isinstance(error, BaseException):
        return error

    message = error_message(error) or "Unknown remote store error"
    code = error.get("code") if isinstance(error, dict) else None
    return RemoteStoreError(message, code=code)


def raise_remapped(error: BaseException) -> NoReturn:
    """Raise the remapped form of a write error, chaining the original."""
    remapped = remap_permission_error(error)
    if remapped is error:
        raise error
    raise remapped from error
