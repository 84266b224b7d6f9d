"""
DealDesk - capability-aware resilient data access layer.

Mediates tenant-scoped reads and writes of service jobs against a remote
REST store whose schema cache can lag behind migrations, degrading
gracefully and telemetering every fallback.
"""

__version__ = "0.1.0"

from dealdesk.exceptions import (
    DealDeskError,
    ConfigError,
    ValidationError,
    RemoteStoreError,
    AccessDeniedError,
    PermissionRemediationError,
)

__all__ = [
    "__version__",
    "DealDeskError",
    "ConfigError",
    "ValidationError",
    "RemoteStoreError",
    "AccessDeniedError",
    "PermissionRemediationError",
]
