"""Remote REST store access."""

from dealdesk.remote.client import RestClient, eq, in_, is_null
from dealdesk.remote.errors import build_store_error, is_access_denied
from dealdesk.remote.health import ProbeCheck, ProbeReport, probe_capabilities

__all__ = [
    "RestClient",
    "eq",
    "in_",
    "is_null",
    "build_store_error",
    "is_access_denied",
    "ProbeCheck",
    "ProbeReport",
    "probe_capabilities",
]
