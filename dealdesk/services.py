"""
Process-wide resilience services.

Capability flags, telemetry counters and the structured log are shared by
every reader and writer in a session. They live on one explicit
ResilienceServices instance with a clear lifecycle instead of module globals:

    services = init_services(durable=SqliteStorage())   # once at startup
    services.capabilities.set("jobPartsVendorRel", False)
    services.reset_all()                                 # session reset / tests
"""

import logging
from dataclasses import dataclass, field

from dealdesk.capabilities import CapabilityStore
from dealdesk.logging import LogConfig, StructuredLogger, get_config
from dealdesk.storage import KeyValueStorage, MemoryStorage, NullStorage
from dealdesk.telemetry import TelemetryCounters

logger = logging.getLogger(__name__)


@dataclass
class ResilienceServices:
    """Session-scoped capability, telemetry and logging state."""

    session: KeyValueStorage = field(default_factory=MemoryStorage)
    durable: KeyValueStorage = field(default_factory=NullStorage)
    log_config: LogConfig | None = None

    def __post_init__(self) -> None:
        self.capabilities = CapabilityStore(self.session)
        self.telemetry = TelemetryCounters(self.session, self.durable)
        self.logger = StructuredLogger(self.durable, self.log_config or get_config())

    def reset_all(self) -> None:
        """Return to a fresh session: capabilities unknown, counters and buffer empty."""
        self.capabilities.reset_all()
        self.telemetry.reset_all()
        self.logger.clear_logs()
        logger.debug("Resilience services reset")


_services: ResilienceServices | None = None


def init_services(
    session: KeyValueStorage | None = None,
    durable: KeyValueStorage | None = None,
    log_config: LogConfig | None = None,
) -> ResilienceServices:
    """Create (or replace) the process-wide services."""
    global _services
    _services = ResilienceServices(
        session=session if session is not None else MemoryStorage(),
        durable=durable if durable is not None else NullStorage(),
        log_config=log_config,
    )
    return _services


def get_services() -> ResilienceServices:
    """Get the process-wide services, initializing in-memory defaults if needed."""
    global _services
    if _services is None:
        _services = ResilienceServices()
    return _services


def reset_services() -> None:
    """Drop the process-wide instance (useful for testing)."""
    global _services
    _services = None
