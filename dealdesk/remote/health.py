"""
Capability Health Probes

Issues one cheap `limit=1` query per optional schema feature and records
the outcome in the capability store. Used by the diagnostics CLI and by
applications that want to warm the flags before the first real query.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from dealdesk.capabilities import Capability, CapabilityStore
from dealdesk.exceptions import RemoteStoreError
from dealdesk.schema import SchemaErrorCode, classify_schema_error

if TYPE_CHECKING:
    from dealdesk.remote.client import RestClient

logger = logging.getLogger(__name__)

RELOAD_HINT = "If recently migrated, reload the schema cache: NOTIFY pgrst, 'reload schema'"


@dataclass(frozen=True)
class CapabilityProbe:
    """A single schema feature check."""

    name: str  # Check name shown in reports
    capability: str
    table: str
    columns: str


PROBES: tuple[CapabilityProbe, ...] = (
    CapabilityProbe(
        "job_parts_scheduled_times",
        Capability.JOB_PARTS_SCHEDULED_TIMES,
        "job_parts",
        "id, scheduled_start_time, scheduled_end_time",
    ),
    CapabilityProbe(
        "job_parts_vendor_id",
        Capability.JOB_PARTS_VENDOR_ID,
        "job_parts",
        "id, vendor_id",
    ),
    CapabilityProbe(
        "job_parts_vendor_relationship",
        Capability.JOB_PARTS_VENDOR_REL,
        "job_parts",
        "id, vendor:vendors(id, name)",
    ),
    CapabilityProbe(
        "jobs_vendor_relationship",
        Capability.JOBS_VENDOR_REL,
        "jobs",
        "id, vendor:vendors(id, name)",
    ),
    CapabilityProbe(
        "user_profiles_full_name",
        Capability.USER_PROFILES_NAME,
        "user_profiles",
        "id, full_name",
    ),
)


@dataclass
class ProbeCheck:
    """Result of one probe."""

    name: str
    capability: str
    status: str  # "ok" or "unavailable"
    error: str | None = None
    classification: str | None = None
    hint: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass
class ProbeReport:
    """Result of a full probe run."""

    checks: list[ProbeCheck] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def capabilities(self) -> dict[str, bool]:
        return {check.capability: check.ok for check in self.checks}

    @property
    def healthy(self) -> bool:
        return all(check.ok for check in self.checks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "capabilities": self.capabilities,
            "checks": [
                {k: v for k, v in vars(check).items() if v is not None} for check in self.checks
            ],
        }


async def probe_capabilities(
    client: "RestClient",
    capabilities: CapabilityStore,
    probes: tuple[CapabilityProbe, ...] = PROBES,
) -> ProbeReport:
    """
    Run every probe and update capability flags.

    Drift errors mark the capability degraded; any other failure (network,
    access denial) is reported but leaves the flag untouched.
    """
    report = ProbeReport()

    for probe in probes:
        try:
            await client.select(probe.table, probe.columns, limit=1)
        except RemoteStoreError as e:
            code = classify_schema_error(e)
            drift = code in (
                SchemaErrorCode.MISSING_COLUMN,
                SchemaErrorCode.MISSING_FK,
                SchemaErrorCode.STALE_CACHE,
            )
            if code in (SchemaErrorCode.MISSING_COLUMN, SchemaErrorCode.MISSING_FK):
                capabilities.set(probe.capability, False)
            report.checks.append(
                ProbeCheck(
                    name=probe.name,
                    capability=probe.capability,
                    status="unavailable",
                    error=e.message,
                    classification=code.value,
                    hint=RELOAD_HINT if drift else None,
                )
            )
            logger.info(f"Probe {probe.name} unavailable ({code.value}): {e.message}")
            continue

        capabilities.set(probe.capability, True)
        report.checks.append(ProbeCheck(name=probe.name, capability=probe.capability, status="ok"))

    return report
