"""
Job Parts Service

The single reader and writer of the `job_parts` (line item) table.

Reads project three optional features that drift independently of each
other: the vendor_id column, the per-line scheduling time columns and the
embedded vendor relationship.

Writes replace a job's rows wholesale: delete, then upsert the batch on its
logical key (job, product, vendor, times). The vendor_id column and the
scheduling time columns are only written while their capabilities are not
degraded. A missing-column error naming one of them degrades it and gets
exactly one retry without it; everything else goes through the permission
remapper.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from dealdesk.capabilities import Capability
from dealdesk.exceptions import RemoteStoreError, ValidationError
from dealdesk.orchestrator.line_items import (
    SCHEDULING_TIME_FIELDS,
    VENDOR_ID_FIELD,
    LineItemRow,
    build_line_item_rows,
    conflict_columns,
)
from dealdesk.orchestrator.permissions import raise_remapped
from dealdesk.orchestrator.reads import (
    COLUMN,
    RELATIONSHIP,
    OptionalFeature,
    Projection,
    ResilientReader,
)
from dealdesk.remote.client import eq, in_
from dealdesk.schema import SchemaErrorCode, classify_schema_error, error_message
from dealdesk.services import ResilienceServices, get_services
from dealdesk.telemetry import TelemetryKey

if TYPE_CHECKING:
    from dealdesk.remote.client import RestClient

logger = logging.getLogger(__name__)

JOB_PARTS_TABLE = "job_parts"

VENDOR_ID_FEATURE = OptionalFeature(
    capability=Capability.JOB_PARTS_VENDOR_ID,
    telemetry_key=TelemetryKey.VENDOR_ID_FALLBACK,
    select=VENDOR_ID_FIELD,
    kind=COLUMN,
    fields=(VENDOR_ID_FIELD,),
    markers=(VENDOR_ID_FIELD,),
)

SCHEDULED_TIMES_FEATURE = OptionalFeature(
    capability=Capability.JOB_PARTS_SCHEDULED_TIMES,
    telemetry_key=TelemetryKey.SCHEDULED_TIMES_FALLBACK,
    select="scheduled_start_time, scheduled_end_time",
    kind=COLUMN,
    fields=SCHEDULING_TIME_FIELDS,
    markers=SCHEDULING_TIME_FIELDS,
)

VENDOR_REL_FEATURE = OptionalFeature(
    capability=Capability.JOB_PARTS_VENDOR_REL,
    telemetry_key=TelemetryKey.VENDOR_REL_FALLBACK,
    select="vendor:vendors(id, name)",
    kind=RELATIONSHIP,
    fields=("vendor",),
    markers=("vendors",),
)

JOB_PARTS_PROJECTION = Projection(
    table=JOB_PARTS_TABLE,
    base=(
        "id, job_id, product_id, unit_price, quantity_used, promised_date, "
        "requires_scheduling, no_schedule_reason, is_off_site"
    ),
    features=(VENDOR_ID_FEATURE, SCHEDULED_TIMES_FEATURE, VENDOR_REL_FEATURE),
)


def dropped_write_column(
    error: Any,
    include_times: bool,
    include_vendor: bool,
) -> OptionalFeature | None:
    """The written optional column a missing-column error names, if any."""
    if classify_schema_error(error) is not SchemaErrorCode.MISSING_COLUMN:
        return None
    message = error_message(error)
    if include_times and SCHEDULED_TIMES_FEATURE.named_by(message):
        return SCHEDULED_TIMES_FEATURE
    if include_vendor and VENDOR_ID_FEATURE.named_by(message):
        return VENDOR_ID_FEATURE
    return None


class JobPartsService:
    """
    Reads and writes line items for jobs.

    Args:
        client: REST client
        services: Capability/telemetry/log services (defaults to process-wide)
    """

    def __init__(self, client: "RestClient", services: ResilienceServices | None = None):
        self.client = client
        self._services = services
        self.reader = ResilientReader(client, services)

    @property
    def services(self) -> ResilienceServices:
        return self._services or get_services()

    async def list_job_parts(self, job_ids: Sequence[str]) -> list[dict[str, Any]]:
        """Line items for the given jobs; degraded features come back as None."""
        ids = [job_id for job_id in job_ids if job_id]
        if not ids:
            return []
        return await self.reader.select(
            JOB_PARTS_PROJECTION,
            filters=[in_("job_id", ids)],
            label="list_job_parts",
        )

    async def replace_line_items(
        self,
        job_id: str,
        line_items: Iterable[Mapping[str, Any] | None] | None,
    ) -> list[dict[str, Any]]:
        """
        Replace every line item of a job.

        Args:
            job_id: Owning job
            line_items: Form line items (snake_case or camelCase)

        Returns:
            Written rows as returned by the store

        Raises:
            ValidationError: If job_id is missing (before any network call)
            PermissionRemediationError: If an identity-table policy blocks the write
            RemoteStoreError: Any other store failure
        """
        if not job_id:
            raise ValidationError("job_id is required to replace line items")

        items = list(line_items or ())
        caps = self.services.capabilities
        include_times = caps.is_enabled(Capability.JOB_PARTS_SCHEDULED_TIMES)
        include_vendor = caps.is_enabled(Capability.JOB_PARTS_VENDOR_ID)
        rows = build_line_item_rows(
            job_id, items, include_times=include_times, include_vendor=include_vendor
        )

        try:
            await self.client.delete(JOB_PARTS_TABLE, filters=[eq("job_id", job_id)])
        except RemoteStoreError as e:
            raise_remapped(e)

        if not rows:
            logger.debug(f"Job {job_id}: no line items to write")
            return []

        try:
            written = await self._upsert(rows, include_times, include_vendor)
        except RemoteStoreError as e:
            dropped = dropped_write_column(e, include_times, include_vendor)
            if dropped is None:
                raise_remapped(e)
            self._record_write_fallback(dropped, job_id, e)
            if dropped is SCHEDULED_TIMES_FEATURE:
                include_times = False
            else:
                include_vendor = False
            rows = build_line_item_rows(
                job_id, items, include_times=include_times, include_vendor=include_vendor
            )
            # Retry failures propagate unmodified
            written = await self._upsert(rows, include_times, include_vendor)

        if include_times:
            caps.set(Capability.JOB_PARTS_SCHEDULED_TIMES, True)
        if include_vendor:
            caps.set(Capability.JOB_PARTS_VENDOR_ID, True)
        return written

    async def _upsert(
        self,
        rows: list[LineItemRow],
        include_times: bool,
        include_vendor: bool,
    ) -> list[dict[str, Any]]:
        payload = [
            row.to_dict(include_times=include_times, include_vendor=include_vendor) for row in rows
        ]
        return await self.client.upsert(
            JOB_PARTS_TABLE,
            payload,
            on_conflict=conflict_columns(include_times, include_vendor),
        )

    def _record_write_fallback(
        self,
        feature: OptionalFeature,
        job_id: str,
        error: RemoteStoreError,
    ) -> None:
        services = self.services
        services.capabilities.set(feature.capability, False)
        services.telemetry.increment(feature.telemetry_key)
        services.logger.log_capability_fallback(
            feature.capability,
            SchemaErrorCode.MISSING_COLUMN.value,
            table=JOB_PARTS_TABLE,
            job_id=job_id,
            error=error_message(error),
        )
