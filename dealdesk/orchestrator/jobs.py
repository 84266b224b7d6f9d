"""
Job Service

Tenant-scoped reads and writes of service jobs. Every call resolves the
acting principal's org first; reads are filtered by it and writes are
stamped with it. Line items go through JobPartsService so that the
scheduling-time fallback and permission remapping apply to them as well.
Read jobs carry the creator's display name from ProfileService.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from dealdesk.capabilities import Capability
from dealdesk.config import DealDeskConfig
from dealdesk.exceptions import RemoteStoreError, ValidationError
from dealdesk.logging import LogCategory
from dealdesk.orchestrator.job_parts import JobPartsService
from dealdesk.orchestrator.permissions import raise_remapped
from dealdesk.orchestrator.profiles import ProfileService
from dealdesk.orchestrator.reads import (
    RELATIONSHIP,
    OptionalFeature,
    Projection,
    ResilientReader,
)
from dealdesk.orchestrator.vendors import aggregate_vendor
from dealdesk.org_context import OrgContext, OrgContextResolver, Principal
from dealdesk.remote.client import eq
from dealdesk.services import ResilienceServices, get_services
from dealdesk.telemetry import TelemetryKey

if TYPE_CHECKING:
    from dealdesk.remote.client import Filter, RestClient

logger = logging.getLogger(__name__)

JOBS_TABLE = "jobs"
JOB_ORG_COLUMN = "org_id"

JOB_VENDOR_FEATURE = OptionalFeature(
    capability=Capability.JOBS_VENDOR_REL,
    telemetry_key=TelemetryKey.VENDOR_FALLBACK,
    select="vendor:vendors(id, name)",
    kind=RELATIONSHIP,
    fields=("vendor",),
    markers=("vendors",),
)

JOBS_PROJECTION = Projection(
    table=JOBS_TABLE,
    base=(
        "id, job_number, title, description, status, vendor_id, org_id, "
        "created_by, created_at, updated_at"
    ),
    features=(JOB_VENDOR_FEATURE,),
)


class JobService:
    """
    Org-scoped access to service jobs and their line items.

    Args:
        client: REST client
        resolver: Org context resolver (built from the client if omitted)
        job_parts: Line item service (built from the client if omitted)
        services: Capability/telemetry/log services (defaults to process-wide)
        profiles: Display-name lookups (built from the client if omitted)
    """

    def __init__(
        self,
        client: "RestClient",
        resolver: OrgContextResolver | None = None,
        job_parts: JobPartsService | None = None,
        services: ResilienceServices | None = None,
        profiles: ProfileService | None = None,
    ):
        self.client = client
        self._services = services
        self.resolver = resolver or OrgContextResolver(
            client,
            slog=services.logger if services else None,
            telemetry=services.telemetry if services else None,
        )
        self.job_parts = job_parts or JobPartsService(client, services)
        self.profiles = profiles or ProfileService(client, services)
        self.reader = ResilientReader(client, services)

    @classmethod
    def from_config(
        cls,
        client: "RestClient",
        config: DealDeskConfig,
        services: ResilienceServices | None = None,
    ) -> "JobService":
        """Job service whose profile lookups use the configured table and org column."""
        resolver = OrgContextResolver.from_config(
            client,
            config,
            slog=services.logger if services else None,
            telemetry=services.telemetry if services else None,
        )
        profiles = ProfileService(client, services, profile_table=config.profile_table)
        return cls(client, resolver=resolver, services=services, profiles=profiles)

    @property
    def services(self) -> ResilienceServices:
        return self._services or get_services()

    async def list_jobs(
        self,
        principal: Principal | None,
        status: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Jobs visible to the principal's org, newest first.

        Each job carries `job_parts`, a derived `vendor_name` and the
        creator's `created_by_name`. Without a resolvable org nothing is read.
        """
        ctx = await self.resolver.resolve(principal, label="list_jobs")
        if not ctx.org_id:
            self._warn_unscoped("list_jobs", ctx)
            return []

        filters: list["Filter"] = [eq(JOB_ORG_COLUMN, ctx.org_id)]
        if status:
            filters.append(eq("status", status))

        jobs = await self.reader.select(
            JOBS_PROJECTION,
            filters=filters,
            order="created_at",
            descending=True,
            limit=limit,
            label="list_jobs",
        )
        return await self._attach_line_items(jobs)

    async def get_job(self, job_id: str, principal: Principal | None) -> dict[str, Any] | None:
        """A single job within the principal's org, or None."""
        if not job_id:
            raise ValidationError("job_id is required")

        ctx = await self.resolver.resolve(principal, label="get_job")
        if not ctx.org_id:
            self._warn_unscoped("get_job", ctx)
            return None

        jobs = await self.reader.select(
            JOBS_PROJECTION,
            filters=[eq("id", job_id), eq(JOB_ORG_COLUMN, ctx.org_id)],
            limit=1,
            label="get_job",
        )
        if not jobs:
            return None
        return (await self._attach_line_items(jobs))[0]

    async def create_job(
        self,
        values: Mapping[str, Any],
        line_items: Iterable[Mapping[str, Any] | None] | None,
        principal: Principal | None,
    ) -> dict[str, Any]:
        """
        Insert a job stamped with the caller's org and user, then its line items.

        Raises:
            PermissionRemediationError: If an identity-table policy blocks the write
            RemoteStoreError: Any other store failure
        """
        ctx = await self.resolver.resolve(principal, label="create_job")

        payload = dict(values)
        org_id = payload.get(JOB_ORG_COLUMN) or ctx.org_id
        if org_id:
            payload[JOB_ORG_COLUMN] = org_id
        else:
            self._warn_unscoped("create_job", ctx)
        if ctx.user_id:
            payload.setdefault("created_by", ctx.user_id)

        try:
            rows = await self.client.insert(JOBS_TABLE, [payload])
        except RemoteStoreError as e:
            raise_remapped(e)

        if not rows:
            raise RemoteStoreError("Job insert returned no row", details={"table": JOBS_TABLE})
        job = dict(rows[0])

        if line_items is not None:
            job["job_parts"] = await self.job_parts.replace_line_items(job["id"], line_items)

        logger.info(f"Created job {job.get('id')} for org {org_id}")
        return job

    async def update_job(
        self,
        job_id: str,
        values: Mapping[str, Any],
        principal: Principal | None,
        line_items: Iterable[Mapping[str, Any] | None] | None = None,
    ) -> dict[str, Any] | None:
        """
        Update a job within the caller's org and optionally replace its line items.

        Returns the updated row, or None when no visible row matched (line
        items are left untouched in that case).
        """
        if not job_id:
            raise ValidationError("job_id is required")

        ctx = await self.resolver.resolve(principal, label="update_job")

        filters: list["Filter"] = [eq("id", job_id)]
        if ctx.org_id:
            filters.append(eq(JOB_ORG_COLUMN, ctx.org_id))
        else:
            self._warn_unscoped("update_job", ctx)

        try:
            rows = await self.client.update(JOBS_TABLE, dict(values), filters=filters)
        except RemoteStoreError as e:
            raise_remapped(e)

        if not rows:
            logger.warning(f"Update of job {job_id} matched no visible row")
            return None
        job = dict(rows[0])

        if line_items is not None:
            job["job_parts"] = await self.job_parts.replace_line_items(job_id, line_items)
        return job

    async def _attach_line_items(self, jobs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        parts = await self.job_parts.list_job_parts([job["id"] for job in jobs if job.get("id")])

        by_job: dict[str, list[dict[str, Any]]] = {}
        for part in parts:
            by_job.setdefault(part.get("job_id"), []).append(part)

        for job in jobs:
            job_parts = by_job.get(job.get("id"), [])
            vendor = job.get("vendor")
            job_vendor_name = vendor.get("name") if isinstance(vendor, Mapping) else None
            job["job_parts"] = job_parts
            job["vendor_name"] = aggregate_vendor(job_parts, job_vendor_name)

        names = await self.profiles.display_names(job.get("created_by") for job in jobs)
        for job in jobs:
            job["created_by_name"] = names.get(str(job.get("created_by")))
        return jobs

    def _warn_unscoped(self, operation: str, ctx: OrgContext) -> None:
        self.services.logger.warn(
            LogCategory.AUTHENTICATION,
            f"{operation}: no org resolved for caller",
            user_id=ctx.user_id,
        )
