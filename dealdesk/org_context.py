"""
Org Context Resolver

Works out which tenant (dealer org) the acting user belongs to. Access
policies on the tenant-profile table are enforced unevenly across
environments: a lookup by the user's id may be denied where a lookup by
verified email is allowed. The resolver therefore:

1. Looks up the profile by principal id
2. On an access denial or an empty result, looks up by email, newest first
3. Failing both, logs a warning and returns a context with org_id=None

resolve() never raises. What a null org means for scoping is the caller's
decision.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from dealdesk.config import DealDeskConfig
from dealdesk.exceptions import DealDeskError
from dealdesk.logging import LogCategory, StructuredLogger
from dealdesk.remote.client import eq
from dealdesk.remote.errors import is_access_denied
from dealdesk.services import get_services
from dealdesk.telemetry import TelemetryCounters, TelemetryKey

if TYPE_CHECKING:
    from dealdesk.remote.client import RestClient

logger = logging.getLogger(__name__)

__all__ = ["OrgContext", "OrgContextResolver", "Principal", "is_access_denied"]


@dataclass(frozen=True)
class Principal:
    """The authenticated identity making a request."""

    id: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class OrgContext:
    """Tenant scope for a single call. Computed per call, never cached."""

    org_id: str | None = None
    user_id: str | None = None
    user_email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"org_id": self.org_id, "user_id": self.user_id, "user_email": self.user_email}


class OrgContextResolver:
    """
    Resolves a Principal to an OrgContext.

    Args:
        client: REST client used for profile lookups
        profile_table: Tenant-profile table name
        org_column: Column holding the tenant id
        slog: Structured logger (defaults to the process-wide one)
        telemetry: Telemetry counters (defaults to the process-wide ones)
    """

    def __init__(
        self,
        client: "RestClient",
        profile_table: str = "user_profiles",
        org_column: str = "dealer_id",
        slog: StructuredLogger | None = None,
        telemetry: TelemetryCounters | None = None,
    ):
        self.client = client
        self.profile_table = profile_table
        self.org_column = org_column
        self._slog = slog
        self._telemetry = telemetry

    @classmethod
    def from_config(
        cls,
        client: "RestClient",
        config: DealDeskConfig,
        slog: StructuredLogger | None = None,
        telemetry: TelemetryCounters | None = None,
    ) -> "OrgContextResolver":
        """Resolver reading the profile table and org column named in config."""
        return cls(
            client,
            profile_table=config.profile_table,
            org_column=config.org_column,
            slog=slog,
            telemetry=telemetry,
        )

    @property
    def slog(self) -> StructuredLogger:
        return self._slog or get_services().logger

    @property
    def telemetry(self) -> TelemetryCounters:
        return self._telemetry or get_services().telemetry

    async def resolve(self, principal: Principal | None, label: str = "") -> OrgContext:
        """Resolve the tenant for a principal. Never raises."""
        if principal is None or not (principal.id or principal.email):
            logger.debug(f"No principal for org context {label}".strip())
            return OrgContext()

        user_id = principal.id
        email = principal.email

        if user_id:
            try:
                org_id = await self._lookup_by_id(user_id)
            except DealDeskError as e:
                if not is_access_denied(e):
                    self.slog.warn(
                        LogCategory.DATABASE_ERROR,
                        "Org lookup by id failed; continuing without org",
                        label=label,
                        error=str(e),
                    )
                    return OrgContext(None, user_id, email)
                self.slog.warn(
                    LogCategory.AUTHENTICATION,
                    "Org lookup by id denied by access policy; trying email",
                    label=label,
                    error=str(e),
                )
                self.telemetry.increment(TelemetryKey.ORG_CONTEXT_FALLBACK)
            else:
                if org_id:
                    return OrgContext(org_id, user_id, email)
                logger.debug(f"No profile row for user {user_id}; trying email")

        org_id = await self._lookup_by_email_safely(email, label)
        if org_id:
            return OrgContext(org_id, user_id, email)

        self.slog.warn(
            LogCategory.AUTHENTICATION,
            "Unable to resolve org for principal; returning null org",
            label=label,
            user_id=user_id,
        )
        return OrgContext(None, user_id, email)

    async def _lookup_by_id(self, user_id: str) -> str | None:
        rows = await self.client.select(
            self.profile_table,
            f"id, {self.org_column}",
            filters=[eq("id", user_id)],
            limit=1,
        )
        return self._first_org(rows)

    async def _lookup_by_email_safely(self, email: str | None, label: str) -> str | None:
        if not email:
            return None
        try:
            rows = await self.client.select(
                self.profile_table,
                f"id, {self.org_column}",
                filters=[eq("email", email)],
                order="updated_at",
                descending=True,
                limit=1,
            )
        except DealDeskError as e:
            logger.debug(f"Org lookup by email failed {label}: {e}".strip())
            return None
        return self._first_org(rows)

    def _first_org(self, rows: list[dict[str, Any]]) -> str | None:
        for row in rows or []:
            org_id = row.get(self.org_column)
            if org_id:
                return str(org_id)
        return None
