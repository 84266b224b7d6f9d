"""
Resilient Reads

A read projects a set of base columns plus optional features: embedded
relationships or columns that recent migrations added and the remote schema
cache may not know about yet. Each optional feature is gated by a capability
flag and counted by a telemetry key.

Read protocol:
1. Features whose capability is degraded are left out up front
2. The enriched query is attempted; success confirms every included feature
3. A MISSING_COLUMN / MISSING_FK error degrades the features it names
   (flag false, telemetry +1, warn) and the query is retried once without
   them; success of the retry confirms the features still included
4. A failed retry with a drift classification yields an empty list;
   anything GENERIC propagates

STALE_CACHE, and drift that names no optional feature (a missing base column
for instance), get the same single retry without any optional feature, but
flags and counters are left alone: nothing says those features are missing.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from dealdesk.exceptions import RemoteStoreError
from dealdesk.schema import SchemaErrorCode, classify_schema_error, error_message
from dealdesk.services import ResilienceServices, get_services

if TYPE_CHECKING:
    from dealdesk.remote.client import Filter, RestClient

logger = logging.getLogger(__name__)

Row = dict[str, Any]

COLUMN = "column"
RELATIONSHIP = "relationship"


@dataclass(frozen=True)
class OptionalFeature:
    """A capability-gated part of a projection."""

    capability: str
    telemetry_key: str
    select: str  # select fragment, e.g. "vendor:vendors(id, name)"
    kind: str  # COLUMN or RELATIONSHIP
    fields: tuple[str, ...]  # row keys filled with None when omitted
    markers: tuple[str, ...]  # lowercase substrings naming this feature in errors

    def named_by(self, message: str) -> bool:
        msg = message.lower()
        return any(marker in msg for marker in self.markers)


@dataclass(frozen=True)
class Projection:
    """Base columns of a table plus its optional features."""

    table: str
    base: str
    features: tuple[OptionalFeature, ...] = ()

    def columns(self, features: Sequence[OptionalFeature]) -> str:
        return ", ".join([self.base, *(f.select for f in features)])


def _degradable(code: SchemaErrorCode) -> bool:
    return code in (
        SchemaErrorCode.MISSING_COLUMN,
        SchemaErrorCode.MISSING_FK,
        SchemaErrorCode.STALE_CACHE,
    )


def offending_features(
    features: Sequence[OptionalFeature],
    error: Any,
    code: SchemaErrorCode,
) -> list[OptionalFeature]:
    """
    Features a drift error names.

    Only features of the matching kind whose markers appear in the message
    count. STALE_CACHE never blames a feature.
    """
    if code not in (SchemaErrorCode.MISSING_COLUMN, SchemaErrorCode.MISSING_FK):
        return []

    kind = RELATIONSHIP if code is SchemaErrorCode.MISSING_FK else COLUMN
    message = error_message(error)
    return [f for f in features if f.kind == kind and f.named_by(message)]


class ResilientReader:
    """
    Runs projections against the remote store with one degraded retry.

    Args:
        client: REST client
        services: Capability/telemetry/log services (defaults to process-wide)
    """

    def __init__(self, client: "RestClient", services: ResilienceServices | None = None):
        self.client = client
        self._services = services

    @property
    def services(self) -> ResilienceServices:
        return self._services or get_services()

    async def select(
        self,
        projection: Projection,
        *,
        filters: Sequence["Filter"] = (),
        order: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        label: str = "",
    ) -> list[Row]:
        caps = self.services.capabilities
        label = label or projection.table

        included = [f for f in projection.features if caps.is_enabled(f.capability)]
        if len(included) < len(projection.features):
            skipped = [f.capability for f in projection.features if f not in included]
            logger.debug(f"{label}: skipping degraded features {skipped}")

        async def fetch(features: Sequence[OptionalFeature]) -> list[Row]:
            rows = await self.client.select(
                projection.table,
                projection.columns(features),
                filters=filters,
                order=order,
                descending=descending,
                limit=limit,
            )
            return _fill_omitted(rows, projection.features, features)

        try:
            rows = await fetch(included)
        except RemoteStoreError as e:
            code = classify_schema_error(e)
            if not _degradable(code):
                raise
            return await self._degraded_retry(projection, included, e, code, fetch, label)

        for feature in included:
            caps.set(feature.capability, True)
        return rows

    async def _degraded_retry(
        self,
        projection: Projection,
        included: list[OptionalFeature],
        error: RemoteStoreError,
        code: SchemaErrorCode,
        fetch: Callable[[Sequence[OptionalFeature]], Awaitable[list[Row]]],
        label: str,
    ) -> list[Row]:
        services = self.services
        offending = offending_features(included, error, code)

        if offending:
            for feature in offending:
                services.capabilities.set(feature.capability, False)
                services.telemetry.increment(feature.telemetry_key)
                services.logger.log_capability_fallback(
                    feature.capability,
                    code.value,
                    table=projection.table,
                    label=label,
                    error=error_message(error),
                )
            reduced = [f for f in included if f not in offending]
        elif included:
            services.logger.log_schema_error(
                code.value,
                f"{label}: drift not attributable to an optional feature; "
                "retrying without optional features",
                table=projection.table,
                error=error_message(error),
            )
            reduced = []
        else:
            services.logger.log_schema_error(
                code.value,
                f"{label}: base projection rejected by remote schema; returning empty result",
                table=projection.table,
                error=error_message(error),
            )
            return []

        try:
            rows = await fetch(reduced)
        except RemoteStoreError as retry_error:
            retry_code = classify_schema_error(retry_error)
            if not _degradable(retry_code):
                raise
            services.logger.log_schema_error(
                retry_code.value,
                f"{label}: degraded retry failed; returning empty result",
                table=projection.table,
                error=error_message(retry_error),
            )
            return []

        for feature in reduced:
            services.capabilities.set(feature.capability, True)
        return rows


def _fill_omitted(
    rows: list[Row],
    all_features: Sequence[OptionalFeature],
    included: Sequence[OptionalFeature],
) -> list[Row]:
    omitted = [f for f in all_features if f not in included]
    if not omitted:
        return rows
    for row in rows:
        for feature in omitted:
            for name in feature.fields:
                row.setdefault(name, None)
    return rows
