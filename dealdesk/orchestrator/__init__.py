"""Resilient query/write orchestration for jobs and line items."""

from dealdesk.orchestrator.job_parts import JOB_PARTS_PROJECTION, JobPartsService
from dealdesk.orchestrator.jobs import JOBS_PROJECTION, JobService
from dealdesk.orchestrator.line_items import (
    LineItemRow,
    build_line_item_row,
    build_line_item_rows,
    normalize_time,
)
from dealdesk.orchestrator.permissions import (
    REMEDIATION_MESSAGE,
    raise_remapped,
    remap_permission_error,
)
from dealdesk.orchestrator.profiles import ProfileService, resolve_profile_name
from dealdesk.orchestrator.reads import OptionalFeature, Projection, ResilientReader
from dealdesk.orchestrator.vendors import aggregate_vendor

__all__ = [
    "JOB_PARTS_PROJECTION",
    "JOBS_PROJECTION",
    "JobPartsService",
    "JobService",
    "LineItemRow",
    "build_line_item_row",
    "build_line_item_rows",
    "normalize_time",
    "REMEDIATION_MESSAGE",
    "raise_remapped",
    "remap_permission_error",
    "ProfileService",
    "resolve_profile_name",
    "OptionalFeature",
    "Projection",
    "ResilientReader",
    "aggregate_vendor",
]
