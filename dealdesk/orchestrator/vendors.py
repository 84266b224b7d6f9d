"""Vendor label aggregation for job listings."""

from collections.abc import Iterable, Mapping
from typing import Any

MIXED_VENDORS = "Mixed"
UNASSIGNED_VENDOR = "Unassigned"


def aggregate_vendor(
    job_parts: Iterable[Mapping[str, Any] | None] | None,
    job_vendor_name: str | None = None,
) -> str:
    """
    Display vendor for a job, derived from its off-site line items.

    One distinct vendor name -> that name; several -> "Mixed"; none -> the
    job-level vendor name, else "Unassigned". Items whose vendor relationship
    is unavailable (vendor is None) contribute nothing. Names are compared
    exactly, without trimming or case folding.
    """
    names: list[str] = []
    for part in job_parts or ():
        if not part or not part.get("is_off_site"):
            continue
        vendor = part.get("vendor") or {}
        name = vendor.get("name") if isinstance(vendor, Mapping) else None
        if name and name not in names:
            names.append(name)

    if len(names) == 1:
        return names[0]
    if len(names) > 1:
        return MIXED_VENDORS
    return job_vendor_name or UNASSIGNED_VENDOR
