"""
Line item write rows.

Converts form line items into `job_parts` rows. Form payloads arrive in both
snake_case and camelCase, so every field is read through a list of aliases.

Scheduling invariant:
- requires_scheduling=True  -> promised_date is set (today, UTC, if omitted)
- requires_scheduling=False -> promised_date and scheduling times are null;
  no_schedule_reason may be set
"""

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, replace
from datetime import date, datetime, timezone
from typing import Any

SCHEDULING_TIME_FIELDS = ("scheduled_start_time", "scheduled_end_time")
VENDOR_ID_FIELD = "vendor_id"

_PG_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}")
_SHORT_OFFSET = re.compile(r"([+-]\d{2})$")
_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


@dataclass(frozen=True)
class LineItemRow:
    """One `job_parts` row as written to the remote store."""

    job_id: str
    product_id: str
    unit_price: float
    quantity_used: float
    promised_date: str | None
    requires_scheduling: bool
    no_schedule_reason: str | None
    is_off_site: bool
    vendor_id: str | None
    scheduled_start_time: str | None = None
    scheduled_end_time: str | None = None

    def to_dict(self, include_times: bool = True, include_vendor: bool = True) -> dict[str, Any]:
        data = asdict(self)
        if not include_times:
            for name in SCHEDULING_TIME_FIELDS:
                data.pop(name, None)
        if not include_vendor:
            data.pop(VENDOR_ID_FIELD, None)
        return data

    def dedupe_key(self, include_times: bool = True, include_vendor: bool = True) -> tuple[Any, ...]:
        """Logical uniqueness key of a job_parts row."""
        vendor = self.vendor_id if include_vendor else None
        times = (
            (self.scheduled_start_time, self.scheduled_end_time) if include_times else (None, None)
        )
        return (self.job_id, self.product_id, vendor, *times)


def today_utc() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _pick(item: Mapping[str, Any], *keys: str) -> Any:
    """First alias that is present and not None."""
    for key in keys:
        value = item.get(key)
        if value is not None:
            return value
    return None


def _to_number(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return int(number) if number.is_integer() else number


def _to_date(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()[:10]
    return str(value)[:10]


def normalize_time(value: Any) -> str | None:
    """
    Canonicalize a timestamp to ISO-8601 UTC ("2025-12-15T15:04:00Z").

    Accepts datetimes, ISO strings and Postgres-style strings such as
    "2025-12-15 15:04:00+00". Unparseable strings are returned trimmed.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        candidate = text
        if _PG_TIMESTAMP.match(candidate):
            candidate = candidate.replace(" ", "T", 1)
        if candidate.endswith(("Z", "z")):
            candidate = candidate[:-1] + "+00:00"
        elif _COMPACT_OFFSET.search(candidate) and "T" in candidate:
            candidate = _COMPACT_OFFSET.sub(r"\1:\2", candidate)
        elif _SHORT_OFFSET.search(candidate) and "T" in candidate:
            candidate = f"{candidate}:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            return text

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)

    if parsed.microsecond:
        return parsed.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return parsed.strftime("%Y-%m-%dT%H:%M:%SZ")


def build_line_item_row(
    job_id: str,
    item: Mapping[str, Any],
    today: str | None = None,
) -> LineItemRow | None:
    """
    Build the write row for one form line item.

    Returns None when the item has no product.
    """
    product_id = _pick(item, "product_id", "productId")
    if not product_id:
        return None

    requires_scheduling = bool(
        _pick(
            item,
            "requires_scheduling",
            "requiresScheduling",
            "scheduled_start_time",
            "scheduledStartTime",
            "scheduled_end_time",
            "scheduledEndTime",
        )
    )

    promised_date = None
    if requires_scheduling:
        promised_date = _to_date(
            _pick(item, "promised_date", "promisedDate", "lineItemPromisedDate", "dateScheduled")
        ) or (today or today_utc())

    no_schedule_reason = None
    if not requires_scheduling:
        no_schedule_reason = _pick(item, "no_schedule_reason", "noScheduleReason") or None

    vendor_id = _pick(item, "vendor_id", "vendorId")
    if vendor_id is not None and not str(vendor_id).strip():
        vendor_id = None

    start = end = None
    if requires_scheduling:
        start = normalize_time(_pick(item, "scheduled_start_time", "scheduledStartTime"))
        end = normalize_time(_pick(item, "scheduled_end_time", "scheduledEndTime"))

    return LineItemRow(
        job_id=job_id,
        product_id=product_id,
        unit_price=_to_number(_pick(item, "unit_price", "unitPrice", "price"), 0),
        quantity_used=_to_number(_pick(item, "quantity_used", "quantityUsed", "quantity"), 1),
        promised_date=promised_date,
        requires_scheduling=requires_scheduling,
        no_schedule_reason=no_schedule_reason,
        is_off_site=bool(_pick(item, "is_off_site", "isOffSite")),
        vendor_id=vendor_id,
        scheduled_start_time=start,
        scheduled_end_time=end,
    )


def build_line_item_rows(
    job_id: str,
    items: Iterable[Mapping[str, Any] | None],
    include_times: bool = True,
    include_vendor: bool = True,
) -> list[LineItemRow]:
    """
    Build rows for every form item, dropping items without a product.

    Rows sharing a logical key are merged: quantities are summed and the
    later item's other fields win.
    """
    today = today_utc()
    merged: dict[tuple[Any, ...], LineItemRow] = {}

    for item in items or ():
        if not item:
            continue
        row = build_line_item_row(job_id, item, today=today)
        if row is None:
            continue
        key = row.dedupe_key(include_times, include_vendor)
        existing = merged.get(key)
        if existing is not None:
            row = replace(row, quantity_used=existing.quantity_used + row.quantity_used)
        merged[key] = row

    return list(merged.values())


def conflict_columns(include_times: bool = True, include_vendor: bool = True) -> str:
    """Upsert conflict target matching the logical key of the written shape."""
    columns = ["job_id", "product_id"]
    if include_vendor:
        columns.append(VENDOR_ID_FIELD)
    if include_times:
        columns.extend(SCHEDULING_TIME_FIELDS)
    return ",".join(columns)
