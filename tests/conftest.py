"""Shared fixtures: an in-memory REST client double and fresh services."""

import copy
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

from dealdesk.logging import LogConfig
from dealdesk.remote.errors import build_store_error
from dealdesk.services import ResilienceServices, reset_services
from dealdesk.storage import MemoryStorage


@dataclass
class RecordedCall:
    """One call made against FakeRestClient."""

    method: str
    table: str
    columns: str | None = None
    filters: list[tuple[str, str]] = field(default_factory=list)
    rows: Any = None
    order: str | None = None
    descending: bool = False
    limit: int | None = None
    on_conflict: str | None = None


class FakeRestClient:
    """
    Stand-in for RestClient.

    Outcomes are looked up per (method, table): queued outcomes first (one per
    call), then a persistent handler, then an empty list. An outcome is a list
    of rows, an exception to raise, or a callable taking the RecordedCall.
    """

    def __init__(self):
        self.calls: list[RecordedCall] = []
        self._queued: dict[tuple[str, str], list[Any]] = {}
        self._handlers: dict[tuple[str, str], Callable[[RecordedCall], Any]] = {}

    def queue(self, method: str, table: str, *outcomes: Any) -> None:
        self._queued.setdefault((method, table), []).extend(outcomes)

    def on(self, method: str, table: str, handler: Callable[[RecordedCall], Any]) -> None:
        self._handlers[(method, table)] = handler

    def calls_to(self, method: str, table: str | None = None) -> list[RecordedCall]:
        return [c for c in self.calls if c.method == method and table in (None, c.table)]

    def _resolve(self, call: RecordedCall) -> Any:
        self.calls.append(call)
        key = (call.method, call.table)
        if self._queued.get(key):
            outcome = self._queued[key].pop(0)
        elif key in self._handlers:
            outcome = self._handlers[key]
        else:
            outcome = []

        if callable(outcome) and not isinstance(outcome, BaseException):
            outcome = outcome(call)
        if isinstance(outcome, BaseException):
            raise outcome
        return copy.deepcopy(outcome)

    async def select(self, table, columns="*", *, filters=(), order=None, descending=False, limit=None):
        return self._resolve(
            RecordedCall(
                "select",
                table,
                columns=columns,
                filters=list(filters),
                order=order,
                descending=descending,
                limit=limit,
            )
        )

    async def insert(self, table, rows):
        return self._resolve(RecordedCall("insert", table, rows=copy.deepcopy(list(rows))))

    async def upsert(self, table, rows, *, on_conflict):
        return self._resolve(
            RecordedCall("upsert", table, rows=copy.deepcopy(list(rows)), on_conflict=on_conflict)
        )

    async def update(self, table, values, *, filters):
        return self._resolve(
            RecordedCall("update", table, rows=dict(values), filters=list(filters))
        )

    async def delete(self, table, *, filters):
        return self._resolve(RecordedCall("delete", table, filters=list(filters)))


@pytest.fixture(autouse=True)
def fresh_process_services():
    """Never leak process-wide services between tests."""
    reset_services()
    yield
    reset_services()


@pytest.fixture
def services():
    """Isolated services with in-memory session and durable stores."""
    return ResilienceServices(
        session=MemoryStorage(),
        durable=MemoryStorage(),
        log_config=LogConfig(),
    )


@pytest.fixture
def fake_client():
    return FakeRestClient()


@pytest.fixture
def missing_relationship():
    """Factory for the store's missing-embed error."""

    def make(source: str = "job_parts", target: str = "vendors"):
        return build_store_error(
            {
                "code": "PGRST200",
                "message": (
                    f"Could not find a relationship between '{source}' and '{target}' "
                    "in the schema cache"
                ),
                "hint": "Perhaps you meant 'vendor_contacts' instead of 'vendors'.",
            },
            status=400,
        )

    return make


@pytest.fixture
def missing_column():
    """Factory for the store's missing-column error."""

    def make(column: str, table: str = "job_parts"):
        return build_store_error(
            {
                "code": "PGRST204",
                "message": f"Could not find the '{column}' column of '{table}' in the schema cache",
            },
            status=400,
        )

    return make
