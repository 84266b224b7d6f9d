"""Tests for fallback telemetry counters."""

import json

import pytest

from dealdesk.storage import MemoryStorage, NullStorage
from dealdesk.telemetry import LAST_RESET_KEY, TelemetryCounters, TelemetryKey


@pytest.fixture
def counters():
    return TelemetryCounters(MemoryStorage(), MemoryStorage())


class TestCounting:
    """Tests for increment/get/reset."""

    def test_increment_returns_new_value(self, counters):
        """increment() returns the post-increment count."""
        assert counters.increment(TelemetryKey.VENDOR_FALLBACK) == 1
        assert counters.increment(TelemetryKey.VENDOR_FALLBACK) == 2
        assert counters.get(TelemetryKey.VENDOR_FALLBACK) == 2

    def test_unset_counter_is_zero(self, counters):
        """Counters never touched read as 0."""
        assert counters.get(TelemetryKey.ORG_CONTEXT_FALLBACK) == 0

    def test_get_all_includes_known_and_custom(self, counters):
        """get_all() reports every known key plus ad-hoc ones."""
        counters.increment("customFallback")
        snapshot = counters.get_all()
        assert set(TelemetryKey.ALL) <= set(snapshot)
        assert snapshot["customFallback"] == 1
        assert LAST_RESET_KEY not in snapshot

    def test_reset_single(self, counters):
        """reset() zeroes one counter."""
        counters.increment(TelemetryKey.VENDOR_ID_FALLBACK)
        counters.increment(TelemetryKey.VENDOR_REL_FALLBACK)
        counters.reset(TelemetryKey.VENDOR_ID_FALLBACK)
        assert counters.get(TelemetryKey.VENDOR_ID_FALLBACK) == 0
        assert counters.get(TelemetryKey.VENDOR_REL_FALLBACK) == 1

    def test_reset_all_stamps_time(self, counters):
        """reset_all() zeroes everything and records when."""
        counters.increment(TelemetryKey.SCHEDULED_TIMES_FALLBACK)
        counters.reset_all()
        assert all(v == 0 for v in counters.get_all().values())
        summary = counters.get_summary()
        assert summary["last_reset_at"] is not None
        assert summary["seconds_since_reset"] >= 0

    def test_corrupt_value_reads_zero(self):
        """Non-numeric stored values read as 0."""
        session = MemoryStorage()
        session.set("telemetry_vendorFallback", "lots")
        counters = TelemetryCounters(session)
        assert counters.get(TelemetryKey.VENDOR_FALLBACK) == 0
        assert counters.increment(TelemetryKey.VENDOR_FALLBACK) == 1


class TestExportImport:
    """Tests for export()/import_()."""

    def test_export_envelope(self, counters):
        """Export is {timestamp, counters}."""
        counters.increment(TelemetryKey.VENDOR_FALLBACK)
        data = json.loads(counters.export())
        assert "timestamp" in data
        assert data["counters"][TelemetryKey.VENDOR_FALLBACK] == 1

    def test_import_restores_exported_counts(self, counters):
        """Importing an export into a reset instance gives the same counts."""
        for _ in range(3):
            counters.increment(TelemetryKey.VENDOR_REL_FALLBACK)
        counters.increment(TelemetryKey.ORG_CONTEXT_FALLBACK)
        exported = counters.export()
        before = counters.get_all()

        counters.reset_all()
        assert counters.import_(exported)
        assert counters.get_all() == before

    @pytest.mark.parametrize(
        "payload",
        [
            "{not json",
            json.dumps([1, 2]),
            json.dumps({"timestamp": "x"}),
            json.dumps({"counters": [1]}),
            json.dumps({"counters": {"vendorFallback": -1}}),
            json.dumps({"counters": {"vendorFallback": 1.5}}),
            json.dumps({"counters": {"vendorFallback": "7"}}),
            json.dumps({"counters": {"vendorFallback": True}}),
            json.dumps({"counters": {"vendorFallback": 4, "vendorIdFallback": None}}),
        ],
    )
    def test_invalid_import_changes_nothing(self, counters, payload):
        """Invalid payloads return False and leave every counter unchanged."""
        counters.increment(TelemetryKey.VENDOR_FALLBACK)
        before = counters.get_all()

        assert counters.import_(payload) is False
        assert counters.get_all() == before


class TestBackingStores:
    """Tests for session/durable selection and mirroring."""

    def test_session_preferred(self):
        """With a session store, counters live there."""
        session, durable = MemoryStorage(), MemoryStorage()
        counters = TelemetryCounters(session, durable)
        counters.increment(TelemetryKey.VENDOR_FALLBACK)
        assert session.get("telemetry_vendorFallback") == "1"
        assert durable.get("telemetry_vendorFallback") is None
        assert counters.get_summary()["storage_type"] == "session"

    def test_durable_fallback(self):
        """Without a session store, counters go to the durable store."""
        durable = MemoryStorage()
        counters = TelemetryCounters(NullStorage(), durable)
        counters.increment(TelemetryKey.VENDOR_FALLBACK)
        assert durable.get("telemetry_vendorFallback") == "1"
        summary = counters.get_summary()
        assert summary["storage_type"] == "durable"
        assert summary["session_active"] is False

    def test_no_storage(self):
        """With nothing available, counting is a silent no-op."""
        counters = TelemetryCounters(NullStorage(), NullStorage())
        assert counters.increment(TelemetryKey.VENDOR_FALLBACK) == 0
        assert counters.get(TelemetryKey.VENDOR_FALLBACK) == 0
        assert counters.get_summary()["storage_type"] == "none"

    def test_persist_and_restore(self):
        """persist() copies to durable; restore() copies back."""
        durable = MemoryStorage()
        first = TelemetryCounters(MemoryStorage(), durable)
        first.increment(TelemetryKey.SCHEDULED_TIMES_FALLBACK)
        first.increment(TelemetryKey.SCHEDULED_TIMES_FALLBACK)
        assert first.persist()

        second = TelemetryCounters(MemoryStorage(), durable)
        assert second.restore()
        assert second.get(TelemetryKey.SCHEDULED_TIMES_FALLBACK) == 2

    def test_persist_restore_nothing_to_copy(self):
        """Empty or unavailable stores report False."""
        counters = TelemetryCounters(MemoryStorage(), MemoryStorage())
        assert counters.persist() is False
        assert counters.restore() is False
        assert TelemetryCounters(MemoryStorage(), NullStorage()).persist() is False
