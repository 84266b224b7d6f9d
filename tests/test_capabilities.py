"""Tests for the capability flag store."""

import json

from dealdesk.capabilities import (
    Capability,
    CapabilityState,
    CapabilityStore,
    capability_key,
)
from dealdesk.storage import MemoryStorage, NullStorage


class TestCapabilityState:
    """Tests for CapabilityState enum."""

    def test_all_states_exist(self):
        """Verify all expected states exist."""
        assert CapabilityState.UNKNOWN
        assert CapabilityState.CONFIRMED
        assert CapabilityState.DEGRADED

    def test_as_bool(self):
        """Unknown maps to None, the others to booleans."""
        assert CapabilityState.UNKNOWN.as_bool is None
        assert CapabilityState.CONFIRMED.as_bool is True
        assert CapabilityState.DEGRADED.as_bool is False


class TestCapabilityStore:
    """Tests for CapabilityStore."""

    def test_initial_state_unknown(self):
        """Flags start UNKNOWN and are optimistically enabled."""
        caps = CapabilityStore(MemoryStorage())
        assert caps.get(Capability.JOB_PARTS_VENDOR_REL) is CapabilityState.UNKNOWN
        assert caps.is_enabled(Capability.JOB_PARTS_VENDOR_REL)

    def test_set_false_then_true(self):
        """Later observations win in both directions."""
        caps = CapabilityStore(MemoryStorage())

        caps.set(Capability.JOB_PARTS_VENDOR_ID, False)
        assert caps.get(Capability.JOB_PARTS_VENDOR_ID) is CapabilityState.DEGRADED
        assert not caps.is_enabled(Capability.JOB_PARTS_VENDOR_ID)

        caps.set(Capability.JOB_PARTS_VENDOR_ID, True)
        assert caps.get(Capability.JOB_PARTS_VENDOR_ID) is CapabilityState.CONFIRMED
        assert caps.is_enabled(Capability.JOB_PARTS_VENDOR_ID)

    def test_storage_keys(self):
        """Flags are stored as cap_<name> -> "true"/"false"."""
        storage = MemoryStorage()
        caps = CapabilityStore(storage)
        caps.set("jobPartsScheduledTimes", False)
        assert storage.get("cap_jobPartsScheduledTimes") == "false"
        assert capability_key("x") == "cap_x"

    def test_garbage_value_is_unknown(self):
        """Unrecognized stored values read as UNKNOWN."""
        storage = MemoryStorage()
        storage.set("cap_userProfilesName", "maybe")
        assert CapabilityStore(storage).get("userProfilesName") is CapabilityState.UNKNOWN

    def test_reset_single(self):
        """reset() returns one flag to UNKNOWN."""
        caps = CapabilityStore(MemoryStorage())
        caps.set("a", False)
        caps.set("b", False)
        caps.reset("a")
        assert caps.get("a") is CapabilityState.UNKNOWN
        assert caps.get("b") is CapabilityState.DEGRADED

    def test_reset_all_only_touches_flags(self):
        """reset_all() clears cap_ keys and leaves other keys alone."""
        storage = MemoryStorage()
        storage.set("telemetry_vendorFallback", "3")
        caps = CapabilityStore(storage)
        caps.set("a", True)
        caps.set("b", False)

        caps.reset_all()

        assert caps.export_all() == {}
        assert storage.get("telemetry_vendorFallback") == "3"

    def test_export_all(self):
        """Only known flags are exported, as booleans."""
        caps = CapabilityStore(MemoryStorage())
        caps.set("jobPartsVendorRel", False)
        caps.set("jobPartsVendorId", True)
        assert caps.export_all() == {"jobPartsVendorRel": False, "jobPartsVendorId": True}

    def test_import_all_from_json(self):
        """A JSON object of booleans is applied."""
        caps = CapabilityStore(MemoryStorage())
        assert caps.import_all(json.dumps({"jobPartsVendorRel": False}))
        assert caps.get("jobPartsVendorRel") is CapabilityState.DEGRADED

    def test_import_all_rejects_non_boolean(self):
        """One non-boolean value rejects the whole payload."""
        caps = CapabilityStore(MemoryStorage())
        assert not caps.import_all({"jobPartsVendorRel": False, "jobPartsVendorId": "yes"})
        assert caps.export_all() == {}

    def test_import_all_rejects_bad_json(self):
        """Invalid JSON and non-objects are rejected."""
        caps = CapabilityStore(MemoryStorage())
        assert not caps.import_all("{not json")
        assert not caps.import_all("[true]")


class TestUnavailableStorage:
    """Tests for the storage-unavailable mode."""

    def test_operations_are_noops(self):
        """Every op succeeds silently and get() stays UNKNOWN."""
        caps = CapabilityStore(NullStorage())
        caps.set(Capability.JOB_PARTS_VENDOR_REL, False)
        caps.reset(Capability.JOB_PARTS_VENDOR_REL)
        caps.reset_all()

        assert caps.get(Capability.JOB_PARTS_VENDOR_REL) is CapabilityState.UNKNOWN
        assert caps.is_enabled(Capability.JOB_PARTS_VENDOR_REL)
        assert caps.export_all() == {}

    def test_default_storage_is_null(self):
        """A store built without storage behaves as unavailable."""
        caps = CapabilityStore()
        caps.set("a", False)
        assert caps.get("a") is CapabilityState.UNKNOWN
