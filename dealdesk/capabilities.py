"""
Capability Flag Store

Session-scoped beliefs about whether an optional schema feature (a column or
an embedded relationship) is currently usable on the remote store.

Each capability is a small state machine:

    UNKNOWN -> CONFIRMED   (an enriched operation succeeded)
    UNKNOWN -> DEGRADED    (a classified drift error named the feature)
    CONFIRMED <-> DEGRADED (later observations win)

Flags are optimistic and only live for the session; reset_all() returns
every capability to UNKNOWN. A drift repaired mid-session stays DEGRADED
until that reset.
"""

import json
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from dealdesk.storage import KeyValueStorage, NullStorage

logger = logging.getLogger(__name__)

CAPABILITY_PREFIX = "cap_"


class Capability:
    """Known capability names."""

    JOB_PARTS_VENDOR_REL = "jobPartsVendorRel"
    JOB_PARTS_VENDOR_ID = "jobPartsVendorId"
    JOB_PARTS_SCHEDULED_TIMES = "jobPartsScheduledTimes"
    USER_PROFILES_NAME = "userProfilesName"
    JOBS_VENDOR_REL = "jobsVendorRel"

    ALL = (
        JOB_PARTS_VENDOR_REL,
        JOB_PARTS_VENDOR_ID,
        JOB_PARTS_SCHEDULED_TIMES,
        USER_PROFILES_NAME,
        JOBS_VENDOR_REL,
    )


class CapabilityState(Enum):
    """Tri-state belief about a capability."""

    UNKNOWN = "unknown"
    CONFIRMED = "true"
    DEGRADED = "false"

    @property
    def as_bool(self) -> bool | None:
        if self is CapabilityState.UNKNOWN:
            return None
        return self is CapabilityState.CONFIRMED


def capability_key(name: str) -> str:
    return f"{CAPABILITY_PREFIX}{name}"


class CapabilityStore:
    """Reads and writes capability flags on a session storage backend."""

    def __init__(self, storage: KeyValueStorage | None = None):
        self._storage = storage or NullStorage()

    @property
    def storage(self) -> KeyValueStorage:
        return self._storage

    def get(self, name: str) -> CapabilityState:
        """Current state; UNKNOWN when never set or storage is unavailable."""
        raw = self._storage.get(capability_key(name))
        if raw == "true":
            return CapabilityState.CONFIRMED
        if raw == "false":
            return CapabilityState.DEGRADED
        return CapabilityState.UNKNOWN

    def is_enabled(self, name: str) -> bool:
        """Optimistic check: anything not yet degraded is worth trying."""
        return self.get(name) is not CapabilityState.DEGRADED

    def set(self, name: str, value: bool) -> None:
        previous = self.get(name)
        self._storage.set(capability_key(name), "true" if value else "false")
        if previous.as_bool is not value:
            logger.debug(f"Capability {name}: {previous.value} -> {str(value).lower()}")

    def reset(self, name: str) -> None:
        self._storage.remove(capability_key(name))

    def reset_all(self) -> None:
        for key in self._storage.keys():
            if key.startswith(CAPABILITY_PREFIX):
                self._storage.remove(key)

    def export_all(self) -> dict[str, bool]:
        """All known (non-UNKNOWN) flags as {name: bool}."""
        flags: dict[str, bool] = {}
        for key in self._storage.keys():
            if not key.startswith(CAPABILITY_PREFIX):
                continue
            name = key[len(CAPABILITY_PREFIX):]
            state = self.get(name)
            if state is not CapabilityState.UNKNOWN:
                flags[name] = state is CapabilityState.CONFIRMED
        return flags

    def import_all(self, data: str | Mapping[str, Any]) -> bool:
        """
        Apply flags from a JSON string or mapping of {name: bool}.

        All-or-nothing: any non-boolean value rejects the whole payload.
        """
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError:
                return False
        if not isinstance(data, Mapping):
            return False
        if not all(isinstance(v, bool) for v in data.values()):
            return False

        for name, value in data.items():
            self.set(str(name), value)
        return True
