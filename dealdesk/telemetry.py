"""
Capability Fallback Telemetry

Named counters tracking how often the data layer fell back to a degraded
path. Counters live in the session store (falling back to the durable store
when no session store exists) under `telemetry_<name>` keys holding decimal
integer strings. persist()/restore() mirror them into the durable store so a
diagnostics run can read what a session recorded.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from dealdesk.storage import KeyValueStorage, NullStorage

logger = logging.getLogger(__name__)

TELEMETRY_PREFIX = "telemetry_"
LAST_RESET_KEY = "telemetry_lastResetAt"


class TelemetryKey:
    """Known fallback counters."""

    VENDOR_FALLBACK = "vendorFallback"
    VENDOR_ID_FALLBACK = "vendorIdFallback"
    VENDOR_REL_FALLBACK = "vendorRelFallback"
    SCHEDULED_TIMES_FALLBACK = "scheduledTimesFallback"
    USER_PROFILE_NAME_FALLBACK = "userProfileNameFallback"
    ORG_CONTEXT_FALLBACK = "orgContextFallback"

    ALL = (
        VENDOR_FALLBACK,
        VENDOR_ID_FALLBACK,
        VENDOR_REL_FALLBACK,
        SCHEDULED_TIMES_FALLBACK,
        USER_PROFILE_NAME_FALLBACK,
        ORG_CONTEXT_FALLBACK,
    )


def telemetry_key(name: str) -> str:
    return f"{TELEMETRY_PREFIX}{name}"


def _parse_count(raw: str | None) -> int:
    if raw is None:
        return 0
    try:
        value = int(raw)
    except ValueError:
        return 0
    return max(value, 0)


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class TelemetryCounters:
    """
    Fallback counters with export/import and durable mirroring.

    Args:
        session: Session-scoped storage (preferred backing store)
        durable: Durable storage used as fallback and for persist/restore
    """

    def __init__(
        self,
        session: KeyValueStorage | None = None,
        durable: KeyValueStorage | None = None,
    ):
        self._session = session or NullStorage()
        self._durable = durable or NullStorage()

    @property
    def store(self) -> KeyValueStorage:
        """Active backing store: session if available, else durable, else none."""
        if self._session.available:
            return self._session
        if self._durable.available:
            return self._durable
        return self._session

    def _names(self, storage: KeyValueStorage) -> list[str]:
        names = list(TelemetryKey.ALL)
        for key in storage.keys():
            if key.startswith(TELEMETRY_PREFIX) and key != LAST_RESET_KEY:
                name = key[len(TELEMETRY_PREFIX):]
                if name not in names:
                    names.append(name)
        return names

    def increment(self, name: str) -> int:
        store = self.store
        value = _parse_count(store.get(telemetry_key(name))) + 1
        store.set(telemetry_key(name), str(value))
        return value if store.available else 0

    def get(self, name: str) -> int:
        return _parse_count(self.store.get(telemetry_key(name)))

    def get_all(self) -> dict[str, int]:
        store = self.store
        return {name: self.get(name) for name in self._names(store)}

    def reset(self, name: str) -> None:
        self.store.set(telemetry_key(name), "0")

    def reset_all(self) -> None:
        store = self.store
        for name in self._names(store):
            store.set(telemetry_key(name), "0")
        if store.available:
            store.set(LAST_RESET_KEY, datetime.now(timezone.utc).isoformat())

    def export(self) -> str:
        """Serialize counters as {timestamp, counters} JSON."""
        return json.dumps(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "counters": self.get_all(),
            }
        )

    def import_(self, payload: str) -> bool:
        """
        Apply counters from an export() envelope.

        All-or-nothing: invalid JSON, a missing or non-object `counters`, or
        any value that is not a non-negative integer leaves state untouched
        and returns False.
        """
        try:
            data = json.loads(payload)
        except (TypeError, json.JSONDecodeError):
            logger.warning("Telemetry import rejected: invalid JSON")
            return False

        counters = data.get("counters") if isinstance(data, dict) else None
        if not isinstance(counters, dict):
            logger.warning("Telemetry import rejected: payload has no counters object")
            return False
        if not all(_is_count(v) for v in counters.values()):
            logger.warning("Telemetry import rejected: counters must be non-negative integers")
            return False

        store = self.store
        for name, value in counters.items():
            store.set(telemetry_key(str(name)), str(value))
        return True

    def persist(self) -> bool:
        """Copy session counters into the durable store. False if nothing to copy."""
        if not (self._session.available and self._durable.available):
            return False
        copied = False
        for key in self._session.keys():
            if key.startswith(TELEMETRY_PREFIX):
                self._durable.set(key, self._session.get(key) or "0")
                copied = True
        return copied

    def restore(self) -> bool:
        """Copy durable counters back into the session store. False if nothing to copy."""
        if not (self._session.available and self._durable.available):
            return False
        copied = False
        for key in self._durable.keys():
            if key.startswith(TELEMETRY_PREFIX):
                self._session.set(key, self._durable.get(key) or "0")
                copied = True
        return copied

    def get_summary(self) -> dict[str, Any]:
        store = self.store
        last_reset = store.get(LAST_RESET_KEY)
        seconds_since_reset = None
        if last_reset:
            try:
                elapsed = datetime.now(timezone.utc) - datetime.fromisoformat(last_reset)
                seconds_since_reset = round(elapsed.total_seconds(), 3)
            except ValueError:
                last_reset = None

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "counters": self.get_all(),
            "storage_type": (
                "session"
                if self._session.available
                else "durable" if self._durable.available else "none"
            ),
            "session_active": self._session.available,
            "last_reset_at": last_reset,
            "seconds_since_reset": seconds_since_reset,
        }
