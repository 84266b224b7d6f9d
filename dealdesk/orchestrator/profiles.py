"""
Profile display names.

The tenant-profile table gained its name column through later migrations,
so `full_name` is read as an optional feature gated by `userProfilesName`.
When it is unavailable a name is derived from the email address.
"""

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from dealdesk.capabilities import Capability
from dealdesk.orchestrator.reads import COLUMN, OptionalFeature, Projection, ResilientReader
from dealdesk.remote.client import in_
from dealdesk.services import ResilienceServices
from dealdesk.telemetry import TelemetryKey

if TYPE_CHECKING:
    from dealdesk.remote.client import RestClient

PROFILE_TABLE = "user_profiles"

PROFILE_NAME_FEATURE = OptionalFeature(
    capability=Capability.USER_PROFILES_NAME,
    telemetry_key=TelemetryKey.USER_PROFILE_NAME_FALLBACK,
    select="full_name",
    kind=COLUMN,
    fields=("full_name",),
    markers=("full_name",),
)


def profile_projection(table: str = PROFILE_TABLE) -> Projection:
    return Projection(table=table, base="id, email", features=(PROFILE_NAME_FEATURE,))


def resolve_profile_name(profile: Mapping[str, Any] | None) -> str | None:
    """
    Friendly name for a profile row.

    Tries name, full_name and display_name, then the local part of the
    email. Returns None when nothing usable is present.
    """
    if not isinstance(profile, Mapping):
        return None
    for key in ("name", "full_name", "display_name"):
        value = str(profile.get(key) or "").strip()
        if value:
            return value
    email = str(profile.get("email") or "").strip()
    if "@" in email:
        return email.split("@")[0] or None
    return None


class ProfileService:
    """
    Looks up display names for users.

    Args:
        client: REST client
        services: Capability/telemetry/log services (defaults to process-wide)
        profile_table: Tenant-profile table name
    """

    def __init__(
        self,
        client: "RestClient",
        services: ResilienceServices | None = None,
        profile_table: str = PROFILE_TABLE,
    ):
        self.reader = ResilientReader(client, services)
        self.projection = profile_projection(profile_table)

    async def display_names(self, user_ids: Iterable[str | None]) -> dict[str, str]:
        """Map each known user id to its display name; unknown ids are left out."""
        ids = list(dict.fromkeys(str(user_id) for user_id in user_ids if user_id))
        if not ids:
            return {}

        rows = await self.reader.select(
            self.projection,
            filters=[in_("id", ids)],
            label="display_names",
        )

        names: dict[str, str] = {}
        for row in rows:
            name = resolve_profile_name(row)
            if row.get("id") and name:
                names[str(row["id"])] = name
        return names
