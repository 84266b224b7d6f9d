"""Tests for the REST client and error mapping."""

import json

import httpx
import pytest

from dealdesk.config import DealDeskConfig
from dealdesk.exceptions import (
    AccessDeniedError,
    ConfigError,
    MissingColumnError,
    MissingRelationshipError,
    RemoteConnectionError,
    RemoteStoreError,
    StaleCacheError,
    ValidationError,
)
from dealdesk.remote import RestClient, build_store_error, eq, in_, is_access_denied, is_null


def make_client(handler) -> RestClient:
    return RestClient(
        "https://db.example.co/rest/v1/",
        "anon-key",
        access_token="user-jwt",
        transport=httpx.MockTransport(handler),
    )


class TestFilters:
    """Tests for filter helpers."""

    def test_eq(self):
        """eq renders PostgREST equality."""
        assert eq("job_id", 42) == ("job_id", "eq.42")
        assert eq("is_off_site", True) == ("is_off_site", "eq.true")

    def test_in(self):
        """in_ quotes values containing reserved characters."""
        assert in_("id", ["a", "b"]) == ("id", "in.(a,b)")
        assert in_("name", ["x,y"]) == ("name", 'in.("x,y")')

    def test_is_null(self):
        """is_null renders is.null."""
        assert is_null("vendor_id") == ("vendor_id", "is.null")


class TestRestClient:
    """Tests for RestClient requests."""

    @pytest.mark.asyncio
    async def test_select_builds_query(self):
        """select sends select/filters/order/limit and auth headers."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json=[{"id": "1"}])

        async with make_client(handler) as client:
            rows = await client.select(
                "job_parts",
                "id, vendor:vendors(id, name)",
                filters=[in_("job_id", ["j1", "j2"])],
                order="updated_at",
                descending=True,
                limit=1,
            )

        request = seen["request"]
        assert rows == [{"id": "1"}]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/job_parts"
        params = request.url.params
        assert params["select"] == "id, vendor:vendors(id, name)"
        assert params["job_id"] == "in.(j1,j2)"
        assert params["order"] == "updated_at.desc"
        assert params["limit"] == "1"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["authorization"] == "Bearer user-jwt"

    @pytest.mark.asyncio
    async def test_insert_posts_rows(self):
        """insert POSTs a JSON array asking for the representation."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["prefer"] = request.headers.get("prefer")
            return httpx.Response(201, json=seen["body"])

        async with make_client(handler) as client:
            rows = await client.insert("job_parts", [{"job_id": "j1"}])

        assert rows == [{"job_id": "j1"}]
        assert seen["body"] == [{"job_id": "j1"}]
        assert "return=representation" in seen["prefer"]

    @pytest.mark.asyncio
    async def test_upsert_sets_conflict_target(self):
        """upsert asks for merge-duplicates on the conflict columns."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(201, json=[])

        async with make_client(handler) as client:
            await client.upsert("vendors", [{"id": "v1"}], on_conflict="id")

        assert seen["request"].url.params["on_conflict"] == "id"
        assert "merge-duplicates" in seen["request"].headers["prefer"]

    @pytest.mark.asyncio
    async def test_delete_empty_body(self):
        """An empty success body reads as an empty list."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            assert request.url.params["job_id"] == "eq.j1"
            return httpx.Response(204)

        async with make_client(handler) as client:
            assert await client.delete("job_parts", filters=[eq("job_id", "j1")]) == []

    @pytest.mark.asyncio
    async def test_unfiltered_writes_refused(self):
        """update/delete without filters never reach the network."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with make_client(handler) as client:
            with pytest.raises(ValidationError):
                await client.delete("job_parts", filters=[])
            with pytest.raises(ValidationError):
                await client.update("jobs", {"status": "done"}, filters=[])
            assert client.request_count == 0

    @pytest.mark.asyncio
    async def test_single_object_wrapped(self):
        """A single JSON object is returned as a one-row list."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "1"})

        async with make_client(handler) as client:
            assert await client.update("jobs", {"status": "x"}, filters=[eq("id", "1")]) == [
                {"id": "1"}
            ]

    @pytest.mark.asyncio
    async def test_malformed_success_body(self):
        """A success response that is not JSON raises RemoteStoreError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        async with make_client(handler) as client:
            with pytest.raises(RemoteStoreError) as exc_info:
                await client.select("user_profiles")
        assert exc_info.value.status == 200
        assert "not JSON" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_scalar_success_body(self):
        """A JSON scalar where rows are expected raises RemoteStoreError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=7)

        async with make_client(handler) as client:
            with pytest.raises(RemoteStoreError):
                await client.select("jobs")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """httpx failures become RemoteConnectionError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(RemoteConnectionError) as exc_info:
                await client.select("jobs")
        assert exc_info.value.details["error_type"] == "ConnectError"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,body,expected",
        [
            (
                400,
                {
                    "code": "PGRST200",
                    "message": "Could not find a relationship between 'job_parts' and 'vendors' in the schema cache",
                },
                MissingRelationshipError,
            ),
            (
                400,
                {
                    "code": "PGRST204",
                    "message": "Could not find the 'vendor_id' column of 'job_parts' in the schema cache",
                },
                MissingColumnError,
            ),
            (503, {"code": "PGRST002", "message": "Could not query the database for the schema cache"}, StaleCacheError),
            (403, {"code": "42501", "message": "permission denied for table users"}, AccessDeniedError),
            (409, {"code": "23505", "message": "duplicate key value"}, RemoteStoreError),
        ],
    )
    async def test_error_bodies_typed(self, status, body, expected):
        """Error bodies raise the most specific exception type."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json=body)

        async with make_client(handler) as client:
            with pytest.raises(RemoteStoreError) as exc_info:
                await client.select("job_parts")

        assert type(exc_info.value) is expected
        assert exc_info.value.status == status
        assert exc_info.value.code == body["code"]

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        """Plain-text error bodies keep their text as the message."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        async with make_client(handler) as client:
            with pytest.raises(RemoteStoreError) as exc_info:
                await client.select("jobs")
        assert exc_info.value.message == "Bad Gateway"

    def test_from_config_requires_credentials(self):
        """from_config raises ConfigError without URL/key."""
        with pytest.raises(ConfigError):
            RestClient.from_config(DealDeskConfig())


class TestBuildStoreError:
    """Tests for build_store_error."""

    def test_missing_column_extracts_name(self):
        """The column name is pulled out of the message."""
        err = build_store_error({"message": 'column "scheduled_start_time" does not exist', "code": "42703"})
        assert isinstance(err, MissingColumnError)
        assert err.column == "scheduled_start_time"

    def test_drift_beats_denial(self):
        """A drift message wins even with a 403 status."""
        err = build_store_error(
            {"message": "Could not find the 'vendor_id' column of 'job_parts' in the schema cache"},
            status=403,
        )
        assert isinstance(err, MissingColumnError)

    def test_status_403_is_denial(self):
        """403 without recognizable wording is still a denial."""
        assert isinstance(build_store_error({"message": "nope"}, status=403), AccessDeniedError)

    def test_empty_payload(self):
        """A missing body still yields an error with a message."""
        err = build_store_error(None, status=500)
        assert type(err) is RemoteStoreError
        assert "500" in err.message

    def test_details_and_hint_kept(self):
        """Store details and hint are carried over."""
        err = build_store_error({"message": "x", "details": "why", "hint": "try this"}, status=400)
        assert err.hint == "try this"
        assert err.details["store_details"] == "why"


class TestIsAccessDenied:
    """Tests for is_access_denied."""

    @pytest.mark.parametrize(
        "error",
        [
            {"code": "42501", "message": "insufficient_privilege"},
            {"code": "PGRST301", "message": "JWT expired"},
            {"message": "new row violates row-level security policy for table \"loaner_assignments\""},
            {"message": "RLS blocked the read"},
            {"message": "permission denied for table user_profiles"},
            AccessDeniedError("anything"),
        ],
    )
    def test_denials(self, error):
        """Codes, auth family and policy wording are denials."""
        assert is_access_denied(error)

    @pytest.mark.parametrize(
        "error",
        [
            None,
            {"code": "23505", "message": "duplicate key value violates unique constraint"},
            {"code": "PGRST204", "message": "Could not find the 'x' column"},
            {"message": "the first 'rlsx' token"},
            RemoteStoreError("timeout"),
        ],
    )
    def test_not_denials(self, error):
        """Constraint, drift and unrelated errors are not denials."""
        assert not is_access_denied(error)
