"""Tests for the Salesforce REST query executor."""

import json

import httpx
import pytest

from common.errors import ExecutionError
from dal.salesforce import SalesforceConfig, SalesforceQueryExecutor

INSTANCE = "https://example.my.salesforce.com"
QUERY_PATH = "/services/data/v59.0/query"


def _executor(handler, **config_kwargs):
    config = SalesforceConfig(instance_url=INSTANCE + "/", access_token="tok", **config_kwargs)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SalesforceQueryExecutor(config, client=client)


def _json(status, body):
    return httpx.Response(status, content=json.dumps(body).encode("utf-8"))


class TestSalesforceConfig:
    """Connection settings."""

    def test_normalizes_url_and_version(self):
        """Trailing slashes are dropped and the version gets its v prefix."""
        config = SalesforceConfig(instance_url=INSTANCE + "/", access_token="t", api_version="60.0")
        assert config.data_url == INSTANCE + "/services/data/v60.0"

    def test_requires_token(self):
        """An empty access token is rejected."""
        with pytest.raises(ValueError):
            SalesforceConfig(instance_url=INSTANCE, access_token="")

    def test_from_env_requires_instance(self, monkeypatch):
        """A missing instance URL raises KeyError."""
        monkeypatch.delenv("SALESFORCE_INSTANCE_URL", raising=False)
        with pytest.raises(KeyError):
            SalesforceConfig.from_env()


class TestExecute:
    """Running statements."""

    @pytest.mark.asyncio
    async def test_records_without_attributes(self):
        """Records are returned without their attributes envelopes."""
        seen = []

        def handler(request):
            seen.append(request)
            return _json(
                200,
                {
                    "totalSize": 1,
                    "done": True,
                    "records": [
                        {
                            "attributes": {"type": "Account"},
                            "Id": "001000000000001AAA",
                            "Owner": {"attributes": {"type": "User"}, "Name": "Ann"},
                        }
                    ],
                },
            )

        async with _executor(handler) as executor:
            result = await executor.execute("SELECT Id, Owner.Name FROM Account")

        assert result.records == [{"Id": "001000000000001AAA", "Owner": {"Name": "Ann"}}]
        assert result.total_size == 1
        assert not result.is_truncated
        assert seen[0].url.path == QUERY_PATH
        assert seen[0].url.params["q"] == "SELECT Id, Owner.Name FROM Account"
        assert seen[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_follows_next_records_url(self):
        """Later pages are fetched through nextRecordsUrl."""

        def handler(request):
            if request.url.path == QUERY_PATH:
                return _json(
                    200,
                    {
                        "totalSize": 3,
                        "done": False,
                        "records": [{"Id": "a"}, {"Id": "b"}],
                        "nextRecordsUrl": QUERY_PATH + "/01g-2000",
                    },
                )
            assert request.url.path == QUERY_PATH + "/01g-2000"
            return _json(200, {"totalSize": 3, "done": True, "records": [{"Id": "c"}]})

        async with _executor(handler) as executor:
            result = await executor.execute("SELECT Id FROM Contact")

        assert [r["Id"] for r in result.records] == ["a", "b", "c"]
        assert result.total_size == 3
        assert not result.is_truncated

    @pytest.mark.asyncio
    async def test_row_cap_truncates(self):
        """Pagination stops at max_rows and the result is marked truncated."""

        def handler(request):
            return _json(
                200,
                {
                    "totalSize": 5,
                    "done": False,
                    "records": [{"Id": "a"}, {"Id": "b"}],
                    "nextRecordsUrl": QUERY_PATH + "/01g-2000",
                },
            )

        async with _executor(handler, max_rows=2) as executor:
            result = await executor.execute("SELECT Id FROM Contact")

        assert len(result.records) == 2
        assert result.is_truncated


class TestErrors:
    """Mapping failures to ExecutionError."""

    @pytest.mark.asyncio
    async def test_service_error_body(self):
        """Salesforce error bodies become "CODE: message"."""

        def handler(request):
            return _json(
                400, [{"errorCode": "INVALID_FIELD", "message": "No such column 'Foo__c'"}]
            )

        async with _executor(handler) as executor:
            with pytest.raises(ExecutionError) as exc_info:
                await executor.execute("SELECT Foo__c FROM Account")

        assert str(exc_info.value) == "INVALID_FIELD: No such column 'Foo__c'"
        assert exc_info.value.error_code == "INVALID_FIELD"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_non_json_unauthorized(self):
        """A plain-text 401 falls back to INVALID_SESSION_ID."""

        def handler(request):
            return httpx.Response(401, text="Session expired")

        async with _executor(handler) as executor:
            with pytest.raises(ExecutionError) as exc_info:
                await executor.execute("SELECT Id FROM Account")

        assert str(exc_info.value).startswith("INVALID_SESSION_ID:")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"records": "not-a-list"}, [1, 2], {"totalSize": "many"}])
    async def test_unexpected_body_shape(self, body):
        """A JSON body that is not a query page is reported as MALFORMED_RESPONSE."""

        def handler(request):
            return _json(200, body)

        async with _executor(handler) as executor:
            with pytest.raises(ExecutionError) as exc_info:
                await executor.execute("SELECT Id FROM Account")

        assert str(exc_info.value).startswith("MALFORMED_RESPONSE:")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc, prefix",
        [
            (httpx.ConnectError("boom"), "CONNECTION_FAILED:"),
            (httpx.ReadTimeout("slow"), "REQUEST_TIMEOUT:"),
        ],
    )
    async def test_transport_errors(self, exc, prefix):
        """Transport failures are reported with stable prefixes."""

        def handler(request):
            raise exc

        async with _executor(handler) as executor:
            with pytest.raises(ExecutionError) as exc_info:
                await executor.execute("SELECT Id FROM Account")

        assert str(exc_info.value).startswith(prefix)

    @pytest.mark.asyncio
    async def test_ping(self):
        """ping reports failures as False."""

        def handler(request):
            return _json(500, [{"errorCode": "SERVER_UNAVAILABLE", "message": "down"}])

        async with _executor(handler) as executor:
            assert await executor.ping() is False


class TestCurrentUser:
    """Resolving the running user."""

    @pytest.mark.asyncio
    async def test_configured_user_wins(self):
        """A configured user id needs no request."""

        def handler(request):
            raise AssertionError("no request expected")

        async with _executor(handler, user_id="005000000000001AAA") as executor:
            assert await executor.current_user_id() == "005000000000001AAA"

    @pytest.mark.asyncio
    async def test_userinfo(self):
        """Otherwise the OAuth userinfo endpoint is asked."""

        def handler(request):
            assert request.url.path == "/services/oauth2/userinfo"
            return _json(200, {"user_id": "005000000000002AAA"})

        async with _executor(handler) as executor:
            assert await executor.current_user_id() == "005000000000002AAA"

    @pytest.mark.asyncio
    async def test_userinfo_failure(self):
        """A failing userinfo call yields None."""

        def handler(request):
            return httpx.Response(403, text="forbidden")

        async with _executor(handler) as executor:
            assert await executor.current_user_id() is None

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        """Closing the executor does not close a caller-owned client."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: _json(200, {})))
        config = SalesforceConfig(instance_url=INSTANCE, access_token="tok")
        async with SalesforceQueryExecutor(config, client=client):
            pass
        assert not client.is_closed
        await client.aclose()
