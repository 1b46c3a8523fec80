# test_api_client.py
#
# Wire-level tests for FieldOpsAPIClient using httpx.MockTransport.
#
# Imports
import json
#
# Third-Party Imports
import httpx
import pytest
from pydantic import ValidationError
#
# Local Imports
from fieldops_app.api import (
    APIConnectionError,
    APIRequestError,
    APIResponseError,
    AuthenticationError,
    DownloadParams,
    FieldOpsAPIClient,
    ServerStatusError,
    SyncEnvelope,
)
#
########################################################################################################################
#
# Functions:

BASE_URL = "http://fieldops.test"


def make_client(handler, token="secret-token"):
    return FieldOpsAPIClient(BASE_URL, token=token, transport=httpx.MockTransport(handler))


def params(**overrides):
    values = {"part_no": 0, "limit": 500, "user_type": 1, "user_id": 9}
    values.update(overrides)
    return DownloadParams(**values)


class TestSchemas:
    def test_download_params_drop_missing_watermark(self):
        assert params().to_query() == {"part_no": 0, "limit": 500, "user_type": 1, "user_id": 9}
        assert params(update_date="2024-05-01").to_query()["update_date"] == "2024-05-01"

    @pytest.mark.parametrize("bad", [{"part_no": -1}, {"limit": 0}])
    def test_download_params_validation(self, bad):
        with pytest.raises(ValidationError):
            params(**bad)

    def test_envelope_records(self):
        assert SyncEnvelope(status=1).records == []
        assert SyncEnvelope(status=1, data={"id": 1}).records == [{"id": 1}]
        assert SyncEnvelope(status=1, data=[{"id": 1}, {"id": 2}]).records == [{"id": 1}, {"id": 2}]
        assert not SyncEnvelope(status=0).ok


class TestDownload:
    @pytest.mark.asyncio
    async def test_download_sends_query_and_auth(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"status": 1, "message": "ok",
                                             "data": [{"id": 1, "name": "Acme"}],
                                             "updated_date": "2024-05-01 10:00:00"})

        async with make_client(handler) as client:
            result = await client.download("api/customer/download", params(update_date="2024-04-30"))

        assert seen["path"] == "/api/customer/download"
        assert seen["params"] == {"part_no": "0", "limit": "500", "user_type": "1", "user_id": "9",
                                  "update_date": "2024-04-30"}
        assert seen["auth"] == "Bearer secret-token"
        assert result.records == [{"id": 1, "name": "Acme"}]
        assert result.updated_date == "2024-05-01 10:00:00"

    @pytest.mark.asyncio
    async def test_no_token_no_auth_header(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"status": 1, "data": []})

        async with make_client(handler, token=None) as client:
            await client.download("api/units/download", params())
        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_single_record_form(self):
        def handler(request):
            assert dict(request.url.params) == {"id": "42"}
            return httpx.Response(200, json={"status": 1, "data": {"id": 42}})

        async with make_client(handler) as client:
            result = await client.download_single("api/customer/download", 42)
        assert result.records == [{"id": 42}]

    @pytest.mark.asyncio
    async def test_non_success_status_raises(self):
        def handler(request):
            return httpx.Response(200, json={"status": 0, "message": "Invalid user"})

        async with make_client(handler) as client:
            with pytest.raises(ServerStatusError) as exc_info:
                await client.download("api/customer/download", params())
        assert exc_info.value.status == 0
        assert "Invalid user" in str(exc_info.value)


class TestErrors:
    @pytest.mark.asyncio
    async def test_unauthorized(self):
        async with make_client(lambda r: httpx.Response(401, json={"message": "bad token"})) as client:
            with pytest.raises(AuthenticationError, match="bad token"):
                await client.download("api/customer/download", params())

    @pytest.mark.asyncio
    async def test_unprocessable(self):
        async with make_client(lambda r: httpx.Response(422, json={"message": "limit too big"})) as client:
            with pytest.raises(APIRequestError) as exc_info:
                await client.download("api/customer/download", params())
        assert exc_info.value.response_data == {"message": "limit too big"}

    @pytest.mark.asyncio
    async def test_server_error(self):
        async with make_client(lambda r: httpx.Response(500, text="oops")) as client:
            with pytest.raises(APIResponseError) as exc_info:
                await client.download("api/customer/download", params())
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(APIConnectionError):
                await client.download("api/customer/download", params())

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with make_client(lambda r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(APIResponseError, match="decode JSON"):
                await client.download("api/customer/download", params())

    @pytest.mark.asyncio
    async def test_malformed_envelope(self):
        async with make_client(lambda r: httpx.Response(200, json={"message": "no status"})) as client:
            with pytest.raises(APIResponseError, match="Malformed envelope"):
                await client.download("api/customer/download", params())


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_posts_json_and_returns_ack(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": 1, "message": "Added",
                                             "data": {"id": 501, "name": "Acme"}})

        async with make_client(handler) as client:
            ack = await client.upload("api/customer/add", {"name": "Acme", "phone_no": "555-1212"})

        assert seen == {"method": "POST", "path": "/api/customer/add",
                        "body": {"name": "Acme", "phone_no": "555-1212"}}
        assert ack.server_key == 501
        assert ack.record["name"] == "Acme"

    @pytest.mark.asyncio
    async def test_ack_without_id(self):
        async with make_client(lambda r: httpx.Response(200, json={"status": 1, "data": None})) as client:
            ack = await client.upload("api/customer/update", {"id": 3})
        assert ack.server_key is None
        assert ack.record == {}

    @pytest.mark.asyncio
    async def test_client_reopens_after_close(self):
        client = make_client(lambda r: httpx.Response(200, json={"status": 1, "data": []}))
        await client.download("api/units/download", params())
        await client.close()
        await client.download("api/units/download", params())
        await client.close()

#
# End of test_api_client.py
########################################################################################################################
