"""Tests for the Graph API flows client."""

from urllib.parse import parse_qs

import httpx
import pytest

from flowcraft.core import config
from flowcraft.core.exceptions import MetaSyncError
from flowcraft.services.meta_flow_client import MetaFlowClient, get_meta_flow_client


class Recorder:
    """MockTransport handler returning canned responses in order."""

    def __init__(self, *responses):
        self.requests = []
        self.responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code, body = self.responses.pop(0)
        return httpx.Response(status_code, json=body)


def make_client(*responses):
    recorder = Recorder(*responses)
    http = httpx.Client(transport=httpx.MockTransport(recorder))
    return MetaFlowClient("token_x", "waba_1", api_version="v24.0", http=http), recorder


class TestMetaFlowClient:
    """Tests for MetaFlowClient."""

    def test_create_flow(self) -> None:
        client, recorder = make_client((200, {"id": "1234"}))
        assert client.create_flow("Lead capture", ["LEAD_GENERATION"]) == "1234"

        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://graph.facebook.com/v24.0/waba_1/flows"
        assert request.headers["Authorization"] == "Bearer token_x"
        form = parse_qs(request.content.decode())
        assert form["name"] == ["Lead capture"]
        assert form["categories"] == ['["LEAD_GENERATION"]']

    def test_create_flow_default_category(self) -> None:
        client, recorder = make_client((200, {"id": "1234"}))
        client.create_flow("Lead capture")
        assert parse_qs(recorder.requests[0].content.decode())["categories"] == ['["OTHER"]']

    def test_create_flow_without_id(self) -> None:
        client, _ = make_client((200, {"success": True}))
        with pytest.raises(MetaSyncError):
            client.create_flow("Lead capture")

    def test_update_flow_json_is_multipart(self) -> None:
        client, recorder = make_client((200, {"success": True, "validation_errors": []}))
        client.update_flow_json("1234", {"version": "7.2", "screens": []})

        request = recorder.requests[0]
        assert str(request.url).endswith("/1234/assets")
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        body = request.content.decode()
        assert 'name="asset_type"' in body
        assert "FLOW_JSON" in body
        assert 'filename="flow.json"' in body

    def test_update_flow_json_validation_errors(self) -> None:
        errors = [{"error": "INVALID_PROPERTY", "message": "bad"}]
        client, _ = make_client((200, {"success": True, "validation_errors": errors}))

        with pytest.raises(MetaSyncError) as exc_info:
            client.update_flow_json("1234", {"version": "7.2", "screens": []})
        assert exc_info.value.details["validation_errors"] == errors

    def test_lifecycle_paths(self) -> None:
        client, recorder = make_client(
            (200, {"success": True}),
            (200, {"success": True}),
            (200, {"success": True}),
            (200, {"id": "1234", "status": "PUBLISHED"}),
        )
        client.publish_flow("1234")
        client.deprecate_flow("1234")
        client.delete_flow("1234")
        assert client.get_flow("1234")["status"] == "PUBLISHED"

        assert [(r.method, r.url.path) for r in recorder.requests] == [
            ("POST", "/v24.0/1234/publish"),
            ("POST", "/v24.0/1234/deprecate"),
            ("DELETE", "/v24.0/1234"),
            ("GET", "/v24.0/1234"),
        ]
        assert recorder.requests[3].url.params["fields"].startswith("id,name,status")

    def test_error_status_raises(self) -> None:
        error = {"error": {"message": "Invalid OAuth access token", "code": 190}}
        client, _ = make_client((401, error))

        with pytest.raises(MetaSyncError) as exc_info:
            client.publish_flow("1234")
        assert exc_info.value.code == "FLOW_META_SYNC_FAILED"
        assert exc_info.value.details == error["error"]

    def test_transport_error_raises(self) -> None:
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.Client(transport=httpx.MockTransport(boom))
        client = MetaFlowClient("token_x", "waba_1", http=http)
        with pytest.raises(MetaSyncError):
            client.get_flow("1234")


class TestGetMetaFlowClient:
    """Tests for building the client from configuration."""

    def test_none_without_token(self, monkeypatch) -> None:
        monkeypatch.setattr(config, "TOKEN", "")
        assert get_meta_flow_client() is None

    def test_built_from_config(self, monkeypatch) -> None:
        monkeypatch.setattr(config, "TOKEN", "token_x")
        monkeypatch.setattr(config, "BUSINESS_ACCOUNT_ID", "waba_1")
        client = get_meta_flow_client()
        assert client.base_url == f"https://graph.facebook.com/{config.GRAPH_API_VERSION}"
        assert client.business_account_id == "waba_1"
