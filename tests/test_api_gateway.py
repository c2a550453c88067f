"""Unit tests for teamtime.integrations.api_gateway.

All HTTP goes through the MagicMock session injected by the autouse `http`
fixture; each test queues the response(s) it needs.
"""

import pytest
import requests

import teamtime.integrations.api_gateway as gw_module
from teamtime.core.exceptions import (
    ApiError,
    AuthenticationError,
    ConflictError,
    EndpointUnavailableError,
    NotFoundError,
    PermissionDenied,
    TransportError,
    ValidationError,
)
from teamtime.integrations.api_gateway import ApiGateway, GatewayResult


def _call(http):
    """(method, url, kwargs) of the single request made."""
    http.request.assert_called_once()
    args, kwargs = http.request.call_args
    return args[0], args[1], kwargs


class TestRequest:
    def test_success_unwraps_envelope(self, http, ok):
        http.request.return_value = ok({"id": 7})

        result = gw_module.api_gateway.get("/areas/7")

        assert result.ok is True
        assert result.status_code == 200
        assert result.payload() == {"id": 7}
        method, url, _ = _call(http)
        assert method == "GET"
        assert url == "http://testserver/api/areas/7"

    def test_payload_default_when_data_is_null(self, http, ok):
        http.request.return_value = ok(None)

        result = gw_module.api_gateway.get("/staging")

        assert result.payload([]) == []

    def test_bearer_token_injected_from_provider(self, http, ok):
        http.request.return_value = ok([])
        gw_module.api_gateway.token_provider = lambda: "tok-123"

        gw_module.api_gateway.get("/areas")

        _, _, kwargs = _call(http)
        assert kwargs["headers"]["Authorization"] == "Bearer tok-123"

    def test_no_authorization_header_without_token(self, http, ok):
        http.request.return_value = ok([])
        gw_module.api_gateway.token_provider = lambda: None

        gw_module.api_gateway.get("/areas")

        _, _, kwargs = _call(http)
        assert "Authorization" not in kwargs["headers"]

    def test_none_params_are_dropped(self, http, ok):
        http.request.return_value = ok([])

        gw_module.api_gateway.get("/staging", params={"sourceAreaId": 3, "status": None})

        _, _, kwargs = _call(http)
        assert kwargs["params"] == {"sourceAreaId": 3}

    def test_json_body_and_payload_hash(self, http, ok):
        http.request.return_value = ok({})

        result = gw_module.api_gateway.post("/area-flows", {"fromAreaId": 1, "toAreaId": 2})

        _, _, kwargs = _call(http)
        assert kwargs["json"] == {"fromAreaId": 1, "toAreaId": 2}
        assert kwargs["timeout"] == 30
        assert result.payload_hash is not None and len(result.payload_hash) == 64

    def test_requires_base_url(self):
        gateway = ApiGateway(session=object())

        with pytest.raises(RuntimeError, match="base_url"):
            gateway.get("/areas")


class TestTransportFailures:
    def test_connection_error_becomes_result(self, http):
        http.request.side_effect = requests.ConnectionError("connection refused")

        result = gw_module.api_gateway.get("/areas")

        assert result.ok is False
        assert result.status_code is None
        assert result.transport_failed is True
        assert result.degradable is True
        with pytest.raises(TransportError, match="connection refused"):
            result.raise_for_error()

    def test_timeout_becomes_result(self, http):
        http.request.side_effect = requests.Timeout()

        result = gw_module.api_gateway.get("/areas")

        assert result.transport_failed is True
        assert "timed out" in result.error

    def test_no_retry_on_failure(self, http):
        http.request.side_effect = requests.ConnectionError("down")

        gw_module.api_gateway.post("/staging/1/transfer")

        assert http.request.call_count == 1


class TestErrorMapping:
    @pytest.mark.parametrize(
        "status, exc_type",
        [
            (400, ValidationError),
            (401, AuthenticationError),
            (403, PermissionDenied),
            (404, NotFoundError),
            (405, EndpointUnavailableError),
            (409, ConflictError),
            (422, ValidationError),
            (500, ApiError),
            (501, EndpointUnavailableError),
        ],
    )
    def test_status_maps_to_exception(self, http, fail, status, exc_type):
        http.request.return_value = fail(status, "boom")

        result = gw_module.api_gateway.get("/anything")

        with pytest.raises(exc_type) as info:
            result.raise_for_error()
        assert info.value.status_code == status

    def test_server_message_surfaced_verbatim(self, http, fail):
        http.request.return_value = fail(422, "El campo targetField es obligatorio")

        result = gw_module.api_gateway.post("/field-mappings", {})

        with pytest.raises(ValidationError) as info:
            result.raise_for_error()
        assert info.value.message == "El campo targetField es obligatorio"

    def test_not_found_carries_resource(self, http, fail):
        http.request.return_value = fail(404, "Not found")

        result = gw_module.api_gateway.get("/staging/99")

        with pytest.raises(NotFoundError) as info:
            result.raise_for_error(resource="StagingProject", resource_id=99)
        assert info.value.resource == "StagingProject"
        assert info.value.resource_id == 99

    def test_non_json_error_body(self, http, make_response):
        http.request.return_value = make_response(502, content=b"<html>", text="Bad gateway")

        result = gw_module.api_gateway.get("/areas")

        assert result.ok is False
        assert result.error == "HTTP 502: Bad gateway"
        assert result.degradable is False

    def test_unauthorized_notifies_session_once(self, http, fail):
        calls = []
        gw_module.api_gateway.on_unauthorized = lambda: calls.append(1)
        http.request.return_value = fail(401, "Token expired")

        gw_module.api_gateway.get("/areas")

        assert calls == [1]

    def test_raise_for_error_returns_self_on_success(self):
        result = GatewayResult(ok=True, status_code=200, data={}, error=None, duration_ms=1)

        assert result.raise_for_error() is result


class TestUploadDownload:
    def test_upload_sends_multipart_with_upload_timeout(self, http, ok, tmp_path):
        path = tmp_path / "book.xlsx"
        path.write_bytes(b"fake")
        http.request.return_value = ok({"importId": 1})

        gw_module.api_gateway.upload(
            "/excel-import/staging", str(path), fields={"sourceAreaId": 3, "batchSize": None}
        )

        method, url, kwargs = _call(http)
        assert method == "POST"
        assert url.endswith("/excel-import/staging")
        assert kwargs["files"]["file"][0] == "book.xlsx"
        assert kwargs["data"] == {"sourceAreaId": "3"}
        assert kwargs["timeout"] == 300
        assert "json" not in kwargs

    def test_download_returns_raw_bytes(self, http, make_response):
        http.request.return_value = make_response(200, content=b"PK\x03\x04")

        result = gw_module.api_gateway.download("/excel-import/template/3")

        assert result.ok is True
        assert result.data == b"PK\x03\x04"


class TestConfigure:
    def test_configure_rebinds_only_given_values(self):
        gateway = ApiGateway(base_url="http://a/api/", timeout=10)

        gateway.configure(base_url="http://b/api", upload_timeout=120)

        assert gateway.base_url == "http://b/api"
        assert gateway.timeout == 10
        assert gateway.upload_timeout == 120
        assert gateway.url_for("/x") == "http://b/api/x"
