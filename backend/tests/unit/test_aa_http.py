"""Tests for the shared AA HTTP transport."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from integrations.aa_http import encode_json_body, request_json
from integrations.exceptions import (
    InvalidCustomerError,
    ProviderAPIError,
    ProviderAuthError,
    ProviderProtocolError,
    ProviderUnavailableError,
)

BASE_URL = "https://aa.example"


def _response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", f"{BASE_URL}/Consent"), **kwargs)


def _mock_client(response=None, side_effect=None) -> MagicMock:
    """Patchable httpx.Client class whose instance returns ``response``."""
    client_cls = MagicMock()
    http = client_cls.return_value.__enter__.return_value
    if side_effect is not None:
        http.request.side_effect = side_effect
    else:
        http.request.return_value = response
    return client_cls


def _call(client_cls, **kwargs):
    with patch("integrations.aa_http.httpx.Client", client_cls):
        return request_json(BASE_URL, "POST", "/Consent", "Finvu", 5.0, **kwargs)


class TestEncodeJsonBody:
    def test_compact_utf8(self):
        assert encode_json_body({"a": 1, "b": "x"}) == b'{"a":1,"b":"x"}'


class TestRequestJson:
    def test_returns_json_object(self):
        client_cls = _mock_client(_response(200, json={"ConsentHandle": "CH_1"}))
        assert _call(client_cls) == {"ConsentHandle": "CH_1"}

    def test_sends_headers_and_content(self):
        client_cls = _mock_client(_response(200, json={}))
        _call(client_cls, headers={"client_api_key": "k"}, content=b"{}")

        client_cls.assert_called_once_with(base_url=BASE_URL, timeout=5.0)
        http = client_cls.return_value.__enter__.return_value
        args, kwargs = http.request.call_args
        assert args == ("POST", "/Consent")
        assert kwargs["content"] == b"{}"
        assert kwargs["headers"]["client_api_key"] == "k"
        assert kwargs["headers"]["Content-Type"] == "application/json"

    def test_empty_body_is_empty_dict(self):
        assert _call(_mock_client(_response(204))) == {}

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors(self, status):
        with pytest.raises(ProviderAuthError) as exc_info:
            _call(_mock_client(_response(status, text="denied")))
        assert exc_info.value.provider_name == "Finvu"

    def test_invalid_customer(self):
        with pytest.raises(InvalidCustomerError):
            _call(_mock_client(_response(400, json={"errorMsg": "Invalid Cust Id"})))

    def test_other_client_error(self):
        with pytest.raises(ProviderAPIError) as exc_info:
            _call(_mock_client(_response(422, json={"errorMsg": "bad range"})))
        assert exc_info.value.status_code == 422
        assert not exc_info.value.retriable

    def test_server_error_is_retriable(self):
        with pytest.raises(ProviderAPIError) as exc_info:
            _call(_mock_client(_response(503)))
        assert exc_info.value.retriable

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            httpx.ReadError("connection reset"),
            httpx.WriteError("broken pipe"),
            httpx.RemoteProtocolError("peer closed connection"),
        ],
    )
    def test_network_failures(self, error):
        with pytest.raises(ProviderUnavailableError) as exc_info:
            _call(_mock_client(side_effect=error))
        assert exc_info.value.retriable

    def test_timeout_reported_as_timeout(self):
        with pytest.raises(ProviderUnavailableError, match="timed out"):
            _call(_mock_client(side_effect=httpx.ConnectTimeout("slow handshake")))

    def test_non_json_body(self):
        with pytest.raises(ProviderProtocolError):
            _call(_mock_client(_response(200, text="<html>")))

    def test_non_object_json(self):
        with pytest.raises(ProviderProtocolError, match="expected a JSON object"):
            _call(_mock_client(_response(200, json=["a"])))
