import time
from unittest.mock import MagicMock, patch

import pytest
import requests

from tradebot.config import NetworkConfig
from tradebot.errors import ExchangeNetworkError, TradingApiError
from tradebot.http_transport import HttpTransport, build_query, hmac_signature, require_fields


def make_response(status_code=200, text='{"ok": true}', json_body=None, headers=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 400
    resp.text = text
    resp.headers = headers or {}
    if json_body is not None:
        resp.json.return_value = json_body
    else:
        resp.json.side_effect = ValueError("not json")
    return resp


def make_transport(**kwargs):
    network = NetworkConfig(connection_timeout=5, non_fatal_error_codes=(502, 503))
    return HttpTransport("https://api.example.com/", network, **kwargs)


def test_jittered_backoff_increases_with_attempt():
    backoff_0 = HttpTransport._jittered_backoff(0, base=1.0, max_backoff=60.0)
    backoff_3 = HttpTransport._jittered_backoff(3, base=1.0, max_backoff=60.0)
    assert backoff_3 > backoff_0


def test_jittered_backoff_respects_max():
    backoff = HttpTransport._jittered_backoff(10, base=1.0, max_backoff=5.0)
    assert backoff <= 5.0 + 5.0 * 0.25


def test_rate_limit_reset_header_as_timestamp():
    resp = make_response(headers={"X-RateLimit-Reset": str(time.time() + 2)})
    delay = HttpTransport._get_rate_limit_reset(resp)
    assert 0 < delay <= 2


def test_rate_limit_reset_header_as_seconds():
    resp = make_response(headers={"Retry-After": "3"})
    assert HttpTransport._get_rate_limit_reset(resp) == 3.0


def test_rate_limit_reset_absent():
    assert HttpTransport._get_rate_limit_reset(make_response()) is None


@patch("tradebot.http_transport.requests.Session.request")
def test_success_returns_json(mock_request):
    mock_request.return_value = make_response(text='{"id": "o1"}', json_body={"id": "o1"})

    result = make_transport().post("/orders", body={"side": "buy"})

    assert result == {"id": "o1"}
    args, kwargs = mock_request.call_args
    assert args == ("POST", "https://api.example.com/orders")
    assert kwargs["timeout"] == 5
    assert kwargs["data"] == '{"side": "buy"}'


@patch("tradebot.http_transport.requests.Session.request")
def test_form_encoded_body(mock_request):
    mock_request.return_value = make_response(text="", json_body={})

    assert make_transport().post("orders", body={"pair": "XBTUSD", "type": "buy"}, form_encoded=True) is None
    assert mock_request.call_args[1]["data"] == "pair=XBTUSD&type=buy"


@pytest.mark.parametrize(
    "exc",
    [requests.exceptions.ConnectionError("reset"), requests.exceptions.ReadTimeout("slow")],
)
@patch("tradebot.http_transport.requests.Session.request")
def test_connection_problems_are_transient(mock_request, exc):
    mock_request.side_effect = exc

    with pytest.raises(ExchangeNetworkError):
        make_transport().get("/ticker")


@patch("tradebot.http_transport.requests.Session.request")
def test_other_request_exceptions_are_fatal(mock_request):
    mock_request.side_effect = requests.exceptions.InvalidURL("bad url")

    with pytest.raises(TradingApiError) as excinfo:
        make_transport().get("/ticker")
    assert not isinstance(excinfo.value, ExchangeNetworkError)


@patch("tradebot.http_transport.requests.Session.request")
def test_configured_status_codes_are_transient(mock_request):
    mock_request.return_value = make_response(status_code=503, text="Service Unavailable")

    with pytest.raises(ExchangeNetworkError) as excinfo:
        make_transport().get("/balance")
    assert excinfo.value.status_code == 503


@patch("tradebot.http_transport.requests.Session.request")
def test_unlisted_error_status_is_fatal(mock_request):
    mock_request.return_value = make_response(status_code=401, text="Invalid API key")

    with pytest.raises(TradingApiError) as excinfo:
        make_transport().get("/balance")
    assert not isinstance(excinfo.value, ExchangeNetworkError)
    assert excinfo.value.status_code == 401


@patch("tradebot.http_transport.requests.Session.request")
def test_malformed_json_is_fatal(mock_request):
    mock_request.return_value = make_response(text="<html>oops</html>")

    with pytest.raises(TradingApiError, match="Malformed JSON"):
        make_transport().get("/balance")


@patch("tradebot.http_transport.time.sleep")
@patch("tradebot.http_transport.requests.Session.request")
def test_rate_limit_retries_then_succeeds(mock_request, mock_sleep):
    mock_request.side_effect = [
        make_response(status_code=429, text="slow down", headers={"Retry-After": "0.5"}),
        make_response(text='{"id": "o1"}', json_body={"id": "o1"}),
    ]

    assert make_transport().get("/orders") == {"id": "o1"}
    mock_sleep.assert_called_once_with(0.5)


@patch("tradebot.http_transport.time.sleep")
@patch("tradebot.http_transport.requests.Session.request")
def test_rate_limit_exhausted_is_transient(mock_request, mock_sleep):
    mock_request.return_value = make_response(status_code=429, text="slow down")

    with pytest.raises(ExchangeNetworkError, match="max backoff attempts"):
        make_transport(max_rate_limit_attempts=2).get("/orders")
    assert mock_sleep.call_count == 2
    assert mock_request.call_count == 3


def test_hmac_signature_hex_and_base64():
    assert hmac_signature("key", "message") == (
        "6e9ef29b75fffc5b7abae527d58fdadb2fe42e7219011976917343065f58ed4a"
    )
    assert hmac_signature("a2V5", "message", secret_is_base64=True, output="base64") == (
        "bp7ym3X//Ft6uuUn1Y/a2y/kLnIZARl2kXNDBl9Y7Uo="
    )


def test_hmac_signature_rejects_bad_base64():
    with pytest.raises(TradingApiError):
        hmac_signature("not base64!", "message", secret_is_base64=True)


def test_build_query_skips_none():
    assert build_query({"a": 1, "b": None, "c": "x y"}) == "a=1&c=x+y"
    assert build_query(None) == ""


def test_require_fields():
    assert require_fields({"id": 1, "price": 2}, ["id"], "order") == {"id": 1, "price": 2}
    with pytest.raises(TradingApiError, match="missing fields"):
        require_fields({"id": 1}, ["id", "price"], "order")
    with pytest.raises(TradingApiError, match="Unexpected response"):
        require_fields(["not", "a", "dict"], ["id"], "order")
