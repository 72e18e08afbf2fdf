import asyncio
import json

import httpx
import pytest

from walletflow.backend.credentials import NoCredential
from walletflow.backend.errors import (
    ApiError,
    AuthRequired,
    MalformedResponse,
    NetworkUnavailable,
    RequestTimeout,
    ServerError,
    SessionExpired,
)


def test_sends_bearer_and_json_headers(engine, backend, storage):
    backend.on("GET", "/balance", {"success": True, "balance": {"amount": 10}})

    asyncio.run(engine.client.request("/balance"))

    _, _, request = backend.calls[0]
    assert request.headers["Authorization"] == f"Bearer {storage.get('userToken')}"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Accept"] == "application/json"


def test_post_sends_json_payload(engine, backend):
    backend.on("POST", "/purchase", {"success": True})

    asyncio.run(engine.client.request("/purchase", method="POST", payload={"type": "airtime", "amount": 100}))

    _, _, request = backend.calls[0]
    assert json.loads(request.content) == {"type": "airtime", "amount": 100}


def test_missing_credential_never_touches_network(engine, backend, storage):
    storage.delete("userToken")
    backend.on("GET", "/balance", {"success": True})

    with pytest.raises(AuthRequired):
        asyncio.run(engine.client.request("/balance"))
    assert backend.calls == []


def test_401_purges_credential_and_is_not_retried(engine, backend, storage):
    backend.on("GET", "/balance", httpx.Response(401, json={"message": "whatever"}))

    with pytest.raises(SessionExpired) as exc:
        asyncio.run(engine.client.request("/balance"))

    assert exc.value.status == 401
    assert backend.count("GET", "/balance") == 1
    assert storage.get("userToken") is None
    with pytest.raises(NoCredential):
        engine.credentials.resolve()


def test_401_with_unparseable_body_is_still_session_expired(engine, backend):
    backend.on("GET", "/balance", httpx.Response(401, text="<html>nope</html>"))

    with pytest.raises(SessionExpired):
        asyncio.run(engine.client.request("/balance"))


def test_non_json_body_is_malformed_with_status(engine, backend):
    backend.on("GET", "/balance", httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(MalformedResponse) as exc:
        asyncio.run(engine.client.request("/balance"))
    assert exc.value.status == 200
    assert "Status: 200" in exc.value.message


def test_empty_body_parses_as_empty_object(engine, backend):
    backend.on("GET", "/purchase/history", httpx.Response(204))

    assert asyncio.run(engine.client.request("/purchase/history")) == {}


def test_server_error_prefers_body_message(engine, backend):
    backend.on("GET", "/balance", httpx.Response(500, json={"message": "Database unavailable"}))

    with pytest.raises(ServerError) as exc:
        asyncio.run(engine.client.request("/balance"))
    assert exc.value.message == "Database unavailable"
    assert exc.value.status == 500
    # Only purchase-style endpoints keep the body
    assert exc.value.response_data is None


def test_server_error_falls_back_to_error_field_then_status_line(engine, backend):
    backend.on(
        "GET",
        "/balance",
        httpx.Response(400, json={"error": "Bad input"}),
        httpx.Response(502),
    )

    with pytest.raises(ServerError) as first:
        asyncio.run(engine.client.request("/balance"))
    with pytest.raises(ServerError) as second:
        asyncio.run(engine.client.request("/balance"))

    assert first.value.message == "Bad input"
    assert second.value.message == "HTTP 502: Bad Gateway"


@pytest.mark.parametrize("endpoint", ["/purchase", "/recharge/generate"])
def test_purchase_error_body_is_preserved(engine, backend, endpoint):
    body = {"success": False, "message": "Failed", "pins": [{"pin": "1111", "serial": "A1"}]}
    backend.on("POST", endpoint, httpx.Response(500, json=body))

    with pytest.raises(ServerError) as exc:
        asyncio.run(engine.client.request(endpoint, method="POST", payload={}))
    assert exc.value.response_data == body


def test_server_error_is_not_retried(engine, backend, sleeps):
    backend.on("GET", "/balance", httpx.Response(503, json={"message": "busy"}))

    with pytest.raises(ServerError):
        asyncio.run(engine.client.request("/balance"))
    assert backend.count("GET", "/balance") == 1
    assert sleeps == []


def test_network_failure_retried_twice_with_linear_backoff(engine, backend, sleeps):
    backend.on("GET", "/balance", httpx.ConnectError("unreachable"))

    with pytest.raises(NetworkUnavailable) as exc:
        asyncio.run(engine.client.request("/balance"))

    assert not isinstance(exc.value, RequestTimeout)
    assert backend.count("GET", "/balance") == 3
    assert sleeps == [1.0, 2.0]


def test_timeout_then_success_recovers(engine, backend, sleeps):
    backend.on(
        "GET",
        "/balance",
        httpx.ReadTimeout("slow"),
        {"success": True, "balance": {"amount": 5}},
    )

    data = asyncio.run(engine.client.request("/balance"))

    assert data["balance"]["amount"] == 5
    assert sleeps == [1.0]


def test_repeated_timeouts_surface_as_timeout(engine, backend):
    backend.on("GET", "/balance", httpx.ReadTimeout("slow"))

    with pytest.raises(RequestTimeout) as exc:
        asyncio.run(engine.client.request("/balance"))
    assert exc.value.is_transient
    assert isinstance(exc.value, NetworkUnavailable)


def test_typed_helper_rejects_non_object_body(engine, backend):
    backend.on("GET", "/balance", httpx.Response(200, json=[1, 2, 3]))

    with pytest.raises(MalformedResponse):
        asyncio.run(engine.client.fetch_balance())


def test_catalog_helpers_build_category_paths(engine, backend):
    backend.on("GET", "/data/plans/mtn", {"success": True, "plans": []})
    backend.on("POST", "/cable/validate-smartcard", {"success": True, "customerName": "ADA"})

    plans = asyncio.run(engine.client.fetch_plans("data", "mtn"))
    check = asyncio.run(engine.client.validate_recipient("cable", "smartcard", {"smartCardNumber": "1234567890"}))

    assert plans == {"success": True, "plans": []}
    assert check["customerName"] == "ADA"


def test_undecodable_response_is_malformed_and_not_retried(engine, backend, sleeps):
    backend.on("GET", "/balance", httpx.DecodingError("bad gzip stream"))

    with pytest.raises(MalformedResponse):
        asyncio.run(engine.client.request("/balance"))
    assert backend.count("GET", "/balance") == 1
    assert sleeps == []


def test_invalid_url_is_api_error(engine, backend):
    backend.on("GET", "/balance", httpx.InvalidURL("bad host"))

    with pytest.raises(ApiError) as exc:
        asyncio.run(engine.client.request("/balance"))
    assert exc.value.kind == "api_error"
