import asyncio
import json

import httpx
import pytest

from walletflow.backend.schemas import NewBalance


def _balance(amount, last_updated="2024-01-01T10:00:00Z"):
    return {"success": True, "balance": {"amount": amount, "currency": "NGN", "lastUpdated": last_updated}}


def test_refresh_normalizes_and_persists(engine, backend, storage):
    backend.on("GET", "/balance", _balance("1,500.50"))

    snap = asyncio.run(engine.balance.refresh())

    assert snap.mainAmount == 1500.5
    assert snap.totalAmount == snap.mainAmount
    assert snap.bonusAmount == 0.0
    assert snap.lastUpdatedAt == "2024-01-01T10:00:00Z"
    assert engine.balance.total == 1500.5
    assert json.loads(storage.get("userBalance"))["totalAmount"] == 1500.5


@pytest.mark.parametrize("raw", ["abc", None, "NaN", "inf"])
def test_unparseable_amount_becomes_zero(engine, backend, raw):
    backend.on("GET", "/balance", _balance(raw))

    snap = asyncio.run(engine.balance.refresh())
    assert snap.totalAmount == 0.0


def test_missing_last_updated_uses_clock(engine, backend):
    backend.on("GET", "/balance", {"success": True, "balance": {"amount": 10}})

    snap = asyncio.run(engine.balance.refresh())
    assert snap.lastUpdatedAt == "2023-11-14T22:13:20Z"


def test_network_failure_returns_persisted_snapshot_unchanged(engine, backend, storage):
    backend.on("GET", "/balance", _balance(800, "2024-02-02T08:00:00Z"))
    asyncio.run(engine.balance.refresh())
    stored = storage.get("userBalance")

    backend.on("GET", "/balance", httpx.ConnectError("offline"))
    first = asyncio.run(engine.balance.refresh())
    second = asyncio.run(engine.balance.refresh())

    assert first == second
    assert first.totalAmount == 800
    assert first.lastUpdatedAt == "2024-02-02T08:00:00Z"
    assert storage.get("userBalance") == stored
    assert engine.balance.last_error.kind == "network_unavailable"


def test_failure_without_snapshot_returns_none(engine, backend):
    backend.on("GET", "/balance", httpx.Response(500, json={"message": "down"}))

    assert asyncio.run(engine.balance.refresh()) is None
    assert engine.balance.total is None


def test_success_false_is_treated_as_failure(engine, backend, storage):
    storage.set_json("userBalance", {"mainAmount": 42, "totalAmount": 42, "currency": "NGN", "lastUpdatedAt": "x"})
    backend.on("GET", "/balance", {"success": False, "message": "User not found"})

    snap = asyncio.run(engine.balance.refresh())
    assert snap.totalAmount == 42


def test_corrupt_persisted_snapshot_reads_as_missing(engine, backend, storage):
    storage.set("userBalance", "{not json")
    backend.on("GET", "/balance", httpx.ConnectError("offline"))

    assert asyncio.run(engine.balance.refresh()) is None


@pytest.mark.parametrize(
    "new_balance,expected",
    [
        ({"amount": 300, "totalBalance": 900}, 300),
        ({"totalBalance": 900, "mainBalance": 100}, 900),
        ({"mainBalance": "1,100"}, 1100),
        ({"amount": 0, "totalBalance": 700}, 700),
        ({}, 0),
    ],
)
def test_purchase_balance_field_priority(engine, storage, new_balance, expected):
    snap = engine.balance.apply_purchase_balance(NewBalance.model_validate(new_balance))

    assert snap.totalAmount == expected
    assert engine.balance.total == expected
    assert json.loads(storage.get("userBalance"))["totalAmount"] == expected


@pytest.mark.parametrize("exc", [httpx.DecodingError("bad gzip"), httpx.TooManyRedirects("loop"), httpx.InvalidURL("bad")])
def test_non_transport_http_errors_fall_back(engine, backend, storage, exc):
    storage.set_json("userBalance", {"mainAmount": 75, "totalAmount": 75, "currency": "NGN", "lastUpdatedAt": "x"})
    backend.on("GET", "/balance", exc)

    snap = asyncio.run(engine.balance.refresh())
    assert snap.totalAmount == 75
