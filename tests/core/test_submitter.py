import asyncio

import httpx
import pytest

from walletflow.backend.errors import NetworkUnavailable
from walletflow.core.errors import SubmissionInProgress
from walletflow.core.results import AmbiguousPartial, PurchaseFailure, PurchaseSuccess
from walletflow.core.submitter import build_purchase_request, is_pin_related
from walletflow.store.models import BalanceSnapshot, PinStatus, TransactionDraft


def airtime_draft(amount=500):
    return TransactionDraft(category="airtime", provider="mtn", recipient="08031234567", amount=amount)


def test_build_request_airtime():
    endpoint, body = build_purchase_request(airtime_draft(), "1234")
    assert endpoint == "/purchase"
    assert body == {"type": "airtime", "network": "mtn", "phone": "08031234567", "amount": 500, "pin": "1234"}


def test_build_request_electricity():
    draft = TransactionDraft(
        category="electricity",
        provider="ikedc",
        recipient="45012345678",
        amount=2000,
        meterType="prepaid",
        contactPhone="08031234567",
        recipientName="ADA OBI",
    )
    _, body = build_purchase_request(draft, "4321")
    assert body["type"] == "electricity"
    assert body["meterNumber"] == "45012345678"
    assert body["phone"] == "08031234567"
    assert body["customerName"] == "ADA OBI"


def test_build_request_print_recharge():
    draft = TransactionDraft(category="print_recharge", provider="airtel", cardType="airtime", denomination=200, quantity=5)
    endpoint, body = build_purchase_request(draft, "1234")
    assert endpoint == "/recharge/generate"
    assert body == {"network": "airtel", "type": "airtime", "denomination": 200, "quantity": 5, "pin": "1234"}


@pytest.mark.parametrize(
    "message,expected",
    [
        ("Invalid PIN. 2 attempts remaining.", True),
        ("Transaction PIN not set", True),
        ("Account locked. Try again later", True),
        ("insufficient balance", False),
        ("Shipping failed", False),
        (None, False),
    ],
)
def test_pin_related_messages(message, expected):
    assert is_pin_related(message) is expected


def test_success_updates_balance_recents_and_clears_draft(engine, backend, storage):
    draft = airtime_draft(500)
    engine.drafts.save(draft)
    engine.balance.current = BalanceSnapshot(mainAmount=1000, totalAmount=1000)
    backend.on("POST", "/purchase", {
        "success": True,
        "message": "Airtime purchase successful",
        "transaction": {"reference": "TXN1"},
        "newBalance": {"totalBalance": 500},
    })

    result = asyncio.run(engine.submitter.submit(draft, "1234"))

    assert isinstance(result, PurchaseSuccess)
    assert result.transaction == {"reference": "TXN1"}
    assert engine.balance.total == 500
    assert [r.identifier for r in engine.recents.list("airtime")] == ["08031234567"]
    assert engine.drafts.load("airtime") is None
    assert engine.reconciler.pending == 0


def test_success_without_new_balance_schedules_reconciliation(engine, backend, sleeps):
    backend.on("POST", "/purchase", {"success": True})
    backend.on("GET", "/balance", {"success": True, "balance": {"amount": 120}})
    backend.on("GET", "/purchase/history", {"success": True, "transactions": []})

    async def run():
        result = await engine.submitter.submit(airtime_draft(), "1234")
        assert engine.reconciler.pending == 1
        await engine.reconciler.drain()
        return result

    result = asyncio.run(run())

    assert result.newBalance is None
    assert sleeps == [2.0]
    assert engine.balance.total == 120


def test_http_error_without_artifacts_is_plain_failure(engine, backend, storage):
    engine.balance.current = BalanceSnapshot(mainAmount=1000, totalAmount=1000)
    storage.set_json("userBalance", engine.balance.current.to_dict())
    before = storage.get("userBalance")
    backend.on("POST", "/purchase", httpx.Response(500, json={"message": "insufficient balance"}))

    result = asyncio.run(engine.submitter.submit(airtime_draft(), "1234"))

    assert isinstance(result, PurchaseFailure)
    assert result.pinRelated is False
    assert result.status == 500
    assert engine.balance.total == 1000
    assert storage.get("userBalance") == before
    assert engine.reconciler.pending == 0


def test_http_error_with_generated_pins_is_ambiguous_partial(engine, backend):
    body = {"success": False, "message": "Failed to save transaction", "pins": [{"pin": "1111", "serial": "A1"}]}
    backend.on("POST", "/purchase", httpx.Response(500, json=body))
    backend.on("GET", "/balance", {"success": True, "balance": {"amount": 400}})
    backend.on("GET", "/purchase/history", {"success": True, "transactions": [{"reference": "TXN9"}]})

    async def run():
        result = await engine.submitter.submit(airtime_draft(), "1234")
        scheduled = engine.reconciler.pending
        await engine.reconciler.drain()
        return result, scheduled

    result, scheduled = asyncio.run(run())

    assert isinstance(result, AmbiguousPartial)
    assert result.extractedArtifacts == [{"pin": "1111", "serial": "A1"}]
    assert result.rawPayload == body
    assert "verify" in result.message.lower()
    assert scheduled == 1
    assert backend.count("GET", "/balance") == 1
    assert backend.count("GET", "/purchase/history") == 1
    assert engine.reconciler.last_history["transactions"] == [{"reference": "TXN9"}]


def test_explicit_pin_failure_is_pin_related(engine, backend):
    backend.on("POST", "/purchase", {"success": False, "message": "Invalid PIN. 2 attempts remaining."})

    result = asyncio.run(engine.submitter.submit(airtime_draft(), "1234"))

    assert isinstance(result, PurchaseFailure)
    assert result.pinRelated is True
    assert result.code == "pin_rejected"
    assert engine.pin_gate.last_status.attemptsRemaining == 2


def test_http_400_pin_failure_is_pin_related(engine, backend):
    backend.on("POST", "/purchase", httpx.Response(400, json={"success": False, "message": "Invalid PIN. 1 attempts remaining."}))

    result = asyncio.run(engine.submitter.submit(airtime_draft(), "1234"))
    assert result.pinRelated is True
    assert engine.pin_gate.last_status.attemptsRemaining == 1


def test_generic_failure(engine, backend):
    backend.on("POST", "/purchase", {"success": False, "message": "Provider unavailable"})

    result = asyncio.run(engine.submitter.submit(airtime_draft(), "1234"))
    assert result.pinRelated is False
    assert result.code == "purchase_rejected"


def test_malformed_pin_never_reaches_network(engine, backend):
    result = asyncio.run(engine.submitter.submit(airtime_draft(), "12a4"))

    assert isinstance(result, PurchaseFailure)
    assert result.code == "pin_format_invalid"
    assert result.pinRelated is True
    assert backend.calls == []


def test_closed_gate_never_reaches_network(engine, backend):
    engine.pin_gate.last_status = PinStatus(isLocked=True, lockSecondsRemaining=600)

    result = asyncio.run(engine.submitter.submit(airtime_draft(), "1234"))

    assert result.code == "pin_gate_closed"
    assert "10 minutes" in result.message
    assert backend.calls == []


def test_network_failure_propagates_and_keeps_draft(engine, backend):
    draft = airtime_draft()
    engine.drafts.save(draft)
    backend.on("POST", "/purchase", httpx.ConnectError("offline"))

    with pytest.raises(NetworkUnavailable):
        asyncio.run(engine.submitter.submit(draft, "1234"))

    assert engine.drafts.load("airtime").draftId == draft.draftId
    assert not engine.submitter.is_submitting(draft)


def test_concurrent_submit_for_same_draft_is_rejected(engine, backend):
    async def slow_purchase(request):
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={"success": True, "newBalance": {"amount": 10}})

    backend.on("POST", "/purchase", slow_purchase)
    draft = airtime_draft()

    async def run():
        return await asyncio.gather(
            engine.submitter.submit(draft, "1234"),
            engine.submitter.submit(draft, "1234"),
            return_exceptions=True,
        )

    first, second = asyncio.run(run())

    assert isinstance(first, PurchaseSuccess)
    assert isinstance(second, SubmissionInProgress)
    assert backend.count("POST", "/purchase") == 1


def test_print_recharge_success_returns_cards(engine, backend):
    draft = TransactionDraft(category="print_recharge", provider="mtn", cardType="airtime", denomination=100, quantity=2)
    backend.on("POST", "/recharge/generate", {
        "success": True,
        "data": {"pins": [{"pin": "1", "serial": "S1"}, {"pin": "2", "serial": "S2"}]},
        "newBalance": {"amount": 800},
    })

    result = asyncio.run(engine.submitter.submit(draft, "1234"))

    assert isinstance(result, PurchaseSuccess)
    assert len(result.artifacts) == 2
    assert engine.recents.list("print_recharge") == []


def test_recharge_without_success_flag_keeps_generated_cards(engine, backend):
    draft = TransactionDraft(category="print_recharge", provider="mtn", cardType="airtime", denomination=100, quantity=1)
    backend.on("POST", "/recharge/generate", {"pins": [{"pin": "1111", "serial": "A1"}], "newBalance": {"amount": 800}})
    backend.on("GET", "/balance", {"success": True, "balance": {"amount": 800}})
    backend.on("GET", "/purchase/history", {"success": True, "transactions": []})

    async def run():
        result = await engine.submitter.submit(draft, "1234")
        scheduled = engine.reconciler.pending
        await engine.reconciler.drain()
        return result, scheduled

    result, scheduled = asyncio.run(run())

    assert isinstance(result, AmbiguousPartial)
    assert result.extractedArtifacts == [{"pin": "1111", "serial": "A1"}]
    assert scheduled == 1
    assert engine.balance.total == 800


def test_missing_success_flag_without_cards_is_failure(engine, backend):
    backend.on("POST", "/purchase", {"message": "Something odd happened"})

    result = asyncio.run(engine.submitter.submit(airtime_draft(), "1234"))

    assert isinstance(result, PurchaseFailure)
    assert result.message == "Something odd happened"
    assert engine.reconciler.pending == 0
