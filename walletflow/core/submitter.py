"""
Purchase submission and outcome reconciliation.

submit() returns one of PurchaseSuccess / PurchaseFailure / AmbiguousPartial.
Business rejections (success=false, or an HTTP error carrying a message) are
Failures; transport, auth and malformed-response errors propagate as ApiError
so the wizard can pause without losing the draft.
"""
import re
from typing import Any, Dict, Optional, Set, Tuple

from walletflow.backend.errors import ApiError, ServerError
from walletflow.core.artifacts import find_artifacts
from walletflow.core.errors import SubmissionInProgress
from walletflow.core.results import (
    AmbiguousPartial,
    PIN_FORMAT_INVALID,
    PIN_REJECTED,
    PURCHASE_REJECTED,
    PurchaseFailure,
    PurchaseResult,
    PurchaseSuccess,
)
from walletflow.core.validation import rule_for
from walletflow.store.models import (
    AIRTIME,
    BETTING,
    CABLE,
    DATA,
    ELECTRICITY,
    PRINT_RECHARGE,
    TransactionDraft,
)
from walletflow.observability.logging import log

PIN_MESSAGE_RE = re.compile(r"\bpin\b|\blocked\b", re.I)


def is_pin_related(message: Optional[str]) -> bool:
    return bool(message) and PIN_MESSAGE_RE.search(message) is not None


def build_purchase_request(draft: TransactionDraft, pin: str) -> Tuple[str, Dict[str, Any]]:
    """Map a draft onto (endpoint, body) for its category."""
    rule = rule_for(draft.category)
    category = draft.category

    if category == AIRTIME:
        body = {"type": rule.payload_type, "network": draft.provider, "phone": draft.recipient,
                "amount": draft.amount, "pin": pin}
    elif category == DATA:
        body = {
            "type": rule.payload_type,
            "network": draft.provider,
            "phone": draft.recipient,
            "planId": draft.planId,
            "plan": draft.planName,
            "amount": draft.amount,
            "pin": pin,
        }
    elif category == CABLE:
        body = {
            "type": rule.payload_type,
            "operator": draft.provider,
            "packageId": draft.planId,
            "smartCardNumber": draft.recipient,
            "phone": draft.contactPhone,
            "customerName": draft.recipientName,
            "amount": draft.amount,
            "pin": pin,
        }
    elif category == ELECTRICITY:
        body = {
            "type": rule.payload_type,
            "provider": draft.provider,
            "meterType": draft.meterType,
            "meterNumber": draft.recipient,
            "phone": draft.contactPhone,
            "customerName": draft.recipientName,
            "amount": draft.amount,
            "pin": pin,
        }
    elif category == BETTING:
        body = {
            "type": rule.payload_type,
            "provider": draft.provider,
            "customerId": draft.recipient,
            "customerName": draft.recipientName,
            "amount": draft.amount,
            "pin": pin,
        }
    elif category == PRINT_RECHARGE:
        body = {
            "network": draft.provider,
            "type": draft.cardType,
            "denomination": draft.denomination,
            "quantity": draft.quantity,
            "pin": pin,
        }
    else:  # pragma: no cover - rule_for already rejected it
        raise ValueError(category)
    return rule.endpoint, body


class PurchaseSubmitter:
    def __init__(self, client, pin_gate, balance_cache, recents, drafts, reconciler):
        self.client = client
        self.pin_gate = pin_gate
        self.balance_cache = balance_cache
        self.recents = recents
        self.drafts = drafts
        self.reconciler = reconciler
        self._in_flight: Set[str] = set()

    def is_submitting(self, draft: TransactionDraft) -> bool:
        return draft.draftId in self._in_flight

    async def submit(self, draft: TransactionDraft, pin: str) -> PurchaseResult:
        # Checked before the first suspension point: a concurrent second call never reaches the network
        if draft.draftId in self._in_flight:
            raise SubmissionInProgress("A purchase for this draft is already in progress")

        reason = self.pin_gate.rejection_reason(pin)
        if reason is not None:
            message = "PIN must be 4 digits" if reason == PIN_FORMAT_INVALID else self.pin_gate.closed_message()
            return PurchaseFailure(message=message, pinRelated=True, code=reason)

        self._in_flight.add(draft.draftId)
        try:
            return await self._submit(draft, pin)
        finally:
            self._in_flight.discard(draft.draftId)

    async def _submit(self, draft: TransactionDraft, pin: str) -> PurchaseResult:
        endpoint, body = build_purchase_request(draft, pin)
        try:
            log(
                event="purchase_submitted",
                draftId=draft.draftId,
                category=draft.category,
                endpoint=endpoint,
                amount=draft.total_amount(),
            )
        except Exception:
            pass

        try:
            resp = await self.client.submit_purchase(endpoint, body)
        except ServerError as e:
            return self._reconcile_error(draft, e)

        if resp.success is True:
            return self._on_success(draft, resp)
        if resp.success is None:
            # Neither success nor failure reported; generated cards still mean the charge happened
            raw = resp.model_dump()
            artifacts = find_artifacts(raw)
            if artifacts:
                return self._ambiguous(
                    draft, raw, artifacts, status=None, message=resp.message or "Unexpected response format"
                )
        return self._failure(draft, resp.message or "Purchase failed", status=None)

    def _on_success(self, draft: TransactionDraft, resp) -> PurchaseSuccess:
        if draft.recipient:
            self.recents.remember(draft.recipient, draft.category, draft.recipientName)

        snapshot = None
        if resp.newBalance is not None:
            snapshot = self.balance_cache.apply_purchase_balance(resp.newBalance)
        else:
            self.reconciler.schedule("purchase_without_balance")

        self.drafts.clear(draft.category)

        raw = resp.model_dump()
        artifacts = find_artifacts(raw) if draft.category == PRINT_RECHARGE else []
        try:
            log(
                event="purchase_succeeded",
                draftId=draft.draftId,
                category=draft.category,
                newTotal=snapshot.totalAmount if snapshot else None,
                artifactCount=len(artifacts),
            )
        except Exception:
            pass
        return PurchaseSuccess(
            transaction=resp.transaction or {},
            newBalance=snapshot,
            message=resp.message or "",
            artifacts=artifacts,
        )

    def _failure(self, draft: TransactionDraft, message: str, status: Optional[int]) -> PurchaseFailure:
        pin_related = is_pin_related(message)
        if pin_related:
            self.pin_gate.note_rejection(message)
        try:
            log(
                event="purchase_failed",
                draftId=draft.draftId,
                category=draft.category,
                status=status,
                pinRelated=pin_related,
                error=message[:200],
            )
        except Exception:
            pass
        return PurchaseFailure(
            message=message,
            pinRelated=pin_related,
            code=PIN_REJECTED if pin_related else PURCHASE_REJECTED,
            status=status,
        )

    def _reconcile_error(self, draft: TransactionDraft, err: ApiError) -> PurchaseResult:
        payload = err.response_data if isinstance(err.response_data, dict) else None
        artifacts = find_artifacts(payload) if payload is not None else []
        if not artifacts:
            return self._failure(draft, err.message, status=err.status)
        return self._ambiguous(draft, payload, artifacts, status=err.status, message=err.message)

    def _ambiguous(self, draft, payload, artifacts, *, status, message) -> AmbiguousPartial:
        # The cards exist server-side even though the outcome is unclear; the draft is kept
        # so the user can compare it against history.
        self.reconciler.schedule("ambiguous_partial")
        try:
            log(
                event="purchase_ambiguous_partial",
                draftId=draft.draftId,
                category=draft.category,
                status=status,
                artifactCount=len(artifacts),
                error=(message or "")[:200],
            )
        except Exception:
            pass
        return AmbiguousPartial(extractedArtifacts=artifacts, rawPayload=payload)
