"""
PIN-gated purchase wizard: DRAFT -> REVIEW -> PIN_ENTRY -> RESULT.

One wizard owns one draft. Validation and PIN problems keep the current state
with an inline error; auth and network errors are re-raised with the draft
untouched so the caller can prompt and resume.
"""
import uuid
from dataclasses import fields
from typing import Optional

from walletflow.backend.errors import ApiError
from walletflow.core.errors import InvalidTransition, SubmissionInProgress, ValidationError
from walletflow.core.results import FAILURE, PurchaseFailure, PurchaseResult
from walletflow.core.state_machine import (
    BACKWARD,
    DRAFT,
    PIN_ENTRY,
    RESULT,
    REVIEW,
    WizardState,
    can_go_back,
)
from walletflow.core.validation import check_affordable, check_draft, coerce_draft_changes
from walletflow.store.models import PinStatus, TransactionDraft
from walletflow.observability.logging import log

_DRAFT_FIELDS = {f.name for f in fields(TransactionDraft)} - {"category", "draftId"}


class TransactionWizard:
    def __init__(self, draft: TransactionDraft, *, balance_cache, pin_gate, submitter, drafts, wizard_id=None):
        self.wizard_id = wizard_id or uuid.uuid4().hex
        self.draft = draft
        self.balance_cache = balance_cache
        self.pin_gate = pin_gate
        self.submitter = submitter
        self.drafts = drafts
        self.ws = WizardState()
        self.pin_status: Optional[PinStatus] = None

    @property
    def state(self) -> str:
        return self.ws.state

    @property
    def is_submitting(self) -> bool:
        return self.ws.submitting

    def _move(self, new_state: str) -> None:
        old = self.ws.state
        self.ws.state = new_state
        try:
            log(
                event="wizard_transition",
                wizardId=self.wizard_id,
                category=self.draft.category,
                fromState=old,
                toState=new_state,
            )
        except Exception:
            pass

    def _require(self, expected: str, action: str) -> None:
        if self.ws.submitting:
            raise SubmissionInProgress(f"Cannot {action} while a purchase is being submitted")
        if self.ws.state != expected:
            try:
                log(
                    event="wizard_transition_rejected",
                    wizardId=self.wizard_id,
                    action=action,
                    state=self.ws.state,
                )
            except Exception:
                pass
            raise InvalidTransition(f"Cannot {action} from {self.ws.state}")

    def update_draft(self, **changes) -> TransactionDraft:
        self._require(DRAFT, "edit draft")
        unknown = sorted(set(changes) - _DRAFT_FIELDS)
        if unknown:
            raise ValidationError({k: "Unknown field" for k in unknown})
        for name, value in coerce_draft_changes(changes).items():
            setattr(self.draft, name, value)
        self.ws.error = None
        self.drafts.save(self.draft)
        return self.draft

    async def to_review(self):
        self._require(DRAFT, "review")
        try:
            check_draft(self.draft)
        except ValidationError as e:
            self.ws.error = {"kind": e.kind, "errors": e.errors}
            raise

        # Always refetch: the balance may have moved since the form was filled in
        snapshot = await self.balance_cache.refresh()
        try:
            check_affordable(self.draft, self.balance_cache.total)
        except ValidationError as e:
            self.ws.error = {"kind": e.kind, "errors": e.errors}
            raise

        self.ws.error = None
        self._move(REVIEW)
        return snapshot

    async def to_pin_entry(self) -> PinStatus:
        self._require(REVIEW, "enter PIN")
        try:
            check_affordable(self.draft, self.balance_cache.total)
        except ValidationError as e:
            self.ws.error = {"kind": e.kind, "errors": e.errors}
            raise

        self.ws.result = None
        self.ws.error = None
        # Lockouts may have lapsed or started since the last view
        self.pin_status = await self.pin_gate.status()
        self._move(PIN_ENTRY)
        return self.pin_status

    async def submit(self, pin: str) -> PurchaseResult:
        self._require(PIN_ENTRY, "submit")
        self.ws.submitting = True
        self.ws.error = None
        try:
            result = await self.submitter.submit(self.draft, pin)
        except ApiError as e:
            self.ws.error = e.to_dict()
            raise
        finally:
            self.ws.submitting = False

        self.ws.result = result
        if isinstance(result, PurchaseFailure) and result.pinRelated:
            # Inline PIN error; the refreshed attempts counter lives on the gate
            self.pin_status = self.pin_gate.last_status
            return result
        if result.outcome == FAILURE:
            self.ws.error = {"kind": result.code, "message": result.message}
        self._move(RESULT)
        return result

    def back(self) -> str:
        if self.ws.submitting:
            raise SubmissionInProgress("Cannot go back while a purchase is being submitted")
        target = BACKWARD.get(self.ws.state)
        if target is None:
            raise InvalidTransition(f"Cannot go back from {self.ws.state}")
        self.ws.error = None
        self.ws.result = None
        self._move(target)
        return target

    def start_over(self) -> TransactionDraft:
        """Begin a new transaction in the same category after a result."""
        self._require(RESULT, "start over")
        self.draft = TransactionDraft(category=self.draft.category)
        self.ws = WizardState()
        self.pin_status = None
        self._move(DRAFT)
        return self.draft

    def snapshot(self) -> dict:
        return {
            "wizardId": self.wizard_id,
            "draft": self.draft.to_dict(),
            "wizard": self.ws.to_dict(),
            "canGoBack": can_go_back(self.ws),
            "pinStatus": self.pin_status.to_dict() if self.pin_status else None,
            "balance": self.balance_cache.current.to_dict() if self.balance_cache.current else None,
        }
