import inspect
from typing import Optional

from walletflow.store.models import (
    AIRTIME,
    BETTING,
    CABLE,
    DATA,
    ELECTRICITY,
    TransactionDraft,
)
from walletflow.backend.schemas import parse_amount
from walletflow.observability.logging import log

PREFIX = "draft:"

# Per-screen form-state keys written by earlier app versions
LEGACY_KEYS = {
    AIRTIME: "airtimeFormState",
    DATA: "dataFormState",
    CABLE: "cableTvFormState",
    ELECTRICITY: "electricityFormState",
    BETTING: "bettingFormState",
}

# Screens where `phone` is only the notification number, not the recipient
_CONTACT_PHONE_CATEGORIES = {CABLE, ELECTRICITY}


def _key(category: str) -> str:
    return f"{PREFIX}{category}"


def _migrate_draft_data(category: str, data: dict) -> dict:
    """
    Map a legacy form-state record onto TransactionDraft field names.
    Canonical records pass through unchanged.
    """
    out = dict(data)
    renamed = 0

    def move(old: str, new: str):
        nonlocal renamed
        if old in out:
            val = out.pop(old)
            if val not in (None, "") and out.get(new) in (None, ""):
                out[new] = val
            renamed += 1

    if category in _CONTACT_PHONE_CATEGORIES:
        move("phone", "contactPhone")
    else:
        move("phone", "recipient")
    for old in ("selectedNetwork", "selectedOperator", "selectedProvider"):
        move(old, "provider")
    for old in ("smartCardNumber", "meterNumber", "customerId"):
        move(old, "recipient")
    move("customerName", "recipientName")
    move("selectedMeterType", "meterType")

    for old in ("selectedPlan", "selectedPackage"):
        plan = out.pop(old, None)
        if isinstance(plan, dict):
            renamed += 1
            out.setdefault("planId", plan.get("id"))
            out.setdefault("planName", plan.get("name"))
            if not out.get("amount"):
                out["amount"] = plan.get("amount") or plan.get("price")

    if "amount" in out:
        out["amount"] = parse_amount(out.get("amount"))
    out["category"] = category

    if renamed:
        try:
            log(event="draft_migrated", category=category, renamedFields=int(renamed))
        except Exception:
            pass
    return out


def _filter_draft_kwargs(data: dict) -> dict:
    """
    Drop unknown fields so TransactionDraft(**kwargs) never explodes
    """
    allowed = set(inspect.signature(TransactionDraft).parameters.keys())
    return {k: v for k, v in data.items() if k in allowed}


class DraftPersistence:
    def __init__(self, storage):
        self.storage = storage

    def save(self, draft: TransactionDraft) -> None:
        self.storage.set_json(_key(draft.category), draft.to_dict())

    def load(self, category: str) -> Optional[TransactionDraft]:
        data = self.storage.get_json(_key(category))
        if not isinstance(data, dict):
            legacy_key = LEGACY_KEYS.get(category)
            data = self.storage.get_json(legacy_key) if legacy_key else None
        if not isinstance(data, dict):
            return None

        data = _migrate_draft_data(category, data)
        data = _filter_draft_kwargs(data)
        if data.get("draftId") is None:
            data.pop("draftId", None)
        return TransactionDraft(**data)

    def clear(self, category: str) -> None:
        self.storage.delete(_key(category))
        legacy_key = LEGACY_KEYS.get(category)
        if legacy_key:
            self.storage.delete(legacy_key)
