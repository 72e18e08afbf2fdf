"""
Category-specific structural validation of purchase drafts.

Rules mirror what the purchase screens and the /purchase endpoint enforce, so a
draft that passes here is only rejected server-side for business reasons
(balance, PIN, upstream provider).
"""
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from walletflow.store.models import (
    AIRTIME,
    BETTING,
    CABLE,
    DATA,
    ELECTRICITY,
    PRINT_RECHARGE,
    TransactionDraft,
)
from walletflow.core.errors import ValidationError
from walletflow.backend.client import PURCHASE_ENDPOINT, RECHARGE_ENDPOINT

PHONE_RE = re.compile(r"^0[789][01]\d{8}$")
DIGITS_RE = re.compile(r"^\d+$")

METER_TYPES = ("prepaid", "postpaid")
RECHARGE_DENOMINATIONS = (100, 200, 500, 1000, 1500, 2000)
RECHARGE_MAX_QUANTITY = 100


@dataclass(frozen=True)
class CategoryRule:
    payload_type: str
    endpoint: str
    min_amount: float
    max_amount: float


CATEGORY_RULES: Dict[str, CategoryRule] = {
    AIRTIME: CategoryRule("airtime", PURCHASE_ENDPOINT, 50, 100_000),
    DATA: CategoryRule("data", PURCHASE_ENDPOINT, 50, 500_000),
    CABLE: CategoryRule("cable_tv", PURCHASE_ENDPOINT, 100, 500_000),
    ELECTRICITY: CategoryRule("electricity", PURCHASE_ENDPOINT, 100, 100_000),
    BETTING: CategoryRule("fund_betting", PURCHASE_ENDPOINT, 100, 500_000),
    PRINT_RECHARGE: CategoryRule("print_recharge", RECHARGE_ENDPOINT, 100, 2000 * RECHARGE_MAX_QUANTITY),
}


def rule_for(category: str) -> CategoryRule:
    try:
        return CATEGORY_RULES[category]
    except KeyError:
        raise ValidationError({"category": f"Unsupported category: {category}"}) from None


def amount_bounds(category: str) -> Tuple[float, float]:
    rule = rule_for(category)
    return rule.min_amount, rule.max_amount


def is_valid_phone(phone: Optional[str]) -> bool:
    return isinstance(phone, str) and bool(phone) and PHONE_RE.match(phone) is not None


def normalize_phone(number: Optional[str]) -> Optional[str]:
    """Normalize a picked contact number to the local 11-digit form, or None."""
    digits = re.sub(r"\D", "", number or "")
    if len(digits) == 10:
        return digits if digits.startswith("0") else "0" + digits
    if len(digits) == 11 and digits.startswith("0"):
        return digits
    if len(digits) == 13 and digits.startswith("234"):
        return "0" + digits[3:]
    return None


def _long_digits(value: Optional[str], min_len: int = 10) -> bool:
    return isinstance(value, str) and bool(value) and len(value) >= min_len and DIGITS_RE.match(value) is not None


_TEXT_FIELDS = (
    "provider",
    "recipient",
    "planId",
    "planName",
    "recipientName",
    "contactPhone",
    "meterType",
    "cardType",
)
_INT_FIELDS = ("denomination", "quantity")


def _to_amount(value) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    amount = float(value)
    if math.isnan(amount) or math.isinf(amount):
        raise ValueError(value)
    return amount


def coerce_draft_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize raw draft edits (e.g. JSON from the driver surface) to the draft's
    field types. Raises ValidationError naming every field that cannot be coerced.
    """
    out: Dict[str, Any] = {}
    errors: Dict[str, str] = {}
    for name, value in changes.items():
        if name == "amount":
            try:
                out[name] = _to_amount(value)
            except (TypeError, ValueError):
                errors[name] = "Enter a valid amount"
        elif name in _INT_FIELDS:
            if value is None:
                out[name] = None
                continue
            try:
                if isinstance(value, bool):
                    raise ValueError(value)
                number = float(value)
                if not number.is_integer():
                    raise ValueError(value)
                out[name] = int(number)
            except (TypeError, ValueError, OverflowError):
                errors[name] = "Must be a whole number"
        elif name in _TEXT_FIELDS:
            if value is None or isinstance(value, str):
                out[name] = value.strip() if isinstance(value, str) else None
            elif isinstance(value, int) and not isinstance(value, bool):
                out[name] = str(value)
            else:
                errors[name] = "Must be text"
        else:
            out[name] = value
    if errors:
        raise ValidationError(errors)
    return out


def _text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _draft_amount(draft: TransactionDraft) -> Optional[float]:
    try:
        return draft.total_amount()
    except (TypeError, ValueError):
        return None


def validate_draft(draft: TransactionDraft) -> Dict[str, str]:
    """Return {field: message} for every failing field; empty means valid."""
    if draft.category not in CATEGORY_RULES:
        return {"category": f"Unsupported category: {draft.category}"}

    errors: Dict[str, str] = {}
    category = draft.category

    if not draft.provider:
        errors["provider"] = "Select a provider"

    if category in (AIRTIME, DATA):
        if not is_valid_phone(draft.recipient):
            errors["recipient"] = "Enter valid 11-digit number starting with 070, 080, 081, or 090"
    elif category == CABLE:
        if not _long_digits(draft.recipient):
            errors["recipient"] = "Smart card number must be at least 10 digits"
    elif category == ELECTRICITY:
        if not _long_digits(draft.recipient):
            errors["recipient"] = "Meter number must be at least 10 digits"
        if draft.meterType not in METER_TYPES:
            errors["meterType"] = "Select prepaid or postpaid"
    elif category == BETTING:
        if len(_text(draft.recipient)) < 3:
            errors["recipient"] = "Customer ID must be at least 3 characters"

    if category in (CABLE, ELECTRICITY):
        if not is_valid_phone(draft.contactPhone):
            errors["contactPhone"] = "Enter a valid phone number for notifications"
        if not _text(draft.recipientName):
            errors["recipientName"] = "Verify the customer name before continuing"

    if category in (DATA, CABLE) and not draft.planId:
        errors["planId"] = "Select a plan" if category == DATA else "Select a package"

    if category == PRINT_RECHARGE:
        if draft.denomination not in RECHARGE_DENOMINATIONS:
            errors["denomination"] = "Invalid denomination"
        if not isinstance(draft.quantity, int) or not 1 <= draft.quantity <= RECHARGE_MAX_QUANTITY:
            errors["quantity"] = f"Quantity must be between 1 and {RECHARGE_MAX_QUANTITY}"
        if not draft.cardType:
            errors["cardType"] = "Select a card type"

    if "denomination" not in errors and "quantity" not in errors:
        low, high = amount_bounds(category)
        amount = _draft_amount(draft)
        if amount is None:
            errors["amount"] = "Enter a valid amount"
        elif not low <= amount <= high:
            errors["amount"] = f"Amount must be between {low:,.0f} and {high:,.0f}"

    return errors


def check_draft(draft: TransactionDraft) -> None:
    errors = validate_draft(draft)
    if errors:
        raise ValidationError(errors)


def check_affordable(draft: TransactionDraft, balance_total: Optional[float]) -> None:
    """A missing balance blocks the transition; the UI renders a no-balance state."""
    if balance_total is None:
        raise ValidationError({"amount": "Balance unavailable. Please refresh and try again"})
    amount = _draft_amount(draft)
    if amount is None:
        raise ValidationError({"amount": "Enter a valid amount"})
    if amount > balance_total:
        raise ValidationError({"amount": "Insufficient balance"})
