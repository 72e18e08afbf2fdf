import uuid
from dataclasses import dataclass, field, asdict
from typing import Optional

# Purchase categories
AIRTIME = "airtime"
DATA = "data"
CABLE = "cable"
ELECTRICITY = "electricity"
BETTING = "betting"
PRINT_RECHARGE = "print_recharge"


def _new_draft_id() -> str:
    return uuid.uuid4().hex


@dataclass
class TransactionDraft:
    category: str
    # network (airtime/data/print_recharge), operator (cable), disco (electricity), bookmaker (betting)
    provider: Optional[str] = None
    # phone / smart-card / meter number / betting customer id
    recipient: str = ""
    amount: float = 0.0
    # data plan or cable package
    planId: Optional[str] = None
    planName: Optional[str] = None
    recipientName: Optional[str] = None
    # notification phone for cable/electricity
    contactPhone: Optional[str] = None
    meterType: Optional[str] = None  # prepaid / postpaid
    # print_recharge only
    cardType: Optional[str] = None
    denomination: Optional[int] = None
    quantity: Optional[int] = None
    draftId: str = field(default_factory=_new_draft_id)

    def total_amount(self) -> float:
        if self.category == PRINT_RECHARGE:
            return float((self.denomination or 0) * (self.quantity or 0))
        return float(self.amount or 0)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BalanceSnapshot:
    mainAmount: float = 0.0
    # No bonus ledger in the current server contract; kept for shape compatibility
    bonusAmount: float = 0.0
    totalAmount: float = 0.0
    currency: str = "NGN"
    lastUpdatedAt: Optional[str] = None  # ISO-8601

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BalanceSnapshot":
        allowed = {"mainAmount", "bonusAmount", "totalAmount", "currency", "lastUpdatedAt"}
        return cls(**{k: v for k, v in (data or {}).items() if k in allowed})


@dataclass
class PinStatus:
    isPinSet: bool = True
    isLocked: bool = False
    lockSecondsRemaining: int = 0
    attemptsRemaining: int = 3

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RecentRecipient:
    identifier: str
    category: str
    displayName: Optional[str] = None
    observedAt: int = 0  # epoch ms

    def to_dict(self) -> dict:
        return asdict(self)
