from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from walletflow.store.models import BalanceSnapshot

SUCCESS = "success"
FAILURE = "failure"
AMBIGUOUS_PARTIAL = "ambiguous_partial"

# Failure codes
PIN_FORMAT_INVALID = "pin_format_invalid"
PIN_GATE_CLOSED = "pin_gate_closed"
PIN_REJECTED = "pin_rejected"
PURCHASE_REJECTED = "purchase_rejected"


@dataclass
class PurchaseSuccess:
    transaction: Dict[str, Any] = field(default_factory=dict)
    newBalance: Optional[BalanceSnapshot] = None
    message: str = ""
    # generated recharge cards, when the category produces any
    artifacts: List[Dict[str, Any]] = field(default_factory=list)
    outcome: str = SUCCESS


@dataclass
class PurchaseFailure:
    message: str
    pinRelated: bool = False
    code: str = PURCHASE_REJECTED
    status: Optional[int] = None
    outcome: str = FAILURE


@dataclass
class AmbiguousPartial:
    """The server reported an error but the payload proves the purchase side effect happened."""

    extractedArtifacts: List[Dict[str, Any]]
    rawPayload: Dict[str, Any]
    message: str = (
        "Your purchase may have completed but the transaction was not recorded cleanly. "
        "Please verify in your history before retrying."
    )
    outcome: str = AMBIGUOUS_PARTIAL


PurchaseResult = Union[PurchaseSuccess, PurchaseFailure, AmbiguousPartial]
