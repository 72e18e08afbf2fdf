"""
Wire shapes of the backend responses the engine consumes.

Models are lenient (unknown fields ignored or kept) because the server contract
varies between endpoints and releases; parse_response() turns a shape that
cannot be coerced into a MalformedResponse instead of a pydantic error.
"""
import math
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from walletflow.backend.errors import MalformedResponse

M = TypeVar("M", bound=BaseModel)


def parse_amount(value: Any) -> float:
    """Parse a money amount; anything unparseable (or NaN/inf) becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        if isinstance(value, str):
            value = value.replace(",", "").strip()
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(v) or math.isinf(v):
        return 0.0
    return v


class BalanceBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: Any = 0
    currency: Optional[str] = None
    lastUpdated: Optional[str] = None


class BalanceResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool = False
    balance: Optional[BalanceBody] = None
    message: Optional[str] = None


class PinStatusResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool = False
    isPinSet: Optional[bool] = None
    # older servers only send hasPinSet
    hasPinSet: Optional[bool] = None
    isLocked: Optional[bool] = False
    # minutes
    lockTimeRemaining: Optional[float] = 0
    attemptsRemaining: Optional[int] = None

    def pin_set(self) -> bool:
        if self.isPinSet is not None:
            return bool(self.isPinSet)
        return bool(self.hasPinSet)


class NewBalance(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: Any = None
    totalBalance: Any = None
    mainBalance: Any = None
    bonusBalance: Any = None
    currency: Optional[str] = None
    lastUpdated: Optional[str] = None

    def resolved_amount(self) -> float:
        # Field names used by successive server versions, in priority order
        for raw in (self.amount, self.totalBalance, self.mainBalance):
            v = parse_amount(raw)
            if v:
                return v
        return 0.0


class PurchaseResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: Optional[bool] = None
    message: Optional[str] = None
    transaction: Optional[Dict[str, Any]] = None
    newBalance: Optional[NewBalance] = None


def parse_response(model: Type[M], data: Any, endpoint: str) -> M:
    if not isinstance(data, dict):
        raise MalformedResponse(
            f"Unexpected response shape from {endpoint}: {type(data).__name__}",
            endpoint=endpoint,
        )
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(
            f"Unexpected response shape from {endpoint}: {e.error_count()} invalid field(s)",
            endpoint=endpoint,
        ) from e
