"""
Wallet balance with offline fallback.

Two copies exist: `current` (in memory) and the persisted snapshot. The
persisted copy is only overwritten by a successful /balance fetch or by the
newBalance reported with a successful purchase. That purchase-reported value is
advisory: it is the server's figure at purchase time and is superseded by the
next /balance fetch, which is always made on entering Review.
"""
import time
from typing import Optional

from walletflow.settings import settings
from walletflow.backend.errors import ApiError, ServerError
from walletflow.backend.client import BALANCE_ENDPOINT
from walletflow.backend.schemas import NewBalance, parse_amount
from walletflow.store.models import BalanceSnapshot
from walletflow.utils.time import iso_from_epoch
from walletflow.observability.logging import log


class BalanceCache:
    def __init__(self, client, storage, *, key: Optional[str] = None, clock=None):
        self.client = client
        self.storage = storage
        self.key = key or settings.BALANCE_KEY
        self._clock = clock or time.time
        self.current: Optional[BalanceSnapshot] = None
        self.last_error: Optional[ApiError] = None

    @property
    def total(self) -> Optional[float]:
        return self.current.totalAmount if self.current is not None else None

    def load_persisted(self) -> Optional[BalanceSnapshot]:
        try:
            data = self.storage.get_json(self.key)
        except Exception as e:
            try:
                log(event="balance_cache_read_failed", error=str(e)[:200])
            except Exception:
                pass
            return None
        if not isinstance(data, dict):
            return None
        return BalanceSnapshot.from_dict(data)

    def _persist(self, snapshot: BalanceSnapshot) -> None:
        try:
            self.storage.set_json(self.key, snapshot.to_dict())
        except Exception as e:
            # The in-memory value is still served; the fallback copy is just older
            try:
                log(event="balance_cache_write_failed", error=str(e)[:200])
            except Exception:
                pass

    def _snapshot(self, amount, currency: Optional[str], last_updated: Optional[str]) -> BalanceSnapshot:
        main = parse_amount(amount)
        return BalanceSnapshot(
            mainAmount=main,
            bonusAmount=0.0,
            totalAmount=main,
            currency=currency or settings.DEFAULT_CURRENCY,
            lastUpdatedAt=last_updated or iso_from_epoch(self._clock()),
        )

    async def refresh(self) -> Optional[BalanceSnapshot]:
        """
        Fetch the authoritative balance. Never raises ApiError: on failure the
        last persisted snapshot is returned as stored (or None when there is none).
        """
        try:
            resp = await self.client.fetch_balance()
            if not resp.success or resp.balance is None:
                raise ServerError(resp.message or "Balance fetch failed", endpoint=BALANCE_ENDPOINT)
        except ApiError as e:
            self.last_error = e
            cached = self.load_persisted()
            self.current = cached
            try:
                log(
                    event="balance_fallback_used",
                    kind=e.kind,
                    error=str(e)[:200],
                    hasCached=cached is not None,
                    cachedAt=cached.lastUpdatedAt if cached else None,
                )
            except Exception:
                pass
            return cached

        snapshot = self._snapshot(resp.balance.amount, resp.balance.currency, resp.balance.lastUpdated)
        self._persist(snapshot)
        self.current = snapshot
        self.last_error = None
        try:
            log(event="balance_refreshed", total=snapshot.totalAmount, currency=snapshot.currency)
        except Exception:
            pass
        return snapshot

    def apply_purchase_balance(self, new_balance: NewBalance) -> BalanceSnapshot:
        currency = new_balance.currency or (self.current.currency if self.current else None)
        snapshot = self._snapshot(new_balance.resolved_amount(), currency, new_balance.lastUpdated)
        self._persist(snapshot)
        self.current = snapshot
        try:
            log(event="balance_updated_from_purchase", total=snapshot.totalAmount)
        except Exception:
            pass
        return snapshot
