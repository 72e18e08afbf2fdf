"""
Wires one user's engine together: storage -> credentials -> client -> balance,
PIN gate, recents, drafts, reconciler -> submitter -> wizards.

Everything is injected so tests can pass MemoryStorage, an httpx MockTransport
and fake sleep/clock callables.
"""
from typing import Optional

import httpx

from walletflow.backend.client import ResilientApiClient
from walletflow.backend.credentials import CredentialStore
from walletflow.core.balance_cache import BalanceCache
from walletflow.core.pin_gate import PinGate
from walletflow.core.reconcile import Reconciler
from walletflow.core.submitter import PurchaseSubmitter
from walletflow.core.validation import rule_for
from walletflow.core.wizard import TransactionWizard
from walletflow.store.draft_repo import DraftPersistence
from walletflow.store.models import TransactionDraft
from walletflow.store.recents_repo import RecentRecipients
from walletflow.store.storage import get_storage
from walletflow.observability.logging import log


class WalletEngine:
    def __init__(
        self,
        storage=None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_url: Optional[str] = None,
        sleep=None,
        clock=None,
        reconcile_delay_sec: Optional[float] = None,
    ):
        self.storage = storage if storage is not None else get_storage()
        self.credentials = CredentialStore(self.storage)
        self.client = ResilientApiClient(self.credentials, base_url=base_url, transport=transport, sleep=sleep)
        self.balance = BalanceCache(self.client, self.storage, clock=clock)
        self.pin_gate = PinGate(self.client)
        self.recents = RecentRecipients(self.storage, clock=clock)
        self.drafts = DraftPersistence(self.storage)
        self.reconciler = Reconciler(self.balance, self.client, delay_sec=reconcile_delay_sec, sleep=sleep)
        self.submitter = PurchaseSubmitter(
            self.client, self.pin_gate, self.balance, self.recents, self.drafts, self.reconciler
        )

    def new_wizard(self, category: str, *, restore: bool = True, wizard_id: Optional[str] = None) -> TransactionWizard:
        rule_for(category)
        draft = self.drafts.load(category) if restore else None
        if draft is None:
            draft = TransactionDraft(category=category)
        else:
            try:
                log(event="draft_restored", category=category, draftId=draft.draftId)
            except Exception:
                pass
        return TransactionWizard(
            draft,
            balance_cache=self.balance,
            pin_gate=self.pin_gate,
            submitter=self.submitter,
            drafts=self.drafts,
            wizard_id=wizard_id,
        )

    def login(self, token: str) -> None:
        self.credentials.store(token)

    def logout(self) -> None:
        self.credentials.invalidate()

    async def aclose(self) -> None:
        await self.reconciler.drain()
        await self.client.aclose()
