"""
Background reconciliation after an uncertain purchase outcome.

Schedules a delayed balance refresh followed by a best-effort history fetch so
the client converges on the server's view. Tasks are kept referenced until they
finish; drain() waits for everything that is pending.
"""
import asyncio
from typing import Any, Optional, Set

from walletflow.settings import settings
from walletflow.backend.errors import ApiError
from walletflow.observability.logging import log


class Reconciler:
    def __init__(self, balance_cache, client, *, delay_sec: Optional[float] = None, sleep=None):
        self.balance_cache = balance_cache
        self.client = client
        self.delay_sec = float(delay_sec if delay_sec is not None else settings.RECONCILE_DELAY_SEC)
        self._sleep = sleep or asyncio.sleep
        self._tasks: Set[asyncio.Task] = set()
        self.last_history: Any = None
        self.runs = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, reason: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run(reason))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        try:
            log(event="reconciliation_scheduled", reason=reason, delaySec=self.delay_sec)
        except Exception:
            pass
        return task

    async def _run(self, reason: str) -> None:
        if self.delay_sec > 0:
            await self._sleep(self.delay_sec)
        try:
            log(event="reconciliation_started", reason=reason)
        except Exception:
            pass

        snapshot = await self.balance_cache.refresh()

        history_ok = False
        try:
            self.last_history = await self.client.fetch_history()
            history_ok = True
        except ApiError as e:
            try:
                log(event="reconciliation_history_failed", reason=reason, kind=e.kind, error=str(e)[:200])
            except Exception:
                pass

        self.runs += 1
        try:
            log(
                event="reconciliation_finished",
                reason=reason,
                balanceTotal=snapshot.totalAmount if snapshot else None,
                historyFetched=history_ok,
            )
        except Exception:
            pass

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
