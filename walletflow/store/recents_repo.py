import time
from typing import List, Optional

from walletflow.settings import settings
from walletflow.store.models import RecentRecipient
from walletflow.utils.time import parse_timestamp_ms
from walletflow.observability.logging import log

PREFIX = "recent:"


def _key(category: str) -> str:
    return f"{PREFIX}{category}"


def _from_stored(category: str, item: dict) -> Optional[RecentRecipient]:
    """Accept both the current shape and the legacy {number, name, timestamp} one."""
    if not isinstance(item, dict):
        return None
    identifier = item.get("identifier") or item.get("number") or item.get("customerId")
    if not identifier:
        return None
    return RecentRecipient(
        identifier=str(identifier),
        category=item.get("category") or category,
        displayName=item.get("displayName") or item.get("name") or item.get("customerName"),
        observedAt=parse_timestamp_ms(item.get("observedAt") or item.get("timestamp")),
    )


class RecentRecipients:
    """Most-recent-first recipients per category, deduplicated by identifier, capped."""

    def __init__(self, storage, *, limit: Optional[int] = None, clock=None):
        self.storage = storage
        self.limit = int(limit or settings.RECENTS_LIMIT)
        self._clock = clock or time.time

    def list(self, category: str) -> List[RecentRecipient]:
        raw = self.storage.get_json(_key(category))
        if not isinstance(raw, list):
            return []
        out = []
        for item in raw:
            rec = _from_stored(category, item)
            if rec is not None:
                out.append(rec)
        return out[: self.limit]

    def remember(self, identifier: str, category: str, display_name: Optional[str] = None) -> List[RecentRecipient]:
        entry = RecentRecipient(
            identifier=identifier,
            category=category,
            displayName=display_name,
            observedAt=int(self._clock() * 1000),
        )
        kept = [r for r in self.list(category) if r.identifier != identifier]
        recents = [entry] + kept
        recents = recents[: self.limit]
        self.storage.set_json(_key(category), [r.to_dict() for r in recents])
        try:
            log(event="recent_recipient_saved", category=category, count=len(recents))
        except Exception:
            pass
        return recents
