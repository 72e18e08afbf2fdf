import re
from typing import Optional

from walletflow.settings import settings
from walletflow.backend.errors import ApiError
from walletflow.backend.client import PIN_STATUS_ENDPOINT
from walletflow.store.models import PinStatus
from walletflow.core.results import PIN_FORMAT_INVALID, PIN_GATE_CLOSED
from walletflow.observability.logging import log

PIN_RE = re.compile(r"^\d{4}$")
_ATTEMPTS_RE = re.compile(r"(\d+)\s+attempts?\s+remaining", re.I)
_LOCKED_RE = re.compile(r"\blocked\b", re.I)
_MINUTES_RE = re.compile(r"(\d+)\s+minutes?", re.I)


def is_pin_well_formed(pin) -> bool:
    return isinstance(pin, str) and PIN_RE.match(pin) is not None


def default_pin_status() -> PinStatus:
    # Lockout is enforced server-side; an unknown status must not block the user
    return PinStatus(
        isPinSet=True,
        isLocked=False,
        lockSecondsRemaining=0,
        attemptsRemaining=int(settings.PIN_DEFAULT_ATTEMPTS),
    )


class PinGate:
    def __init__(self, client):
        self.client = client
        self.last_status: Optional[PinStatus] = None

    async def status(self) -> PinStatus:
        """Fetch the PIN configuration; refetched on every PinEntry, never persisted."""
        try:
            resp = await self.client.fetch_pin_status()
            if not resp.success:
                raise ApiError("PIN status unavailable", endpoint=PIN_STATUS_ENDPOINT)
            attempts = resp.attemptsRemaining
            status = PinStatus(
                isPinSet=resp.pin_set(),
                isLocked=bool(resp.isLocked),
                lockSecondsRemaining=int(round(float(resp.lockTimeRemaining or 0) * 60)),
                attemptsRemaining=int(attempts) if attempts is not None else int(settings.PIN_DEFAULT_ATTEMPTS),
            )
        except ApiError as e:
            status = default_pin_status()
            try:
                log(event="pin_status_fallback", kind=e.kind, error=str(e)[:200])
            except Exception:
                pass
        self.last_status = status
        return status

    def rejection_reason(self, pin, status: Optional[PinStatus] = None) -> Optional[str]:
        if not is_pin_well_formed(pin):
            return PIN_FORMAT_INVALID
        st = status or self.last_status or default_pin_status()
        if not st.isPinSet or st.isLocked:
            return PIN_GATE_CLOSED
        return None

    def is_submission_allowed(self, draft, pin, status: Optional[PinStatus] = None) -> bool:
        return draft is not None and self.rejection_reason(pin, status) is None

    def closed_message(self, status: Optional[PinStatus] = None) -> str:
        st = status or self.last_status or default_pin_status()
        if not st.isPinSet:
            return "Transaction PIN not set. Please set up your PIN first."
        minutes = max(1, -(-int(st.lockSecondsRemaining or 0) // 60))
        return f"Too many failed PIN attempts. Please try again in {minutes} minutes."

    def note_rejection(self, message: str) -> PinStatus:
        """Fold a server PIN rejection into the locally displayed status."""
        st = self.last_status or default_pin_status()
        text = message or ""
        m = _ATTEMPTS_RE.search(text)
        if m:
            st.attemptsRemaining = int(m.group(1))
        if _LOCKED_RE.search(text):
            st.isLocked = True
            st.attemptsRemaining = 0
            mins = _MINUTES_RE.search(text)
            if mins:
                st.lockSecondsRemaining = int(mins.group(1)) * 60
        self.last_status = st
        return st
