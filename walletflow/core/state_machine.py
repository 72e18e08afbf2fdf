from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

# Wizard states

# Draft is editable; structural validation runs on the way out
DRAFT = "DRAFT"

# Balance refreshed and confirmed to cover the amount
REVIEW = "REVIEW"

# PIN status refetched on entry; the only state that can submit
PIN_ENTRY = "PIN_ENTRY"

# Terminal for this submission attempt (success, failure or ambiguous partial)
RESULT = "RESULT"

BACKWARD = {REVIEW: DRAFT, PIN_ENTRY: REVIEW}


@dataclass
class WizardState:
    """
    Single tagged state. `submitting` is only ever true in PIN_ENTRY and
    `result` is only set in RESULT (or PIN_ENTRY after an inline PIN rejection).
    """

    state: str = DRAFT
    submitting: bool = False
    result: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        return asdict(self)


def can_go_back(ws: WizardState) -> bool:
    return not ws.submitting and ws.state in BACKWARD
