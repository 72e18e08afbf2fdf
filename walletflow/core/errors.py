from typing import Dict


class ValidationError(Exception):
    """Client-side draft validation failure; never sent to the network."""

    kind = "validation_error"

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


class InvalidTransition(Exception):
    kind = "invalid_transition"


class SubmissionInProgress(InvalidTransition):
    """A purchase for this wizard is already in flight."""

    kind = "submission_in_progress"
