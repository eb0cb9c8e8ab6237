"""Import status state machine."""
from __future__ import annotations

from enum import Enum

from .errors import AlreadyAcceptedError, InvalidTransitionError


class ImportStatus(str, Enum):
    PENDING = "pending"
    NEEDS_REVIEW = "needs_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({ImportStatus.ACCEPTED, ImportStatus.REJECTED})
NON_TERMINAL_STATUSES = (ImportStatus.PENDING, ImportStatus.NEEDS_REVIEW)

# action -> {from: to}
TRANSITIONS: dict[str, dict[ImportStatus, ImportStatus]] = {
    "save_draft": {s: s for s in NON_TERMINAL_STATUSES},
    "accept": {s: ImportStatus.ACCEPTED for s in NON_TERMINAL_STATUSES},
    "reject": {s: ImportStatus.REJECTED for s in NON_TERMINAL_STATUSES},
}


def parse_status(value: str | None) -> ImportStatus:
    # Rows written before the review states existed carry no status.
    if not value:
        return ImportStatus.PENDING
    try:
        return ImportStatus(value)
    except ValueError:
        raise InvalidTransitionError(str(value), "process") from None


def ensure_transition(current: str | ImportStatus | None, action: str) -> ImportStatus:
    """Return the target status of ``action`` or raise if it is not allowed."""
    state = current if isinstance(current, ImportStatus) else parse_status(current)
    allowed = TRANSITIONS[action]
    if state in allowed:
        return allowed[state]
    if state is ImportStatus.ACCEPTED and action == "accept":
        raise AlreadyAcceptedError()
    raise InvalidTransitionError(state.value, action.replace("_", " "))
