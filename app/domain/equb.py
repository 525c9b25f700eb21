"""
Equb domain rules - settlement states and the allowed transitions

Contribution: PENDING -> PAID (terminal)
Payout:       PENDING -> RECEIVED (terminal)
"""
from dataclasses import dataclass

CONTRIBUTION_PENDING = "PENDING"
CONTRIBUTION_PAID = "PAID"

PAYOUT_PENDING = "PENDING"
PAYOUT_RECEIVED = "RECEIVED"

CATEGORY_CONTRIBUTION = "Equb Contribution"
CATEGORY_PAYOUT = "Equb Payout"

# Notification tags for the "mark this contribution paid" reminder
NOTIFICATION_EQUB_REMINDER = "EQUB_REMINDER"
ACTION_MARK_EQUB_PAID = "MARK_EQUB_PAID"

_CONTRIBUTION_TRANSITIONS = {CONTRIBUTION_PENDING: {CONTRIBUTION_PAID}}
_PAYOUT_TRANSITIONS = {PAYOUT_PENDING: {PAYOUT_RECEIVED}}


class InvalidTransition(Exception):
    """Raised when a settled item is asked to settle again."""

    def __init__(self, current: str, target: str):
        super().__init__(f"{current} -> {target} is not allowed")
        self.current = current
        self.target = target


@dataclass(frozen=True)
class Settlement:
    """What a settlement posts to the ledger."""
    category_name: str
    category_type: str  # INCOME/EXPENSE
    transaction_type: str
    pending_status: str
    settled_status: str


CONTRIBUTION_SETTLEMENT = Settlement(
    category_name=CATEGORY_CONTRIBUTION,
    category_type="EXPENSE",
    transaction_type="EXPENSE",
    pending_status=CONTRIBUTION_PENDING,
    settled_status=CONTRIBUTION_PAID,
)

PAYOUT_SETTLEMENT = Settlement(
    category_name=CATEGORY_PAYOUT,
    category_type="INCOME",
    transaction_type="INCOME",
    pending_status=PAYOUT_PENDING,
    settled_status=PAYOUT_RECEIVED,
)


def ensure_contribution_transition(current: str, target: str = CONTRIBUTION_PAID) -> None:
    if target not in _CONTRIBUTION_TRANSITIONS.get(current, set()):
        raise InvalidTransition(current, target)


def ensure_payout_transition(current: str, target: str = PAYOUT_RECEIVED) -> None:
    if target not in _PAYOUT_TRANSITIONS.get(current, set()):
        raise InvalidTransition(current, target)


def contribution_description(equb_name: str, cycle_number: int) -> str:
    return f"Equb Contribution: {equb_name} (Cycle {cycle_number})"


def payout_description(equb_name: str) -> str:
    return f"Equb Payout: {equb_name}"
