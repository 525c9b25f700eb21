"""
Deterministic Equb schedule generator.

Uses date only (no timezone). Every cycle is computed from start_date,
never chained from the previous cycle, so MONTHLY plans that start on the
31st keep landing on the 31st whenever the month has one.

Frequencies:
- DAILY: cycle i is start_date + (i-1) days
- WEEKLY: cycle i is start_date + (i-1) weeks
- MONTHLY: cycle i is start_date + (i-1) calendar months, day clipped
  to the last day of the target month (Jan 31 + 1 month = Feb 28/29)
"""
import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal


FREQ_DAILY = "DAILY"
FREQ_WEEKLY = "WEEKLY"
FREQ_MONTHLY = "MONTHLY"
VALID_FREQ = frozenset({FREQ_DAILY, FREQ_WEEKLY, FREQ_MONTHLY})


@dataclass(frozen=True)
class ScheduledContribution:
    cycle_number: int
    amount: Decimal
    due_date: date


@dataclass(frozen=True)
class ScheduledPayout:
    amount: Decimal
    due_date: date


@dataclass(frozen=True)
class EqubSchedule:
    contributions: list[ScheduledContribution]
    payout: ScheduledPayout


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(d: date, n: int) -> date:
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    last = last_day_of_month(year, month)
    day = min(d.day, last)
    return date(year, month, day)


def advance(d: date, frequency: str, steps: int) -> date:
    """Move d forward by `steps` units of the given frequency."""
    if frequency == FREQ_DAILY:
        return d + timedelta(days=steps)
    if frequency == FREQ_WEEKLY:
        return d + timedelta(weeks=steps)
    if frequency == FREQ_MONTHLY:
        return add_months(d, steps)
    raise ValueError(f"invalid frequency: {frequency}")


def generate_schedule(
    start_date: date,
    frequency: str,
    total_cycles: int,
    payout_cycle: int,
    contribution_amount: Decimal,
) -> EqubSchedule:
    """
    Build the full contribution schedule and the payout for an Equb.

    Returns exactly total_cycles contributions numbered 1..total_cycles in
    ascending order, plus one payout worth contribution_amount * total_cycles
    due on the payout cycle's date.

    Raises:
        ValueError: unknown frequency, total_cycles < 1 or payout_cycle
            outside [1, total_cycles]
        OverflowError: a due date would fall past date.max
    """
    if frequency not in VALID_FREQ:
        raise ValueError(f"invalid frequency: {frequency}")
    if total_cycles < 1:
        raise ValueError("total_cycles must be >= 1")
    if not 1 <= payout_cycle <= total_cycles:
        raise ValueError("payout_cycle must be between 1 and total_cycles")

    amount = Decimal(contribution_amount)
    contributions = [
        ScheduledContribution(
            cycle_number=i,
            amount=amount,
            due_date=advance(start_date, frequency, i - 1),
        )
        for i in range(1, total_cycles + 1)
    ]
    payout = ScheduledPayout(
        amount=amount * total_cycles,
        due_date=advance(start_date, frequency, payout_cycle - 1),
    )
    return EqubSchedule(contributions=contributions, payout=payout)
