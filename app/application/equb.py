"""
Equb use cases - creation, listing and deletion of Equb plans

Every public function returns an ActionResult instead of raising, so
that callers (API routes, Telegram callbacks) can show the message as is.
Use case classes raise EqubError subclasses; the wrappers translate them.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from app.application.notifications import NotificationService
from app.application.telegram_bridge import MessagingBridge
from app.domain.equb import (
    ACTION_MARK_EQUB_PAID,
    CONTRIBUTION_PAID,
    CONTRIBUTION_PENDING,
    PAYOUT_RECEIVED,
)
from app.domain.equb_schedule import VALID_FREQ, generate_schedule
from app.infrastructure.db.models import (
    EqubContributionModel,
    EqubModel,
    EqubPayoutModel,
    NotificationModel,
)
from app.utils.validation import parse_amount

logger = logging.getLogger(__name__)

ERROR_VALIDATION = "Validation"
ERROR_NOT_FOUND = "NotFound"
ERROR_ALREADY_SETTLED = "AlreadySettled"
ERROR_INSUFFICIENT_FUNDS = "InsufficientFunds"
ERROR_HAS_SETTLEMENTS = "HasSettlements"
ERROR_INTERNAL = "Internal"


class EqubError(Exception):
    """Base for expected, user-facing Equb failures"""
    code = ERROR_INTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EqubValidationError(EqubError, ValueError):
    """Malformed or out-of-range input"""
    code = ERROR_VALIDATION


class EqubNotFoundError(EqubError):
    """Missing or owned by someone else (the two are indistinguishable)"""
    code = ERROR_NOT_FOUND


class AlreadySettledError(EqubError):
    code = ERROR_ALREADY_SETTLED


class InsufficientFundsError(EqubError):
    code = ERROR_INSUFFICIENT_FUNDS


class HasSettlementsError(EqubError):
    code = ERROR_HAS_SETTLEMENTS


@dataclass
class ActionResult:
    ok: bool
    error: str | None = None
    message: str | None = None
    data: Any = None

    @classmethod
    def success(cls, data: Any = None, message: str | None = None) -> "ActionResult":
        return cls(ok=True, data=data, message=message)

    @classmethod
    def failure(cls, error: str, message: str) -> "ActionResult":
        return cls(ok=False, error=error, message=message)

    @classmethod
    def from_error(cls, exc: EqubError) -> "ActionResult":
        return cls(ok=False, error=exc.code, message=exc.message)


@dataclass
class EqubDetails:
    """An Equb with its schedule, as shown on the Equb page"""
    equb: EqubModel
    contributions: list[EqubContributionModel] = field(default_factory=list)
    payout: EqubPayoutModel | None = None

    @property
    def paid_count(self) -> int:
        return sum(1 for c in self.contributions if c.status == CONTRIBUTION_PAID)

    @property
    def paid_total(self) -> Decimal:
        return sum((c.amount for c in self.contributions if c.status == CONTRIBUTION_PAID), Decimal("0"))


class CreateEqubUseCase:
    """
    Use case: create an Equb with its full schedule

    Process:
    1. Validate input
    2. Generate contribution due dates + payout
    3. Persist Equb, N PENDING contributions and one PENDING payout in one commit
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        owner_id: int,
        name: str,
        contribution_amount,
        frequency: str,
        start_date: date,
        total_cycles: int,
        payout_cycle: int,
    ) -> EqubModel:
        name = (name or "").strip()
        if not name:
            raise EqubValidationError("Name is required")

        try:
            amount = parse_amount(contribution_amount)
        except ValueError as e:
            raise EqubValidationError(str(e))
        if amount < 1:
            raise EqubValidationError("Amount must be at least 1")

        frequency = (frequency or "").upper()
        if frequency not in VALID_FREQ:
            raise EqubValidationError("Frequency must be DAILY, WEEKLY or MONTHLY")

        if isinstance(start_date, str):
            try:
                start_date = date.fromisoformat(start_date)
            except ValueError:
                raise EqubValidationError("Invalid start date")
        if not isinstance(start_date, date):
            raise EqubValidationError("Invalid start date")

        if isinstance(total_cycles, bool) or not isinstance(total_cycles, int) or total_cycles < 1:
            raise EqubValidationError("Total cycles must be at least 1")
        if (
            isinstance(payout_cycle, bool)
            or not isinstance(payout_cycle, int)
            or not 1 <= payout_cycle <= total_cycles
        ):
            raise EqubValidationError(f"Payout cycle must be between 1 and {total_cycles}")

        try:
            schedule = generate_schedule(start_date, frequency, total_cycles, payout_cycle, amount)
        except (OverflowError, ValueError):
            raise EqubValidationError("Schedule runs past the last supported date")

        try:
            equb = EqubModel(
                user_id=owner_id,
                name=name,
                contribution_amount=amount,
                frequency=frequency,
                start_date=start_date,
                total_cycles=total_cycles,
                payout_cycle=payout_cycle,
            )
            self.db.add(equb)
            self.db.flush()  # equb.id for the children

            self.db.add_all([
                EqubContributionModel(
                    equb_id=equb.id,
                    cycle_number=c.cycle_number,
                    amount=c.amount,
                    due_date=c.due_date,
                    status=CONTRIBUTION_PENDING,
                )
                for c in schedule.contributions
            ])
            self.db.add(EqubPayoutModel(
                equb_id=equb.id,
                amount=schedule.payout.amount,
                due_date=schedule.payout.due_date,
                status="PENDING",
            ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Equb created: equb_id=%s user_id=%s cycles=%d frequency=%s",
            equb.id, owner_id, total_cycles, frequency,
        )
        return equb


class GetEqubsUseCase:
    """Use case: list the owner's Equbs (newest first) with schedule and payout"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, owner_id: int) -> list[EqubDetails]:
        equbs = (
            self.db.query(EqubModel)
            .filter(EqubModel.user_id == owner_id)
            .order_by(EqubModel.created_at.desc(), EqubModel.id.desc())
            .all()
        )
        if not equbs:
            return []

        ids = [e.id for e in equbs]
        details = {e.id: EqubDetails(equb=e) for e in equbs}

        contributions = (
            self.db.query(EqubContributionModel)
            .filter(EqubContributionModel.equb_id.in_(ids))
            .order_by(EqubContributionModel.equb_id, EqubContributionModel.cycle_number.asc())
            .all()
        )
        for c in contributions:
            details[c.equb_id].contributions.append(c)

        for p in self.db.query(EqubPayoutModel).filter(EqubPayoutModel.equb_id.in_(ids)).all():
            details[p.equb_id].payout = p

        return [details[e.id] for e in equbs]


class DeleteEqubUseCase:
    """
    Use case: delete an Equb together with its schedule

    Missing or foreign Equbs are a silent no-op (no existence leak).
    Equbs with a paid contribution or a received payout are kept, otherwise
    their posted ledger transactions would lose their origin.
    Open "did you pay?" reminders for the deleted contributions are closed
    in the same commit and their Telegram copies removed afterwards.
    """

    def __init__(self, db: Session, messenger: MessagingBridge | None = None):
        self.db = db
        self.messenger = messenger

    def execute(self, owner_id: int, equb_id: int) -> bool:
        equb = self.db.query(EqubModel).filter(
            EqubModel.id == equb_id,
            EqubModel.user_id == owner_id,
        ).first()
        if not equb:
            return False

        paid = self.db.query(EqubContributionModel.id).filter(
            EqubContributionModel.equb_id == equb_id,
            EqubContributionModel.status == CONTRIBUTION_PAID,
        ).first()
        received = self.db.query(EqubPayoutModel.id).filter(
            EqubPayoutModel.equb_id == equb_id,
            EqubPayoutModel.status == PAYOUT_RECEIVED,
        ).first()
        if paid or received:
            raise HasSettlementsError("Cannot delete an Equb with recorded payments")

        contribution_ids = [
            row[0]
            for row in self.db.query(EqubContributionModel.id).filter(
                EqubContributionModel.equb_id == equb_id
            )
        ]
        open_reminders = []
        try:
            if contribution_ids:
                open_reminders = self.db.query(NotificationModel).filter(
                    NotificationModel.user_id == owner_id,
                    NotificationModel.action_type == ACTION_MARK_EQUB_PAID,
                    NotificationModel.action_id.in_(contribution_ids),
                    NotificationModel.is_read == False,
                ).all()
                for notif in open_reminders:
                    notif.is_read = True

            self.db.query(EqubContributionModel).filter(
                EqubContributionModel.equb_id == equb_id
            ).delete(synchronize_session=False)
            self.db.query(EqubPayoutModel).filter(
                EqubPayoutModel.equb_id == equb_id
            ).delete(synchronize_session=False)
            self.db.delete(equb)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if open_reminders:
            NotificationService(self.db, self.messenger).delete_mirrors(open_reminders)
        logger.info(
            "Equb deleted: equb_id=%s user_id=%s reminders_closed=%d",
            equb_id, owner_id, len(open_reminders),
        )
        return True


# ---------------------------------------------------------------------------
# Public actions (never raise)
# ---------------------------------------------------------------------------

def create_equb(
    db: Session,
    owner_id: int,
    *,
    name: str,
    contribution_amount,
    frequency: str,
    start_date: date,
    total_cycles: int,
    payout_cycle: int,
) -> ActionResult:
    try:
        equb = CreateEqubUseCase(db).execute(
            owner_id=owner_id,
            name=name,
            contribution_amount=contribution_amount,
            frequency=frequency,
            start_date=start_date,
            total_cycles=total_cycles,
            payout_cycle=payout_cycle,
        )
    except EqubError as e:
        return ActionResult.from_error(e)
    except Exception:
        logger.exception("Failed to create Equb for user_id=%s", owner_id)
        return ActionResult.failure(ERROR_INTERNAL, "Failed to create Equb")
    return ActionResult.success(equb)


def get_equbs(db: Session, owner_id: int) -> ActionResult:
    try:
        return ActionResult.success(GetEqubsUseCase(db).execute(owner_id))
    except Exception:
        logger.exception("Failed to fetch Equbs for user_id=%s", owner_id)
        return ActionResult.failure(ERROR_INTERNAL, "Failed to fetch Equbs")


def delete_equb(
    db: Session,
    owner_id: int,
    equb_id: int,
    messenger: MessagingBridge | None = None,
) -> ActionResult:
    try:
        DeleteEqubUseCase(db, messenger).execute(owner_id, equb_id)
    except EqubError as e:
        return ActionResult.from_error(e)
    except Exception:
        logger.exception("Failed to delete Equb equb_id=%s", equb_id)
        return ActionResult.failure(ERROR_INTERNAL, "Failed to delete Equb")
    return ActionResult.success()


def list_upcoming_contributions(db: Session, owner_id: int, limit: int = 3) -> ActionResult:
    """Next pending contributions across all Equbs, earliest due first."""
    try:
        rows = (
            db.query(EqubContributionModel, EqubModel)
            .join(EqubModel, EqubModel.id == EqubContributionModel.equb_id)
            .filter(
                EqubModel.user_id == owner_id,
                EqubContributionModel.status == CONTRIBUTION_PENDING,
            )
            .order_by(EqubContributionModel.due_date.asc(), EqubContributionModel.id.asc())
            .limit(limit)
            .all()
        )
    except Exception:
        logger.exception("Failed to fetch upcoming contributions for user_id=%s", owner_id)
        return ActionResult.failure(ERROR_INTERNAL, "Failed to fetch Equb status")
    return ActionResult.success(rows)
