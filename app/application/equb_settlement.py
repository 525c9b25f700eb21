"""
Equb settlement - contribution PENDING -> PAID, payout PENDING -> RECEIVED.

One settlement = one ledger transaction + one status flip, committed
together. The flip is a conditional UPDATE (... WHERE status = 'PENDING'),
so of two racing requests exactly one sees rowcount == 1; the loser rolls
back its freshly posted ledger row and gets AlreadySettled.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.application.equb import (
    ActionResult,
    AlreadySettledError,
    EqubError,
    EqubNotFoundError,
    InsufficientFundsError,
    ERROR_INTERNAL,
)
from app.application.ledger_bridge import (
    LedgerEntry,
    get_account_balance,
    get_bank_account,
    post_ledger_entry,
    resolve_or_create_category,
)
from app.application.notifications import NotificationService, NOTIFICATION_SUCCESS
from app.application.telegram_bridge import MessagingBridge
from app.domain.equb import (
    ACTION_MARK_EQUB_PAID,
    CONTRIBUTION_SETTLEMENT,
    PAYOUT_SETTLEMENT,
    InvalidTransition,
    contribution_description,
    ensure_contribution_transition,
    ensure_payout_transition,
    payout_description,
)
from app.infrastructure.db.models import EqubContributionModel, EqubModel, EqubPayoutModel
from app.utils.money import format_money

logger = logging.getLogger(__name__)


class MarkContributionPaidUseCase:
    """
    Use case: record an Equb contribution as paid

    Process:
    1. Load contribution + Equb (owner check)
    2. Reject if already PAID
    3. Advisory balance check when paying from an account
    4. Resolve the "Equb Contribution" expense category
    5. Post EXPENSE + flip to PAID in one commit
    6. Notify (in-app + Telegram mirror), close the open reminder
    """

    def __init__(self, db: Session, messenger: MessagingBridge | None = None):
        self.db = db
        self.messenger = messenger

    def execute(self, owner_id: int, contribution_id: int, bank_account_id: int | None = None) -> int:
        row = (
            self.db.query(EqubContributionModel, EqubModel)
            .join(EqubModel, EqubModel.id == EqubContributionModel.equb_id)
            .filter(
                EqubContributionModel.id == contribution_id,
                EqubModel.user_id == owner_id,
            )
            .first()
        )
        if not row:
            raise EqubNotFoundError("Contribution not found")
        contribution, equb = row

        try:
            ensure_contribution_transition(contribution.status)
        except InvalidTransition:
            raise AlreadySettledError("Already paid")

        if bank_account_id is not None:
            if not get_bank_account(self.db, owner_id, bank_account_id):
                raise EqubNotFoundError("Account not found")
            balance = get_account_balance(self.db, owner_id, bank_account_id)
            if balance < contribution.amount:
                raise InsufficientFundsError(
                    f"Insufficient balance! Your current balance is {format_money(balance)}."
                )

        settlement = CONTRIBUTION_SETTLEMENT
        category = resolve_or_create_category(
            self.db, owner_id, settlement.category_name, settlement.category_type
        )

        amount = contribution.amount
        cycle_number = contribution.cycle_number
        equb_name = equb.name
        now = datetime.now(timezone.utc)

        try:
            transaction_id = post_ledger_entry(self.db, owner_id, LedgerEntry(
                amount=amount,
                transaction_type=settlement.transaction_type,
                description=contribution_description(equb_name, cycle_number),
                occurred_at=now,
                category_id=category.id,
                bank_account_id=bank_account_id,
            ))
            updated = (
                self.db.query(EqubContributionModel)
                .filter(
                    EqubContributionModel.id == contribution_id,
                    EqubContributionModel.status == settlement.pending_status,
                )
                .update(
                    {
                        EqubContributionModel.status: settlement.settled_status,
                        EqubContributionModel.transaction_id: transaction_id,
                        EqubContributionModel.paid_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                self.db.rollback()
                raise AlreadySettledError("Already paid")
            self.db.commit()
        except AlreadySettledError:
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Equb contribution paid: contribution_id=%s transaction_id=%s user_id=%s",
            contribution_id, transaction_id, owner_id,
        )

        _notify_quietly(
            self.db, self.messenger, owner_id,
            title="Equb Payment Recorded 💸",
            message=(
                f"You paid {format_money(amount)} for your {equb_name} "
                f"(Cycle {cycle_number})."
            ),
            resolve_contribution_id=contribution_id,
        )
        return transaction_id


class ReceiveEqubPayoutUseCase:
    """
    Use case: record the Equb payout as received

    Same flow as a contribution but posts INCOME ("Equb Payout" category)
    and has no balance check.
    """

    def __init__(self, db: Session, messenger: MessagingBridge | None = None):
        self.db = db
        self.messenger = messenger

    def execute(self, owner_id: int, payout_id: int, bank_account_id: int | None = None) -> int:
        row = (
            self.db.query(EqubPayoutModel, EqubModel)
            .join(EqubModel, EqubModel.id == EqubPayoutModel.equb_id)
            .filter(
                EqubPayoutModel.id == payout_id,
                EqubModel.user_id == owner_id,
            )
            .first()
        )
        if not row:
            raise EqubNotFoundError("Payout not found")
        payout, equb = row

        try:
            ensure_payout_transition(payout.status)
        except InvalidTransition:
            raise AlreadySettledError("Already received")

        if bank_account_id is not None and not get_bank_account(self.db, owner_id, bank_account_id):
            raise EqubNotFoundError("Account not found")

        settlement = PAYOUT_SETTLEMENT
        category = resolve_or_create_category(
            self.db, owner_id, settlement.category_name, settlement.category_type
        )

        amount = payout.amount
        equb_name = equb.name
        now = datetime.now(timezone.utc)

        try:
            transaction_id = post_ledger_entry(self.db, owner_id, LedgerEntry(
                amount=amount,
                transaction_type=settlement.transaction_type,
                description=payout_description(equb_name),
                occurred_at=now,
                category_id=category.id,
                bank_account_id=bank_account_id,
            ))
            updated = (
                self.db.query(EqubPayoutModel)
                .filter(
                    EqubPayoutModel.id == payout_id,
                    EqubPayoutModel.status == settlement.pending_status,
                )
                .update(
                    {
                        EqubPayoutModel.status: settlement.settled_status,
                        EqubPayoutModel.transaction_id: transaction_id,
                        EqubPayoutModel.received_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                self.db.rollback()
                raise AlreadySettledError("Already received")
            self.db.commit()
        except AlreadySettledError:
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Equb payout received: payout_id=%s transaction_id=%s user_id=%s",
            payout_id, transaction_id, owner_id,
        )

        _notify_quietly(
            self.db, self.messenger, owner_id,
            title="Equb Payout Received! 💰",
            message=f"Hooray! You received a lump sum of {format_money(amount)} from {equb_name}.",
        )
        return transaction_id


def _notify_quietly(
    db: Session,
    messenger: MessagingBridge | None,
    owner_id: int,
    title: str,
    message: str,
    resolve_contribution_id: int | None = None,
) -> None:
    """Post-commit side effects. A failure here never undoes the settlement."""
    try:
        service = NotificationService(db, messenger)
        if resolve_contribution_id is not None:
            service.resolve_action(owner_id, ACTION_MARK_EQUB_PAID, resolve_contribution_id)
        service.notify(owner_id, title, message, notification_type=NOTIFICATION_SUCCESS)
    except Exception:
        db.rollback()
        logger.exception("Settlement notification failed for user_id=%s", owner_id)


# ---------------------------------------------------------------------------
# Public actions (never raise)
# ---------------------------------------------------------------------------

def mark_contribution_paid(
    db: Session,
    owner_id: int,
    contribution_id: int,
    bank_account_id: int | None = None,
    messenger: MessagingBridge | None = None,
) -> ActionResult:
    try:
        transaction_id = MarkContributionPaidUseCase(db, messenger).execute(
            owner_id, contribution_id, bank_account_id
        )
    except EqubError as e:
        return ActionResult.from_error(e)
    except Exception:
        logger.exception("Failed to record payment for contribution_id=%s", contribution_id)
        return ActionResult.failure(ERROR_INTERNAL, "Failed to record payment")
    return ActionResult.success({"transaction_id": transaction_id}, message="Payment recorded!")


def receive_equb_payout(
    db: Session,
    owner_id: int,
    payout_id: int,
    bank_account_id: int | None = None,
    messenger: MessagingBridge | None = None,
) -> ActionResult:
    try:
        transaction_id = ReceiveEqubPayoutUseCase(db, messenger).execute(
            owner_id, payout_id, bank_account_id
        )
    except EqubError as e:
        return ActionResult.from_error(e)
    except Exception:
        logger.exception("Failed to record payout for payout_id=%s", payout_id)
        return ActionResult.failure(ERROR_INTERNAL, "Failed to record payout")
    return ActionResult.success({"transaction_id": transaction_id}, message="Payout recorded!")
