"""
Equb reminder sweep - raises a "did you pay?" reminder for every due or
overdue PENDING contribution.

Safe to run on every dashboard load: a contribution that already has an
unread reminder is skipped, and the partial unique index on notifications
rejects a duplicate created by a racing sweep.

Usage (cron / manual):
    python -m app.application.equb_reminders
"""
import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import distinct
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.application.equb import ERROR_INTERNAL, ActionResult
from app.application.notifications import NotificationService
from app.application.telegram_bridge import InlineAction, MessagingBridge, get_messenger
from app.config import get_settings
from app.domain.equb import (
    ACTION_MARK_EQUB_PAID,
    CONTRIBUTION_PENDING,
    NOTIFICATION_EQUB_REMINDER,
)
from app.infrastructure.db.models import EqubContributionModel, EqubModel, NotificationModel
from app.utils.money import format_money

logger = logging.getLogger(__name__)

PAY_NOW_TEXT = "✅ Pay now"


def local_today() -> date:
    """Today in the configured TIMEZONE (end-of-today cut-off for due dates)."""
    return datetime.now(ZoneInfo(get_settings().TIMEZONE)).date()


def build_callback_data(action_type: str, action_id: int) -> str:
    return f"{action_type}:{action_id}"


def parse_callback_data(data: str | None) -> tuple[str, int] | None:
    """'MARK_EQUB_PAID:42' -> ('MARK_EQUB_PAID', 42); anything else -> None."""
    if not data or ":" not in data:
        return None
    action_type, _, raw_id = data.partition(":")
    if not action_type or not raw_id.isdigit():
        return None
    return action_type, int(raw_id)


def _has_open_reminder(db: Session, owner_id: int, contribution_id: int) -> bool:
    return (
        db.query(NotificationModel.id)
        .filter(
            NotificationModel.user_id == owner_id,
            NotificationModel.action_id == contribution_id,
            NotificationModel.action_type == ACTION_MARK_EQUB_PAID,
            NotificationModel.is_read == False,
        )
        .first()
        is not None
    )


def _reminder_text(equb_name: str, cycle_number: int, amount, due_date: date, today: date) -> str:
    if due_date == today:
        when = "is due today"
    else:
        days = (today - due_date).days
        when = f"was due on {due_date.strftime('%d %b %Y')} ({days} day{'s' if days != 1 else ''} ago)"
    return (
        f"Your {equb_name} contribution of {format_money(amount)} "
        f"(Cycle {cycle_number}) {when}. Have you paid it?"
    )


class CheckPendingEqubsUseCase:
    """
    Create reminders for the owner's due/overdue PENDING contributions.

    Telegram mirroring is best-effort; a failed mirror is not retried by
    this run and the next run skips the contribution because its in-app
    reminder already exists.
    """

    def __init__(self, db: Session, messenger: MessagingBridge | None = None):
        self.db = db
        self.messenger = messenger

    def execute(self, owner_id: int, today: date | None = None) -> int:
        """Returns the number of reminders created."""
        today = today or local_today()
        rows = (
            self.db.query(EqubContributionModel, EqubModel)
            .join(EqubModel, EqubModel.id == EqubContributionModel.equb_id)
            .filter(
                EqubModel.user_id == owner_id,
                EqubContributionModel.status == CONTRIBUTION_PENDING,
                EqubContributionModel.due_date <= today,
            )
            .order_by(EqubContributionModel.due_date.asc(), EqubContributionModel.id.asc())
            .all()
        )
        if not rows:
            return 0

        service = NotificationService(
            self.db, self.messenger if self.messenger is not None else get_messenger()
        )
        # Snapshot before the loop: every notify() commits and expires loaded rows
        due = [
            (c.id, c.cycle_number, c.amount, c.due_date, e.name)
            for c, e in rows
        ]

        created = 0
        for contribution_id, cycle_number, amount, due_date, equb_name in due:
            if _has_open_reminder(self.db, owner_id, contribution_id):
                continue
            try:
                service.notify(
                    owner_id,
                    title="Equb Payment Due ⏰",
                    message=_reminder_text(equb_name, cycle_number, amount, due_date, today),
                    notification_type=NOTIFICATION_EQUB_REMINDER,
                    action_id=contribution_id,
                    action_type=ACTION_MARK_EQUB_PAID,
                    inline_action=InlineAction(
                        PAY_NOW_TEXT, build_callback_data(ACTION_MARK_EQUB_PAID, contribution_id)
                    ),
                )
            except IntegrityError:
                self.db.rollback()
                logger.info("Reminder for contribution_id=%s already exists, skipping", contribution_id)
                continue
            created += 1

        if created:
            logger.info("Equb reminders: created %d for user_id=%s", created, owner_id)
        return created


def check_pending_equbs(
    db: Session,
    owner_id: int,
    messenger: MessagingBridge | None = None,
    today: date | None = None,
) -> ActionResult:
    """Run the owner's sweep; data is {"created": n} on success."""
    try:
        created = CheckPendingEqubsUseCase(db, messenger).execute(owner_id, today)
    except Exception:
        db.rollback()
        logger.exception("Equb reminder sweep failed for user_id=%s", owner_id)
        return ActionResult.failure(ERROR_INTERNAL, "Failed to check Equb reminders")
    return ActionResult.success({"created": created})


def run_equb_reminders_for_all_users(
    db: Session,
    messenger: MessagingBridge | None = None,
    today: date | None = None,
) -> int:
    """Daily job: sweep every owner that has a due PENDING contribution."""
    today = today or local_today()
    messenger = messenger if messenger is not None else get_messenger()

    owner_ids = [
        row[0]
        for row in db.query(distinct(EqubModel.user_id))
        .join(EqubContributionModel, EqubContributionModel.equb_id == EqubModel.id)
        .filter(
            EqubContributionModel.status == CONTRIBUTION_PENDING,
            EqubContributionModel.due_date <= today,
        )
        .all()
    ]

    total = 0
    for owner_id in owner_ids:
        result = check_pending_equbs(db, owner_id, messenger, today)
        if result.ok:
            total += result.data["created"]
    return total


# ── CLI entry point ──
if __name__ == "__main__":
    from app.infrastructure.db.session import get_session_factory
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        n = run_equb_reminders_for_all_users(db)
        logger.info("Created %d Equb reminder(s)", n)
    finally:
        db.close()
