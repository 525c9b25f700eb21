"""
Background scheduler - runs periodic jobs inside the FastAPI process.

Jobs:
  - Equb reminders (daily, EQUB_REMINDER_HOUR_UTC, default 06:00 UTC / 09:00 Addis Ababa)
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import get_settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)


def _run_equb_reminders():
    from app.infrastructure.db.session import get_session_factory
    from app.application.equb_reminders import run_equb_reminders_for_all_users

    Session = get_session_factory()
    db = Session()
    try:
        n = run_equb_reminders_for_all_users(db)
        logger.info("Equb reminder job created %d reminder(s)", n)
    except Exception:
        logger.exception("Equb reminder job failed")
    finally:
        db.close()


def start_scheduler():
    """Start the background scheduler with all periodic jobs."""
    hour = get_settings().EQUB_REMINDER_HOUR_UTC

    scheduler.add_job(
        _run_equb_reminders,
        CronTrigger(hour=hour, minute=0, timezone="UTC"),
        id="equb_reminders",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started: equb_reminders (%02d:00 UTC)", hour)


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
