"""
Tests for the background scheduler wiring
"""
from unittest.mock import MagicMock, patch

from app.application import scheduler as scheduler_module


def test_start_scheduler_registers_daily_equb_job():
    fake = MagicMock()
    with patch.object(scheduler_module, "scheduler", fake):
        scheduler_module.start_scheduler()

    fake.add_job.assert_called_once()
    job_func, trigger = fake.add_job.call_args.args
    assert job_func is scheduler_module._run_equb_reminders
    assert fake.add_job.call_args.kwargs["id"] == "equb_reminders"
    assert str(trigger.fields[5]) == "6"  # hour field of the cron trigger
    fake.start.assert_called_once()


def test_shutdown_only_when_running():
    fake = MagicMock(running=False)
    with patch.object(scheduler_module, "scheduler", fake):
        scheduler_module.shutdown_scheduler()
    fake.shutdown.assert_not_called()


def test_job_closes_session_even_on_failure():
    session = MagicMock()
    with patch("app.infrastructure.db.session.get_session_factory", return_value=lambda: session), \
            patch(
                "app.application.equb_reminders.run_equb_reminders_for_all_users",
                side_effect=RuntimeError("db down"),
            ):
        scheduler_module._run_equb_reminders()

    session.close.assert_called_once()
