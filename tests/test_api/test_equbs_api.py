"""
Tests for the Equb, notification and Telegram webhook endpoints
"""
import inspect
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.api.deps import get_current_user_id, get_db, get_messenger
from app.api.v1.telegram import telegram_webhook
from app.main import app
from app.infrastructure.db.models import EqubContributionModel, LedgerTransaction, NotificationModel

OWNER = 1

CREATE_BODY = {
    "name": "Office Equb",
    "contribution_amount": "1 000",
    "frequency": "WEEKLY",
    "start_date": "2026-01-01",
    "total_cycles": 4,
    "payout_cycle": 2,
}


@pytest.fixture
def client(db_session, make_user, messenger):
    make_user(OWNER)

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user_id] = lambda: OWNER
    app.dependency_overrides[get_messenger] = lambda: messenger
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client) -> dict:
    resp = client.post("/api/v1/equbs/", json=CREATE_BODY)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_equb(client):
    data = _create(client)

    assert data["name"] == "Office Equb"
    assert data["frequency"] == "WEEKLY"
    assert [c["cycle_number"] for c in data["contributions"]] == [1, 2, 3, 4]
    assert [c["due_date"] for c in data["contributions"]] == [
        "2026-01-01", "2026-01-08", "2026-01-15", "2026-01-22",
    ]
    assert all(c["status"] == "PENDING" for c in data["contributions"])
    assert data["payout"]["due_date"] == "2026-01-08"
    assert float(data["payout"]["amount"]) == 4000


def test_create_equb_validation_error(client):
    body = dict(CREATE_BODY, payout_cycle=9)
    resp = client.post("/api/v1/equbs/", json=body)

    assert resp.status_code == 422
    assert resp.json() == {"detail": "Payout cycle must be between 1 and 4", "error": "Validation"}


def test_create_equb_rejects_bad_amount(client):
    resp = client.post("/api/v1/equbs/", json=dict(CREATE_BODY, contribution_amount="lots"))
    assert resp.status_code == 422


def test_list_equbs(client):
    _create(client)
    resp = client.get("/api/v1/equbs/")

    assert resp.status_code == 200
    assert len(resp.json()) == 1
    assert resp.json()[0]["paid_count"] == 0


def test_pay_contribution_twice(client, db_session):
    contribution_id = _create(client)["contributions"][0]["id"]

    first = client.post(f"/api/v1/equbs/contributions/{contribution_id}/pay")
    second = client.post(f"/api/v1/equbs/contributions/{contribution_id}/pay")

    assert first.status_code == 200
    assert first.json()["success"] is True
    assert second.status_code == 409
    assert second.json()["detail"] == "Already paid"
    assert db_session.query(LedgerTransaction).count() == 1


def test_pay_with_insufficient_balance(client, db_session):
    from app.infrastructure.db.models import BankAccount

    acc = BankAccount(user_id=OWNER, name="Empty")
    db_session.add(acc)
    db_session.commit()
    contribution_id = _create(client)["contributions"][0]["id"]

    resp = client.post(
        f"/api/v1/equbs/contributions/{contribution_id}/pay",
        json={"bank_account_id": acc.id},
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "InsufficientFunds"


def test_receive_payout(client, db_session):
    payout_id = _create(client)["payout"]["id"]

    resp = client.post(f"/api/v1/equbs/payouts/{payout_id}/receive")

    assert resp.status_code == 200
    tx = db_session.get(LedgerTransaction, resp.json()["transaction_id"])
    assert tx.transaction_type == "INCOME"


def test_foreign_contribution_is_404(client, db_session, make_equb):
    equb = make_equb(owner_id=2)
    contribution = db_session.query(EqubContributionModel).filter_by(equb_id=equb.id).first()

    resp = client.post(f"/api/v1/equbs/contributions/{contribution.id}/pay")

    assert resp.status_code == 404
    assert resp.json()["detail"] == "Contribution not found"


def test_delete_equb(client):
    equb_id = _create(client)["id"]

    resp = client.delete(f"/api/v1/equbs/{equb_id}")

    assert resp.status_code == 200
    assert client.get("/api/v1/equbs/").json() == []


def test_delete_equb_with_payment_is_conflict(client):
    data = _create(client)
    client.post(f"/api/v1/equbs/contributions/{data['contributions'][0]['id']}/pay")

    resp = client.delete(f"/api/v1/equbs/{data['id']}")

    assert resp.status_code == 409
    assert resp.json()["error"] == "HasSettlements"


def test_upcoming(client):
    _create(client)
    resp = client.get("/api/v1/equbs/upcoming")

    assert resp.status_code == 200
    assert [u["cycle_number"] for u in resp.json()] == [1, 2, 3]
    assert resp.json()[0]["equb_name"] == "Office Equb"


def test_reminders_check_and_notifications(client):
    _create(client)  # starts 2026-01-01, so at least cycle 1 is due by now

    first = client.post("/api/v1/equbs/reminders/check")
    again = client.post("/api/v1/equbs/reminders/check")

    assert first.json()["created"] >= 1
    assert again.json()["created"] == 0

    items = client.get("/api/v1/notifications/", params={"unread_only": True}).json()
    assert items[0]["action_type"] == "MARK_EQUB_PAID"

    resp = client.post(f"/api/v1/notifications/{items[0]['id']}/dismiss")
    assert resp.json() == {"success": True}
    remaining = client.get("/api/v1/notifications/", params={"unread_only": True}).json()
    assert len(remaining) == len(items) - 1


def test_reminders_check_reports_internal_error(client):
    _create(client)

    with patch(
        "app.application.equb_reminders._has_open_reminder",
        side_effect=OperationalError("SELECT 1", {}, Exception("db down")),
    ):
        resp = client.post("/api/v1/equbs/reminders/check")

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Failed to check Equb reminders", "error": "Internal"}


def test_delete_equb_removes_telegram_reminders(client, db_session, link_telegram, messenger):
    link_telegram(OWNER, "555000")
    equb_id = _create(client)["id"]
    client.post("/api/v1/equbs/reminders/check")
    assert messenger.sent

    resp = client.delete(f"/api/v1/equbs/{equb_id}")

    assert resp.status_code == 200
    assert client.get("/api/v1/notifications/", params={"unread_only": True}).json() == []
    assert len(messenger.deleted) == len(messenger.sent)


def test_mark_all_read(client):
    _create(client)
    client.post("/api/v1/equbs/reminders/check")

    resp = client.post("/api/v1/notifications/read-all")

    assert resp.json()["success"] is True
    assert client.get("/api/v1/notifications/", params={"unread_only": True}).json() == []


def test_telegram_webhook_pays_contribution(client, db_session, link_telegram, messenger):
    link_telegram(OWNER, "555000")
    contribution_id = _create(client)["contributions"][0]["id"]

    resp = client.post("/api/v1/telegram/webhook", json={
        "update_id": 1,
        "callback_query": {
            "id": "cbq-1",
            "from": {"id": 555000},
            "message": {"message_id": 10, "chat": {"id": 555000}},
            "data": f"MARK_EQUB_PAID:{contribution_id}",
        },
    })

    assert resp.status_code == 200
    assert resp.text == "OK"
    db_session.expire_all()
    assert db_session.get(EqubContributionModel, contribution_id).status == "PAID"
    assert messenger.answered == [("cbq-1", "Payment recorded!")]


def test_telegram_webhook_ignores_plain_messages(client, db_session):
    resp = client.post("/api/v1/telegram/webhook", json={"update_id": 2, "message": {"text": "/start"}})

    assert resp.status_code == 200
    assert db_session.query(NotificationModel).count() == 0


def test_telegram_webhook_runs_in_threadpool():
    """Settlement and Telegram calls block, so the route must be a plain def"""
    assert inspect.iscoroutinefunction(telegram_webhook) is False


@pytest.mark.parametrize("callback", [
    {"id": "cbq-2", "message": "oops", "data": "MARK_EQUB_PAID:1"},
    {"id": "cbq-3", "message": {"chat": "oops"}, "from": 7, "data": "MARK_EQUB_PAID:1"},
    "not-an-object",
])
def test_telegram_webhook_answers_ok_on_malformed_callback(client, db_session, callback):
    resp = client.post("/api/v1/telegram/webhook", json={"update_id": 3, "callback_query": callback})

    assert resp.status_code == 200
    assert resp.text == "OK"
    assert db_session.query(LedgerTransaction).count() == 0


def test_telegram_webhook_rejects_wrong_secret(client, db_session, link_telegram):
    link_telegram(OWNER, "555000")
    contribution_id = _create(client)["contributions"][0]["id"]
    update = {
        "update_id": 4,
        "callback_query": {
            "id": "cbq-4",
            "message": {"message_id": 10, "chat": {"id": 555000}},
            "data": f"MARK_EQUB_PAID:{contribution_id}",
        },
    }

    with patch("app.api.v1.telegram.get_settings", return_value=MagicMock(TELEGRAM_WEBHOOK_SECRET="s3cret")):
        resp = client.post(
            "/api/v1/telegram/webhook",
            json=update,
            headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"},
        )

    assert resp.text == "OK"
    db_session.expire_all()
    assert db_session.get(EqubContributionModel, contribution_id).status == "PENDING"


def test_requires_login(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        resp = TestClient(app).get("/api/v1/equbs/")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 401
