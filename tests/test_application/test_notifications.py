"""
Tests for in-app notifications and their Telegram mirror.

Covers:
  - In-app row is committed even when Telegram is down
  - Mirror stores telegram_message_id for linked users
  - Dismiss marks read and deletes the Telegram copy
  - Mark-all-read, ownership isolation
  - resolve_action closes only the matching unread reminder
"""
import pytest
from sqlalchemy.exc import IntegrityError

from app.application.notifications import (
    NotificationService,
    render_telegram,
    find_user_by_chat_id,
)
from app.infrastructure.db.models import NotificationModel

USER_ID = 1
OTHER_ID = 2


@pytest.fixture
def service(db_session, messenger):
    return NotificationService(db_session, messenger)


def test_notify_without_telegram(db_session, make_user, service, messenger):
    make_user(USER_ID)

    notif = service.notify(USER_ID, "Hello", "World")

    assert notif.id is not None
    assert notif.is_read is False
    assert notif.notification_type == "INFO"
    assert notif.telegram_message_id is None
    assert messenger.sent == []


def test_notify_mirrors_to_linked_chat(db_session, make_user, link_telegram, service, messenger):
    make_user(USER_ID)
    link_telegram(USER_ID, "777")

    notif = service.notify(USER_ID, "Due", "Pay <now> & smile")

    assert notif.telegram_message_id == "1001"
    assert messenger.sent[0]["chat_id"] == "777"
    assert messenger.sent[0]["text"] == "<b>Due</b>\n\nPay &lt;now&gt; &amp; smile"


def test_notify_survives_transport_error(db_session, make_user, link_telegram, messenger):
    make_user(USER_ID)
    link_telegram(USER_ID)
    messenger.explode = True

    notif = NotificationService(db_session, messenger).notify(USER_ID, "Hi", "there")

    assert db_session.query(NotificationModel).filter_by(id=notif.id).count() == 1


def test_duplicate_open_action_rejected(db_session, make_user, service):
    make_user(USER_ID)
    service.notify(USER_ID, "Due", "x", action_id=5, action_type="MARK_EQUB_PAID")

    with pytest.raises(IntegrityError):
        service.notify(USER_ID, "Due", "x", action_id=5, action_type="MARK_EQUB_PAID")
    db_session.rollback()

    # the same action for another user is fine
    make_user(OTHER_ID)
    service.notify(OTHER_ID, "Due", "x", action_id=5, action_type="MARK_EQUB_PAID")


def test_plain_notifications_are_not_deduplicated(db_session, make_user, service):
    make_user(USER_ID)
    service.notify(USER_ID, "Same", "text")
    service.notify(USER_ID, "Same", "text")
    assert len(service.list_for_user(USER_ID)) == 2


def test_dismiss_deletes_telegram_copy(db_session, make_user, link_telegram, service, messenger):
    make_user(USER_ID)
    link_telegram(USER_ID, "777")
    notif = service.notify(USER_ID, "Due", "x")

    assert service.dismiss(USER_ID, notif.id) is True

    db_session.expire_all()
    assert db_session.get(NotificationModel, notif.id).is_read is True
    assert messenger.deleted == [("777", "1001")]


def test_dismiss_foreign_notification(db_session, make_user, service):
    make_user(USER_ID)
    make_user(OTHER_ID)
    notif = service.notify(OTHER_ID, "Private", "x")

    assert service.dismiss(USER_ID, notif.id) is False
    db_session.expire_all()
    assert db_session.get(NotificationModel, notif.id).is_read is False


def test_mark_all_read(db_session, make_user, service):
    make_user(USER_ID)
    make_user(OTHER_ID)
    service.notify(USER_ID, "a", "1")
    service.notify(USER_ID, "b", "2")
    service.notify(OTHER_ID, "c", "3")

    assert service.mark_all_read(USER_ID) == 2
    assert service.list_for_user(USER_ID, unread_only=True) == []
    assert len(service.list_for_user(OTHER_ID, unread_only=True)) == 1


def test_resolve_action(db_session, make_user, service):
    make_user(USER_ID)
    service.notify(USER_ID, "Due", "x", action_id=5, action_type="MARK_EQUB_PAID")
    service.notify(USER_ID, "Due", "y", action_id=6, action_type="MARK_EQUB_PAID")

    assert service.resolve_action(USER_ID, "MARK_EQUB_PAID", 5) == 1
    unread = service.list_for_user(USER_ID, unread_only=True)
    assert [n.action_id for n in unread] == [6]
    assert service.resolve_action(USER_ID, "MARK_EQUB_PAID", 5) == 0


def test_render_telegram_escapes_html():
    assert render_telegram("A & B", "<x>") == "<b>A &amp; B</b>\n\n&lt;x&gt;"


def test_find_user_by_chat_id(db_session, make_user, link_telegram):
    make_user(USER_ID)
    link_telegram(USER_ID, "777")
    assert find_user_by_chat_id(db_session, "777") == USER_ID
    assert find_user_by_chat_id(db_session, "999") is None
