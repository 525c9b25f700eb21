"""
In-app notifications with a best-effort Telegram mirror.

The in-app row is always committed first and is the source of truth;
the Telegram copy is sent afterwards and its message_id stored so that
dismissing the notification can delete the copy too.
"""
import html
import logging

from sqlalchemy.orm import Session

from app.application.telegram_bridge import InlineAction, MessagingBridge, get_messenger
from app.infrastructure.db.models import NotificationModel, TelegramSettings

logger = logging.getLogger(__name__)

NOTIFICATION_INFO = "INFO"
NOTIFICATION_SUCCESS = "SUCCESS"
NOTIFICATION_WARNING = "WARNING"


def get_linked_chat_id(db: Session, user_id: int) -> str | None:
    tg = db.query(TelegramSettings).filter_by(user_id=user_id, connected=True).first()
    if not tg or not tg.chat_id:
        return None
    return tg.chat_id


def find_user_by_chat_id(db: Session, chat_id: str) -> int | None:
    tg = db.query(TelegramSettings).filter_by(chat_id=str(chat_id), connected=True).first()
    return tg.user_id if tg else None


def render_telegram(title: str, message: str) -> str:
    return f"<b>{html.escape(title)}</b>\n\n{html.escape(message)}"


class NotificationService:
    def __init__(self, db: Session, messenger: MessagingBridge | None = None):
        self.db = db
        self.messenger = messenger if messenger is not None else get_messenger()

    def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        notification_type: str = NOTIFICATION_INFO,
        action_id: int | None = None,
        action_type: str | None = None,
        inline_action: InlineAction | None = None,
    ) -> NotificationModel:
        """
        Create and commit an in-app notification, then mirror it to Telegram.

        Raises:
            IntegrityError: an unread notification for the same action exists
        """
        notif = NotificationModel(
            user_id=user_id,
            title=title,
            message=message,
            notification_type=notification_type,
            action_id=action_id,
            action_type=action_type,
            is_read=False,
        )
        self.db.add(notif)
        self.db.commit()

        self._mirror(notif, inline_action)
        return notif

    def _mirror(self, notif: NotificationModel, inline_action: InlineAction | None) -> None:
        try:
            chat_id = get_linked_chat_id(self.db, notif.user_id)
            if not chat_id:
                return
            message_id = self.messenger.send_message(
                chat_id, render_telegram(notif.title, notif.message), inline_action
            )
            if message_id:
                notif.telegram_message_id = str(message_id)
                self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Telegram mirror failed for notification_id=%s", notif.id)

    def _delete_mirror(self, notif: NotificationModel) -> None:
        if not notif.telegram_message_id:
            return
        try:
            chat_id = get_linked_chat_id(self.db, notif.user_id)
            if chat_id:
                self.messenger.delete_message(chat_id, notif.telegram_message_id)
        except Exception:
            logger.exception("Telegram delete failed for notification_id=%s", notif.id)

    def delete_mirrors(self, notifs: list[NotificationModel]) -> None:
        """Remove the Telegram copies of notifications that were just closed."""
        for notif in notifs:
            self._delete_mirror(notif)

    def list_for_user(self, user_id: int, unread_only: bool = False) -> list[NotificationModel]:
        query = self.db.query(NotificationModel).filter(NotificationModel.user_id == user_id)
        if unread_only:
            query = query.filter(NotificationModel.is_read == False)
        return query.order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc()).all()

    def dismiss(self, user_id: int, notification_id: int) -> bool:
        """Mark read and delete the Telegram copy. Not owned / missing -> False."""
        notif = self.db.query(NotificationModel).filter(
            NotificationModel.id == notification_id,
            NotificationModel.user_id == user_id,
        ).first()
        if not notif:
            return False
        notif.is_read = True
        self.db.commit()
        self._delete_mirror(notif)
        return True

    def mark_all_read(self, user_id: int) -> int:
        unread = self.list_for_user(user_id, unread_only=True)
        for notif in unread:
            notif.is_read = True
        self.db.commit()
        self.delete_mirrors(unread)
        return len(unread)

    def resolve_action(self, user_id: int, action_type: str, action_id: int) -> int:
        """Close unread notifications pointing at an action that is now done."""
        open_notifs = self.db.query(NotificationModel).filter(
            NotificationModel.user_id == user_id,
            NotificationModel.action_type == action_type,
            NotificationModel.action_id == action_id,
            NotificationModel.is_read == False,
        ).all()
        for notif in open_notifs:
            notif.is_read = True
        if open_notifs:
            self.db.commit()
        self.delete_mirrors(open_notifs)
        return len(open_notifs)
