"""
Telegram inline-button callbacks.

The "✅ Pay now" button on a reminder re-enters the very same
mark_contribution_paid action the web UI uses; the bot never settles
anything on its own.
"""
import html
import logging

from sqlalchemy.orm import Session

from app.application.equb import ActionResult, ERROR_NOT_FOUND, ERROR_VALIDATION
from app.application.equb_reminders import parse_callback_data
from app.application.equb_settlement import mark_contribution_paid
from app.application.notifications import find_user_by_chat_id
from app.application.telegram_bridge import MessagingBridge, get_messenger
from app.domain.equb import ACTION_MARK_EQUB_PAID

logger = logging.getLogger(__name__)


def handle_callback_query(
    db: Session,
    chat_id: str,
    callback_data: str | None,
    messenger: MessagingBridge | None = None,
) -> ActionResult:
    """
    Resolve the owner by linked chat, dispatch the action, reply in chat.

    Unknown chats and malformed payloads are rejected without side effects.
    """
    messenger = messenger if messenger is not None else get_messenger()

    owner_id = find_user_by_chat_id(db, chat_id)
    if owner_id is None:
        logger.warning("Callback from unlinked chat_id=%s ignored", chat_id)
        return ActionResult.failure(ERROR_NOT_FOUND, "Telegram account is not linked")

    parsed = parse_callback_data(callback_data)
    if parsed is None or parsed[0] != ACTION_MARK_EQUB_PAID:
        logger.warning("Unknown callback data %r from chat_id=%s", callback_data, chat_id)
        return ActionResult.failure(ERROR_VALIDATION, "Unknown action")

    _, contribution_id = parsed
    result = mark_contribution_paid(db, owner_id, contribution_id, messenger=messenger)

    if result.ok:
        reply = "✅ <b>Payment recorded!</b>"
    else:
        reply = f"❌ {html.escape(result.message or 'Action failed')}"
    messenger.send_message(chat_id, reply)
    return result
