"""
Telegram webhook - only inline-button callbacks are handled here.

Telegram retries any non-200 answer, so the endpoint always answers "OK".
"""
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Header
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_messenger
from app.application.telegram_actions import handle_callback_query
from app.application.telegram_bridge import TelegramBridge
from app.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/telegram", tags=["telegram"])


def _callback_chat_id(callback: dict) -> str | None:
    """Chat of the message carrying the button, falling back to the sender."""
    message = callback.get("message")
    chat = message.get("chat") if isinstance(message, dict) else None
    if not isinstance(chat, dict):
        chat = callback.get("from")
    if not isinstance(chat, dict) or chat.get("id") is None:
        return None
    return str(chat["id"])


@router.post("/webhook", response_class=PlainTextResponse)
def telegram_webhook(
    update: Any = Body(default=None),
    x_telegram_bot_api_secret_token: str | None = Header(default=None),
    db: Session = Depends(get_db),
    messenger: TelegramBridge = Depends(get_messenger),
):
    secret = get_settings().TELEGRAM_WEBHOOK_SECRET
    if secret and x_telegram_bot_api_secret_token != secret:
        logger.warning("Telegram webhook called with a wrong secret token")
        return "OK"

    chat_id = None
    try:
        callback = update.get("callback_query") if isinstance(update, dict) else None
        if not isinstance(callback, dict):
            return "OK"
        chat_id = _callback_chat_id(callback)
        if chat_id is None:
            return "OK"

        result = handle_callback_query(db, chat_id, callback.get("data"), messenger)
        answer = result.message if result.message else None
        if callback.get("id") and hasattr(messenger, "answer_callback_query"):
            messenger.answer_callback_query(callback["id"], answer)
    except Exception:
        logger.exception("Telegram callback failed for chat_id=%s", chat_id)
    return "OK"
