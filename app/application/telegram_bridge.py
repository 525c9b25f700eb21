"""
Telegram bridge - mirrors in-app notifications to a linked Telegram chat.

Delivery is best-effort: every method returns None/False on failure and
logs instead of raising, so callers never have to guard against transport
errors.
"""
import logging
from dataclasses import dataclass
from typing import Protocol

import requests

from app.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InlineAction:
    """A single inline keyboard button ("✅ Pay now")."""
    text: str
    callback_data: str


class MessagingBridge(Protocol):
    def send_message(self, chat_id: str, text: str, inline_action: InlineAction | None = None) -> str | None:
        ...

    def delete_message(self, chat_id: str, message_id: str) -> bool:
        ...


class TelegramBridge:
    """Bot API client over requests (sendMessage / deleteMessage / answerCallbackQuery)."""

    def __init__(self, bot_token: str, api_base: str = "https://api.telegram.org", timeout: int = 5):
        self.bot_token = bot_token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "TelegramBridge":
        cfg = get_settings()
        return cls(cfg.TELEGRAM_BOT_TOKEN, cfg.TELEGRAM_API_BASE)

    def _call(self, method: str, payload: dict) -> dict | bool | None:
        if not self.bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN is not set, skipping %s", method)
            return None
        try:
            resp = requests.post(
                f"{self.api_base}/bot{self.bot_token}/{method}",
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.exception("Telegram %s failed for chat_id=%s", method, payload.get("chat_id"))
            return None

        if resp.status_code != 200:
            logger.warning("Telegram %s returned HTTP %d: %s", method, resp.status_code, resp.text[:200])
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.warning("Telegram %s returned non-JSON body", method)
            return None
        if not data.get("ok"):
            logger.warning("Telegram %s rejected: %s", method, data.get("description"))
            return None
        return data.get("result")

    def send_message(self, chat_id: str, text: str, inline_action: InlineAction | None = None) -> str | None:
        """Send an HTML message. Returns the Telegram message_id or None."""
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        if inline_action:
            payload["reply_markup"] = {
                "inline_keyboard": [[
                    {"text": inline_action.text, "callback_data": inline_action.callback_data},
                ]],
            }
        result = self._call("sendMessage", payload)
        if not isinstance(result, dict) or "message_id" not in result:
            return None
        return str(result["message_id"])

    def delete_message(self, chat_id: str, message_id: str) -> bool:
        if not str(message_id).isdigit():
            logger.warning("Cannot delete Telegram message with id %r", message_id)
            return False
        return self._call("deleteMessage", {"chat_id": chat_id, "message_id": int(message_id)}) is True

    def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> bool:
        payload = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return self._call("answerCallbackQuery", payload) is True


def get_messenger() -> TelegramBridge:
    """Default messaging bridge built from settings (FastAPI dependency too)."""
    return TelegramBridge.from_settings()
