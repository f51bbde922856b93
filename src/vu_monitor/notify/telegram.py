"""
Telegram Bot API client.

Sends, edits and polls messages via the Telegram Bot API.
https://core.telegram.org/bots/api
"""

import logging
import time
from pathlib import Path
from typing import Optional

import requests
from pydantic import BaseModel

from vu_monitor.config import Settings, get_settings
from vu_monitor.exceptions import DeliveryError, MessageNotFound

logger = logging.getLogger(__name__)

# Telegram Bot API endpoint
TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/{method}"

# Error descriptions that mean the message to edit is gone
MISSING_MESSAGE_ERRORS = ("message to edit not found", "message_id_invalid")


class AdminReply(BaseModel):
    """A text message the admin sent to the bot."""
    update_id: int
    chat_id: str
    text: str
    date: int


class TelegramGateway:
    """
    Telegram Bot API client for all outgoing and incoming messages.

    Course notifications go to the configured chat (and topic, if set);
    captcha challenges and cycle errors go to the admin chat.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Telegram gateway.

        Args:
            settings: Optional settings instance, will use default if not provided
            session: Optional requests session (mainly for tests)
        """
        self.settings = settings or get_settings()

        self.token = self.settings.telegram_bot_token
        self.chat_id = self.settings.telegram_chat_id
        self.admin_chat_id = self.settings.telegram_admin_chat_id
        self.topic_id = self.settings.telegram_topic_id

        self.session = session or requests.Session()
        if self.settings.http_proxy:
            self.session.proxies.update({
                "http": self.settings.http_proxy,
                "https": self.settings.http_proxy,
            })

    def _call(self, method: str, data: dict, files: Optional[dict] = None, timeout: int = 30) -> dict:
        """
        Invoke a Bot API method.

        Returns:
            dict: The ``result`` field of the response

        Raises:
            MessageNotFound: If the target message no longer exists
            DeliveryError: On any other API or transport failure
        """
        url = TELEGRAM_API_URL.format(token=self.token, method=method)
        try:
            if files:
                response = self.session.post(url, data=data, files=files, timeout=timeout)
            else:
                response = self.session.post(url, json=data, timeout=timeout)
        except requests.exceptions.Timeout as e:
            raise DeliveryError(f"Telegram {method} timed out") from e
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"Telegram {method} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            raise DeliveryError(
                f"Telegram API error: {response.status_code} - {response.text[:200]}"
            )

        if not body.get("ok"):
            description = body.get("description", "") or str(response.status_code)
            if any(marker in description.lower() for marker in MISSING_MESSAGE_ERRORS):
                raise MessageNotFound(description)
            raise DeliveryError(f"Telegram API error: {description}")

        return body.get("result", {})

    def _target(self, payload: dict, chat_id: Optional[str]) -> dict:
        """Address a payload, adding the topic for the main chat."""
        payload["chat_id"] = chat_id or self.chat_id
        if self.topic_id and payload["chat_id"] == self.chat_id:
            payload["message_thread_id"] = self.topic_id
        return payload

    def send_message(
        self,
        text: str,
        parse_mode: str = "HTML",
        reply_markup: Optional[dict] = None,
        chat_id: Optional[str] = None,
    ) -> int:
        """
        Send a text message.

        Args:
            text: The message text to send
            parse_mode: Message formatting mode (HTML or Markdown)
            reply_markup: Optional inline keyboard
            chat_id: Override the destination chat

        Returns:
            int: Telegram message id of the sent message
        """
        payload = self._target({
            "text": text,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }, chat_id)
        if reply_markup:
            payload["reply_markup"] = reply_markup

        result = self._call("sendMessage", payload)
        message_id = result.get("message_id")
        logger.info(f"Telegram message sent successfully: {message_id}")
        return message_id

    def edit_message(self, message_id: int, text: str, parse_mode: str = "HTML") -> None:
        """
        Replace the text of a previously sent message.

        Raises:
            MessageNotFound: If the message was deleted
        """
        payload = self._target({
            "message_id": message_id,
            "text": text,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }, None)
        try:
            self._call("editMessageText", payload)
        except MessageNotFound:
            raise
        except DeliveryError as e:
            # Editing with identical text is reported as an error
            if "message is not modified" in str(e).lower():
                logger.debug(f"Message {message_id} unchanged")
                return
            raise
        logger.debug(f"Edited message {message_id}")

    def send_document(self, path: Path, caption: str = "") -> int:
        """Upload a file to the notification chat."""
        path = Path(path)
        payload = self._target({"caption": caption}, None)
        with path.open("rb") as f:
            result = self._call(
                "sendDocument",
                payload,
                files={"document": (path.name, f)},
                timeout=300,
            )
        return result.get("message_id")

    def send_photo(self, photo: bytes, caption: str = "", chat_id: Optional[str] = None) -> int:
        """Upload an in-memory image, to the admin chat by default."""
        payload = {"chat_id": chat_id or self.admin_chat_id, "caption": caption}
        result = self._call(
            "sendPhoto",
            payload,
            files={"photo": ("captcha.png", photo)},
            timeout=60,
        )
        return result.get("message_id")

    def send_admin_message(self, text: str, parse_mode: str = "HTML") -> int:
        return self.send_message(text, parse_mode=parse_mode, chat_id=self.admin_chat_id)

    def poll_admin_reply(self, window_seconds: int = 30) -> Optional[AdminReply]:
        """
        Look at the most recent update addressed to the bot.

        Only a text message from the admin chat, sent less than
        ``window_seconds`` ago, is returned.

        Returns:
            AdminReply or None
        """
        result = self._call("getUpdates", {"offset": -1, "limit": 1, "timeout": 0})
        if not result:
            return None

        update = result[0]
        message = update.get("message") or {}
        chat_id = str(message.get("chat", {}).get("id", ""))
        text = message.get("text")
        date = message.get("date", 0)

        if chat_id != str(self.admin_chat_id) or not text:
            return None
        if time.time() - date >= window_seconds:
            return None

        return AdminReply(
            update_id=update.get("update_id", 0),
            chat_id=chat_id,
            text=text.strip(),
            date=date,
        )

    def test_connection(self) -> bool:
        """
        Test if the bot token is valid.

        Returns:
            bool: True if connection is valid
        """
        try:
            bot_info = self._call("getMe", {}, timeout=10)
            logger.info(f"Connected to Telegram bot: @{bot_info.get('username')}")
            return True
        except DeliveryError as e:
            logger.error(f"Failed to connect to Telegram: {e}")
            return False
