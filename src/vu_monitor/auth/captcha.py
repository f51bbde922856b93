"""
Human-in-the-loop captcha solving over Telegram.

The captcha image goes to the admin chat and the login blocks until the
admin answers with the code.
"""

import logging
import time
import uuid
from typing import Callable, Optional

from vu_monitor.exceptions import CaptchaTimeout, DeliveryError
from vu_monitor.notify.formatters import MessageFormatter
from vu_monitor.notify.telegram import TelegramGateway

logger = logging.getLogger(__name__)


class CaptchaChannel:
    """
    Request/response channel between a login attempt and the admin.

    Every challenge carries a short correlation id in its caption. A reply
    is accepted only from the admin chat, only if it was sent within
    ``REPLY_WINDOW`` seconds and only if its update id is newer than the
    last one consumed. Telegram update ids only increase.
    """

    POLL_INTERVAL = 2  # seconds between getUpdates calls
    REPLY_WINDOW = 30  # seconds a reply stays fresh

    def __init__(
        self,
        gateway: TelegramGateway,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            gateway: Telegram gateway used for the photo and polling
            timeout: Seconds to wait for a reply; None waits forever
            sleep: Sleep function (injected in tests)
            clock: Monotonic clock (injected in tests)
        """
        self.gateway = gateway
        self.timeout = timeout
        self.sleep = sleep
        self.clock = clock
        self._last_update_id: Optional[int] = None

    def _poll(self):
        try:
            return self.gateway.poll_admin_reply(self.REPLY_WINDOW)
        except DeliveryError as e:
            logger.warning(f"Error checking Telegram updates: {e}")
            return None

    def _is_new(self, update_id: int) -> bool:
        return self._last_update_id is None or update_id > self._last_update_id

    def _consume(self, update_id: int) -> None:
        if self._is_new(update_id):
            self._last_update_id = update_id

    def _forget_pending(self) -> None:
        """Mark whatever the admin sent before this challenge as already seen."""
        reply = self._poll()
        if reply is not None:
            self._consume(reply.update_id)

    def solve(self, image: bytes) -> str:
        """
        Send the captcha image and wait for the admin's answer.

        Args:
            image: Captcha image bytes

        Returns:
            str: The code typed by the admin

        Raises:
            DeliveryError: If the image could not be sent
            CaptchaTimeout: If no reply arrived within ``timeout``
        """
        correlation_id = uuid.uuid4().hex[:6]
        self._forget_pending()

        caption = f"{MessageFormatter.format_captcha_prompt()}\n#{correlation_id}"
        self.gateway.send_photo(image, caption=caption)
        logger.info(f"Captcha {correlation_id} sent to admin, waiting for reply...")

        code = self.await_reply(correlation_id)

        try:
            self.gateway.send_admin_message(MessageFormatter.format_captcha_received())
        except DeliveryError as e:
            logger.warning(f"Could not confirm captcha receipt: {e}")
        return code

    def await_reply(self, correlation_id: str) -> str:
        started = self.clock()
        while True:
            reply = self._poll()
            if reply is not None and self._is_new(reply.update_id):
                self._consume(reply.update_id)
                logger.info(f"Captcha {correlation_id} answered")
                return reply.text

            if self.timeout is not None and self.clock() - started >= self.timeout:
                raise CaptchaTimeout(
                    f"No captcha reply for {correlation_id} within {self.timeout}s"
                )
            self.sleep(self.POLL_INTERVAL)
