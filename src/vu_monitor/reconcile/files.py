"""
Attachment delivery.

Downloads assignment files with the browser's authenticated session and
forwards them to the notification chat, once per file url.
"""

import logging
import re
import unicodedata
from pathlib import Path
from typing import Callable, Optional, Tuple

import requests

from vu_monitor.browser.context import BrowserContext
from vu_monitor.config import Settings, get_settings
from vu_monitor.exceptions import BrowserError, DeliveryError, DownloadError
from vu_monitor.models import Attachment, CourseRecord, FileSentRecord
from vu_monitor.notify.formatters import MessageFormatter
from vu_monitor.notify.telegram import TelegramGateway

logger = logging.getLogger(__name__)

ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")
UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*]')

MB = 1024 * 1024


def normalize_file_name(name: str) -> str:
    """
    Make an attachment name safe to save and pleasant to read.

    Unicode is NFC-normalised, zero-width characters dropped, stray dots and
    spaces around the extension tidied, characters illegal in file names
    replaced, and a repeated extension (``report.pdf.pdf``) collapsed.
    """
    n = unicodedata.normalize("NFC", (name or "").strip())
    n = ZERO_WIDTH.sub("", n)
    n = re.sub(r"\s*\.\s*", ".", n)
    n = re.sub(r"\.+", ".", n)
    n = re.sub(r"[\s.]+$", "", n).lstrip()
    n = UNSAFE_CHARS.sub("_", n)

    parts = n.split(".")
    if len(parts) > 2:
        ext = parts[-1].lower()
        stem = [parts[0]] + [p for p in parts[1:-1] if p.lower() != ext]
        n = ".".join(stem + [parts[-1]])

    return n or "file"


class FileDelivery:
    """
    Sends attachment files to Telegram exactly once.

    Delivered files are recorded in the course's ``sent_files`` ledger and
    saved under the downloads directory.
    """

    # Telegram bots cannot upload documents larger than this
    MAX_UPLOAD_BYTES = 50 * MB
    MIN_FILE_BYTES = 100
    DOWNLOAD_TIMEOUT = 120

    def __init__(
        self,
        context: BrowserContext,
        gateway: TelegramGateway,
        persist: Callable[[], None],
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            context: Browser whose cookies authenticate the download
            gateway: Telegram gateway
            persist: Flushes state after a file is recorded
            settings: Optional settings instance, will use default if not provided
            session: Optional requests session (mainly for tests)
        """
        self.context = context
        self.gateway = gateway
        self.persist = persist
        self.settings = settings or get_settings()
        self.downloads_dir = Path(self.settings.downloads_dir)

        self.session = session or requests.Session()
        if self.settings.http_proxy:
            self.session.proxies.update({
                "http": self.settings.http_proxy,
                "https": self.settings.http_proxy,
            })

    def deliver(self, course: CourseRecord, attachment: Attachment) -> bool:
        """
        Download an attachment and send it to the chat.

        Failures are reported to the chat with the file link instead.

        Returns:
            bool: True if the file was delivered (or announced as too large)
        """
        if attachment.url in course.sent_files:
            logger.info(f"File already sent: {attachment.file_name}")
            return False

        file_name = normalize_file_name(attachment.file_name)
        logger.info(f"Downloading file: {file_name}")

        try:
            path, size = self._download(attachment.url, file_name)
            size_mb = size / MB

            if size > self.MAX_UPLOAD_BYTES:
                logger.warning(f"File too large ({size_mb:.2f} MB), sending link only")
                self.gateway.send_message(
                    MessageFormatter.format_file_too_large(file_name, size_mb, attachment.url)
                )
            else:
                logger.info(f"Sending file to Telegram: {file_name} ({size_mb:.2f} MB)")
                self.gateway.send_document(path, caption=f"📎 {file_name}")

        except (DownloadError, DeliveryError, BrowserError, requests.RequestException, OSError) as e:
            logger.error(f"Error downloading/sending file {file_name}: {e}")
            try:
                self.gateway.send_message(
                    MessageFormatter.format_file_error(file_name, attachment.url)
                )
            except DeliveryError as send_error:
                logger.error(f"Failed to send error message: {send_error}")
            return False

        course.sent_files[attachment.url] = FileSentRecord(
            file_name=file_name,
            local_path=str(path),
        )
        self.persist()
        logger.info(f"File sent: {file_name}")
        return True

    def _download(self, url: str, file_name: str) -> Tuple[Path, int]:
        """
        Fetch a file with the browser's cookies and save it.

        Returns:
            tuple: saved path and size in bytes

        Raises:
            DownloadError: If the portal answered with a page or a tiny body
        """
        headers = {
            "User-Agent": self.context.user_agent(),
            "Accept": "*/*",
        }
        timeout = self.context.capped_timeout(self.DOWNLOAD_TIMEOUT)

        response = self.session.get(
            url,
            headers=headers,
            cookies=self.context.cookies(),
            timeout=timeout,
            stream=True,
        )
        with response:
            response.raise_for_status()

            content_type = response.headers.get("Content-Type", "")
            logger.debug(f"Content-Type: {content_type}")
            if "text/html" in content_type:
                raise DownloadError("Received HTML page instead of file - session may have expired")

            self.downloads_dir.mkdir(parents=True, exist_ok=True)
            path = self.downloads_dir / file_name
            size = 0
            with path.open("wb") as f:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    f.write(chunk)
                    size += len(chunk)

        if size < self.MIN_FILE_BYTES:
            path.unlink(missing_ok=True)
            raise DownloadError("Downloaded content too small - likely an error")

        logger.info(f"File saved to: {path}")
        return path, size
