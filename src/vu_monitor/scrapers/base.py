"""
Base scraper class with shared utilities.

Provides common functionality for all portal scrapers: loading a page in
the shared browser, parsing it, and spotting the login page.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from vu_monitor.browser.context import BrowserContext
from vu_monitor.config import Settings, get_settings
from vu_monitor.exceptions import LoginRequired

logger = logging.getLogger(__name__)

# Elements that only exist on the login form
LOGIN_MARKERS = (
    'input[name="UserID"]',
    'input[placeholder*="کاربری"]',
    'input[name="password"]',
    'input[placeholder*="رمز"]',
    'form[action*="login"]',
    ".loginform",
    "#page-login-index",
)


class BaseScraper(ABC):
    """
    Base class for portal scrapers.

    Pages are rendered by the shared browser and parsed with BeautifulSoup.
    """

    # Something Moodle puts on every page once it has rendered
    READY_SELECTOR = "#page, #page-wrapper, body"

    def __init__(self, context: BrowserContext, settings: Optional[Settings] = None):
        """
        Initialize scraper with the shared browser.

        Args:
            context: Browser context holding the authenticated session
            settings: Optional settings instance, will use default if not provided
        """
        self.context = context
        self.settings = settings or get_settings()

    @abstractmethod
    def scrape(self, *args, **kwargs) -> Any:
        """Scrape data - implemented by subclasses."""
        pass

    @staticmethod
    def parse_html(html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "lxml")

    def load(self, url: str, timeout: float = 60) -> BeautifulSoup:
        """
        Open a page in the browser and parse it.

        Args:
            url: Page to open
            timeout: Navigation timeout in seconds

        Returns:
            BeautifulSoup: Parsed page

        Raises:
            LoginRequired: If the portal bounced us to the login page
        """
        landed = self.context.goto(url, timeout=timeout)
        logger.debug(f"Navigated to: {landed}")
        self.context.wait_for(self.READY_SELECTOR, timeout=10)

        soup = self.parse_html(self.context.page_source)
        if self.is_login_page(landed, soup):
            raise LoginRequired(f"Login page shown instead of {url}")
        return soup

    def is_login_page(self, url: str, soup: BeautifulSoup) -> bool:
        parsed = urlparse(url)
        if parsed.hostname == self.settings.login_domain or "login" in parsed.path:
            return True
        return any(soup.select_one(marker) is not None for marker in LOGIN_MARKERS)

    @staticmethod
    def clean_text(text: Optional[str]) -> str:
        """
        Clean and normalize text content.

        Args:
            text: Text to clean

        Returns:
            str: Cleaned text
        """
        if not text:
            return ""
        return re.sub(r"\s+", " ", text).strip()

    @staticmethod
    def absolute_url(base_url: str, href: Optional[str]) -> str:
        if not href:
            return ""
        return urljoin(base_url, href)
