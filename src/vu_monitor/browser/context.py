"""
Shared browsing context.

Wraps a single headless Chrome instance used for every navigation of the
monitor. Operations are strictly sequential: the page, cookies and the
per-course time budget all live here.
"""

import logging
import os
import platform
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

import requests

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait
from webdriver_manager.chrome import ChromeDriverManager

from vu_monitor.config import Settings, get_settings
from vu_monitor.exceptions import BrowserError, CourseTimeout, NavigationTimeout

logger = logging.getLogger(__name__)

LINUX_CHROME_PATHS = [
    "/usr/bin/chromium-browser",
    "/usr/bin/chromium",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/snap/bin/chromium",
]

WINDOWS_CHROME_PATHS = [
    r"C:\Program Files\Google\Chrome\Application\chrome.exe",
    r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
    os.path.join(os.environ.get("LOCALAPPDATA", ""), r"Google\Chrome\Application\chrome.exe"),
]


def find_chrome_path() -> Optional[str]:
    """Guess the browser executable from well-known install locations."""
    candidates = WINDOWS_CHROME_PATHS if platform.system() == "Windows" else LINUX_CHROME_PATHS
    for path in candidates:
        if path and os.path.exists(path):
            return path
    return None


class BrowserContext:
    """
    One Chrome session shared by login, extraction and downloads.

    ``restart()`` tears the driver down and builds a fresh one; callers keep
    their reference to this object across restarts.
    """

    PAGE_LOAD_TIMEOUT = 60

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize the context without starting a browser.

        Args:
            settings: Optional settings instance, will use default if not provided
        """
        self.settings = settings or get_settings()
        self.driver: Optional[webdriver.Chrome] = None
        self._deadline: Optional[float] = None

    def _build_options(self) -> Options:
        options = Options()
        if not self.settings.debug_mode:
            options.add_argument("--headless=new")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-setuid-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--disable-gpu")
        options.add_argument("--disk-cache-size=0")
        options.add_argument("--media-cache-size=0")
        options.add_argument("--window-size=1920,1080")
        options.add_argument("--log-level=3")
        options.add_argument("--disable-blink-features=AutomationControlled")
        options.add_experimental_option("excludeSwitches", ["enable-automation"])
        options.add_experimental_option("useAutomationExtension", False)

        if self.settings.http_proxy:
            options.add_argument(f"--proxy-server={self.settings.http_proxy}")

        chrome_path = self.settings.chrome_path
        if not chrome_path:
            chrome_path = find_chrome_path()
            logger.debug(f"No browser path configured, guessed: {chrome_path}")
        if chrome_path:
            options.binary_location = chrome_path

        return options

    def start(self) -> None:
        """
        Launch the browser.

        Raises:
            BrowserError: If the browser could not be started; nothing is left running
        """
        self.close()
        logger.info("Starting Chrome browser...")
        try:
            self.driver = webdriver.Chrome(
                service=Service(ChromeDriverManager().install()),
                options=self._build_options(),
            )
            self.driver.set_page_load_timeout(self.PAGE_LOAD_TIMEOUT)
        except (WebDriverException, ValueError, OSError, requests.RequestException) as e:
            self.close()
            raise BrowserError(f"Could not start browser: {e}") from e
        logger.info("Browser initialized")

    def restart(self) -> None:
        self.close()
        self.start()

    def close(self) -> None:
        """Quit the browser, ignoring errors from an already dead driver."""
        if self.driver is None:
            return
        try:
            self.driver.quit()
        except WebDriverException as e:
            logger.debug(f"Error closing browser: {e}")
        finally:
            self.driver = None

    @property
    def is_started(self) -> bool:
        return self.driver is not None

    def ping(self) -> bool:
        """True if the browser is running and executes scripts."""
        if self.driver is None:
            return False
        try:
            return self.driver.execute_script("return true") is True
        except WebDriverException as e:
            logger.warning(f"Browser health check failed: {e.msg or e}")
            return False

    def _require_driver(self) -> webdriver.Chrome:
        if self.driver is None:
            raise BrowserError("Browser is not running")
        return self.driver

    # Time budget

    @contextmanager
    def budget(self, seconds: float) -> Iterator[None]:
        """Bound every navigation and download inside the block to ``seconds`` in total."""
        self._deadline = time.monotonic() + seconds
        try:
            yield
        finally:
            self._deadline = None

    @contextmanager
    def unbounded(self) -> Iterator[None]:
        """Pause the budget; time spent inside the block is not charged."""
        saved = self._deadline
        started = time.monotonic()
        self._deadline = None
        try:
            yield
        finally:
            if saved is not None:
                self._deadline = saved + (time.monotonic() - started)

    def remaining_budget(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return self._deadline - time.monotonic()

    def check_budget(self) -> None:
        remaining = self.remaining_budget()
        if remaining is not None and remaining <= 0:
            raise CourseTimeout("Course check ran out of time")

    def capped_timeout(self, timeout: float) -> float:
        """Shrink a timeout so it never outlives the current budget."""
        self.check_budget()
        remaining = self.remaining_budget()
        if remaining is None:
            return timeout
        return max(1.0, min(timeout, remaining))

    # Navigation

    def goto(self, url: str, timeout: float = PAGE_LOAD_TIMEOUT) -> str:
        """
        Navigate to a URL and return where the browser ended up.

        Raises:
            CourseTimeout: If the course budget is exhausted
            NavigationTimeout: If the page did not load in time
            BrowserError: On any other driver failure
        """
        driver = self._require_driver()
        capped = self.capped_timeout(timeout)
        try:
            driver.set_page_load_timeout(capped)
            driver.get(url)
        except TimeoutException as e:
            self.check_budget()
            raise NavigationTimeout(f"Timed out loading {url}") from e
        except WebDriverException as e:
            raise BrowserError(f"Navigation to {url} failed: {e.msg or e}") from e
        return driver.current_url

    @property
    def current_url(self) -> str:
        try:
            return self._require_driver().current_url
        except WebDriverException as e:
            raise BrowserError(f"Could not read current URL: {e.msg or e}") from e

    @property
    def page_source(self) -> str:
        try:
            return self._require_driver().page_source
        except WebDriverException as e:
            raise BrowserError(f"Could not read page: {e.msg or e}") from e

    # Elements

    def find(self, css: str) -> Optional[WebElement]:
        elements = self.find_all(css)
        return elements[0] if elements else None

    def find_all(self, css: str) -> List[WebElement]:
        try:
            return self._require_driver().find_elements(By.CSS_SELECTOR, css)
        except WebDriverException as e:
            raise BrowserError(f"Element lookup failed for {css}: {e.msg or e}") from e

    def wait_for(self, css: str, timeout: float = 10, visible: bool = False) -> Optional[WebElement]:
        """Wait until an element is present (or visible); None on timeout."""
        condition = EC.visibility_of_element_located if visible else EC.presence_of_element_located
        try:
            return WebDriverWait(self._require_driver(), self.capped_timeout(timeout)).until(
                condition((By.CSS_SELECTOR, css))
            )
        except TimeoutException:
            return None
        except WebDriverException as e:
            raise BrowserError(f"Waiting for {css} failed: {e.msg or e}") from e

    def wait_until_url(self, predicate, timeout: float = 120) -> bool:
        """Wait until ``predicate(current_url)`` holds; False on timeout."""
        try:
            WebDriverWait(self._require_driver(), self.capped_timeout(timeout)).until(
                lambda d: predicate(d.current_url)
            )
            return True
        except TimeoutException:
            return False
        except WebDriverException as e:
            raise BrowserError(f"Waiting for navigation failed: {e.msg or e}") from e

    def execute(self, script: str, *args):
        try:
            return self._require_driver().execute_script(script, *args)
        except WebDriverException as e:
            raise BrowserError(f"Script failed: {e.msg or e}") from e

    # Session data

    def cookies(self) -> Dict[str, str]:
        try:
            return {c["name"]: c["value"] for c in self._require_driver().get_cookies()}
        except WebDriverException as e:
            raise BrowserError(f"Could not read cookies: {e.msg or e}") from e

    def user_agent(self) -> str:
        return self.execute("return navigator.userAgent")

    def clear_cache(self) -> None:
        """Drop the HTTP cache, keeping cookies so the session survives."""
        if self.driver is None:
            return
        try:
            self.driver.execute_cdp_cmd("Network.clearBrowserCache", {})
            logger.debug("Browser cache cleared")
        except WebDriverException as e:
            logger.warning(f"Could not clear browser cache: {e.msg or e}")
