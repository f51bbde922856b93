"""
Page object for the portal's login flow.

The portal hands off to an OAuth identity provider whose form asks for a
student ID, a password and, sometimes, an image captcha.
"""

import base64
import logging
from typing import Optional
from urllib.parse import urlparse

from selenium.common.exceptions import WebDriverException

from vu_monitor.browser.context import BrowserContext
from vu_monitor.exceptions import BrowserError, LoginError

logger = logging.getLogger(__name__)

IDENTITY_PROVIDER_BUTTON = ".btn.login-identityprovider-btn.btn-block"
USERNAME_FIELDS = ('input[name="UserID"]', 'input[placeholder*="کاربری"]')
PASSWORD_FIELDS = ('input[name="password"]', 'input[placeholder*="رمز"]')
CAPTCHA_IMAGE = "#captcha-img"
CAPTCHA_FIELD = 'input[name="mysecpngco"]'
SUBMIT_LABEL = "ورود"

CLICK_SUBMIT_SCRIPT = """
const label = arguments[0];
const button = Array.from(document.querySelectorAll('button'))
    .find(b => b.textContent.includes(label));
if (button) { button.click(); return true; }
return false;
"""


class PortalLoginPage:
    """Drives the login form through a BrowserContext."""

    def __init__(self, context: BrowserContext):
        self.context = context

    def open(self, login_url: str) -> None:
        """Load the portal login page and hand off to the identity provider."""
        logger.info("Navigating to portal login page...")
        self.context.goto(login_url)

        button = self.context.wait_for(IDENTITY_PROVIDER_BUTTON, timeout=10, visible=True)
        if button is None:
            logger.info("Identity provider button not found, assuming already redirected")
            return
        try:
            button.click()
            logger.info("Clicked identity provider button")
        except WebDriverException as e:
            raise BrowserError(f"Could not open identity provider: {e.msg or e}") from e

    def wait_until_ready(self, timeout: float = 30) -> None:
        """
        Wait for the credential form.

        Raises:
            LoginError: If the form never shows up
        """
        logger.info("Waiting for login form...")
        if self.context.wait_for(", ".join(USERNAME_FIELDS), timeout=timeout) is None:
            raise LoginError("Login form did not appear")

    def _field(self, selectors) -> str:
        for selector in selectors:
            if self.context.find(selector) is not None:
                return selector
        raise LoginError(f"Input not found: {selectors[0]}")

    def _type(self, selector: str, text: str) -> None:
        element = self.context.wait_for(selector, timeout=10, visible=True)
        if element is None:
            raise LoginError(f"Input not visible: {selector}")
        try:
            element.click()
            element.clear()
            element.send_keys(text)
        except WebDriverException as e:
            raise BrowserError(f"Could not type into {selector}: {e.msg or e}") from e

    def enter_credentials(self, username: str, password: str) -> None:
        logger.info("Entering credentials...")
        self._type(self._field(USERNAME_FIELDS), username)
        self._type(self._field(PASSWORD_FIELDS), password)

    def captcha_image(self) -> Optional[bytes]:
        """
        Return the captcha as image bytes, or None if the form has no captcha.

        The image is usually inlined as a base64 data URI; otherwise the
        element is screenshotted.
        """
        element = self.context.find(CAPTCHA_IMAGE)
        if element is None:
            return None
        try:
            src = element.get_attribute("src") or ""
            if src.startswith("data:image") and "," in src:
                return base64.b64decode(src.split(",", 1)[1])
            return element.screenshot_as_png
        except WebDriverException as e:
            raise BrowserError(f"Could not read captcha image: {e.msg or e}") from e

    def enter_captcha(self, code: str) -> None:
        self._type(CAPTCHA_FIELD, code)

    def submit(self, portal_domain: str, timeout: float = 120) -> str:
        """
        Press the login button and wait to land back on the portal.

        Returns:
            str: URL the browser ended up on

        Raises:
            LoginError: If there is no login button
        """
        logger.info("Submitting login form...")
        if not self.context.execute(CLICK_SUBMIT_SCRIPT, SUBMIT_LABEL):
            raise LoginError("Login button not found")

        if not self.context.wait_until_url(lambda url: urlparse(url).hostname == portal_domain, timeout=timeout):
            logger.warning("Login redirect timed out, checking where we landed...")
        return self.context.current_url
