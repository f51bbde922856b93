"""
Portal session management and authentication.

Logs in to the portal through the OAuth identity provider using the shared
browser, with the captcha answered by the admin over Telegram. The login
is modelled as an explicit state machine so every step is observable and
illegal moves fail loudly.
"""

import logging
import time
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional
from urllib.parse import urlparse

from vu_monitor.auth.captcha import CaptchaChannel
from vu_monitor.browser.context import BrowserContext
from vu_monitor.browser.login_page import PortalLoginPage
from vu_monitor.config import Settings, get_settings
from vu_monitor.exceptions import (
    BrowserError,
    DeliveryError,
    InvalidTransition,
    LoginError,
    LoginFailed,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Steps of a login attempt."""
    UNAUTHENTICATED = "unauthenticated"
    NAVIGATING = "navigating"
    AWAITING_CREDENTIAL_ENTRY = "awaiting_credential_entry"
    AWAITING_CAPTCHA = "awaiting_captcha"
    SUBMITTING_FORM = "submitting_form"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


# FAILED is reachable from every state and is not listed here
TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.UNAUTHENTICATED: frozenset({SessionState.NAVIGATING}),
    SessionState.NAVIGATING: frozenset({SessionState.AWAITING_CREDENTIAL_ENTRY}),
    SessionState.AWAITING_CREDENTIAL_ENTRY: frozenset({
        SessionState.AWAITING_CAPTCHA,
        SessionState.SUBMITTING_FORM,
    }),
    SessionState.AWAITING_CAPTCHA: frozenset({SessionState.SUBMITTING_FORM}),
    SessionState.SUBMITTING_FORM: frozenset({SessionState.AUTHENTICATED}),
    SessionState.AUTHENTICATED: frozenset({SessionState.UNAUTHENTICATED}),
    SessionState.FAILED: frozenset({SessionState.UNAUTHENTICATED}),
}


def is_login_url(url: str, login_domain: str) -> bool:
    """True if the URL belongs to the identity provider or a login page."""
    parsed = urlparse(url)
    return parsed.hostname == login_domain or "login" in parsed.path


class RetryPolicy:
    """How often a login is attempted and how long to wait in between."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 10,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def wait(self, attempt: int) -> None:
        logger.info(f"Waiting {self.backoff_seconds}s before login attempt {attempt + 1}...")
        self.sleep(self.backoff_seconds)


class SessionManager:
    """
    Owns the authenticated state of the shared browser.

    Handles:
    - Browser health checks and rebuilds
    - Login with credentials and an optional captcha
    - Session expiry detection on course pages
    """

    def __init__(
        self,
        context: BrowserContext,
        captcha: CaptchaChannel,
        settings: Optional[Settings] = None,
        retry_policy: Optional[RetryPolicy] = None,
        page_factory: Callable[[BrowserContext], PortalLoginPage] = PortalLoginPage,
    ):
        """
        Initialize the session manager.

        Args:
            context: Shared browser context
            captcha: Channel used to get captcha codes from the admin
            settings: Optional settings instance, will use default if not provided
            retry_policy: Login retry configuration
            page_factory: Builds the login page object (replaced in tests)
        """
        self.context = context
        self.captcha = captcha
        self.settings = settings or get_settings()
        self.retry_policy = retry_policy or RetryPolicy()
        self.page_factory = page_factory

        self.state = SessionState.UNAUTHENTICATED
        self.history: List[SessionState] = [self.state]

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    def transition(self, target: SessionState) -> None:
        """
        Move to ``target``.

        Raises:
            InvalidTransition: If the move is not in the transition table
        """
        if target != SessionState.FAILED and target not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {target.value}")
        logger.debug(f"Session state: {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def _restart_from_scratch(self) -> None:
        # A fresh browser has no cookies, so whatever we knew about the session is gone
        self.state = SessionState.UNAUTHENTICATED
        self.history.append(self.state)
        self.context.restart()

    def ensure_healthy(self) -> None:
        """
        Make sure the browser answers; rebuild it otherwise.

        Raises:
            BrowserError: If the browser cannot be started
        """
        if self.context.ping():
            return
        logger.warning("Browser not healthy, reinitializing...")
        self._restart_from_scratch()

    def reset(self) -> None:
        """Tear the browser down and start over, forgetting the session."""
        logger.info("Resetting browser session...")
        self._restart_from_scratch()

    def login(self) -> None:
        """
        Authenticate, retrying with a fresh browser between attempts.

        Raises:
            LoginFailed: If every attempt failed
        """
        # Waiting on the admin must not eat into a course's time budget
        with self.context.unbounded():
            self._login_with_retries()

    def _login_with_retries(self) -> None:
        max_attempts = self.retry_policy.max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, max_attempts + 1):
            try:
                self.ensure_healthy()
                self._attempt_login(attempt)
                return
            except (LoginError, BrowserError, DeliveryError) as e:
                last_error = e
                self.transition(SessionState.FAILED)
                logger.error(f"Login attempt {attempt}/{max_attempts} failed: {e}")

            if attempt < max_attempts:
                try:
                    self.reset()
                except BrowserError as e:
                    last_error = e
                    logger.error(f"Error reinitializing browser: {e}")
                self.retry_policy.wait(attempt)

        raise LoginFailed(f"Login failed after {max_attempts} attempts: {last_error}")

    def _attempt_login(self, attempt: int) -> None:
        """
        Single pass through the login form.

        Raises:
            LoginError: If the form misbehaves or we do not land on the portal
            CaptchaTimeout: If the admin did not answer in time
            BrowserError: On browser failures
        """
        logger.info(f"Logging in (attempt {attempt}/{self.retry_policy.max_attempts})...")
        if self.state in (SessionState.AUTHENTICATED, SessionState.FAILED):
            self.transition(SessionState.UNAUTHENTICATED)

        self.transition(SessionState.NAVIGATING)
        page = self.page_factory(self.context)
        page.open(self.settings.portal_login_url)
        page.wait_until_ready()

        self.transition(SessionState.AWAITING_CREDENTIAL_ENTRY)
        page.enter_credentials(self.settings.vu_username, self.settings.vu_password)

        image = page.captcha_image()
        if image:
            logger.info("Captcha detected, asking admin...")
            self.transition(SessionState.AWAITING_CAPTCHA)
            code = self.captcha.solve(image)
            page.enter_captcha(code)

        self.transition(SessionState.SUBMITTING_FORM)
        landed = page.submit(self.settings.portal_domain)
        logger.info(f"Current URL after login: {landed}")

        if urlparse(landed).hostname != self.settings.portal_domain:
            raise LoginError(f"Login failed - unexpected URL: {landed}")

        self.transition(SessionState.AUTHENTICATED)
        logger.info(f"Login successful for user: {self.settings.vu_username}")

    def is_session_valid(self, probe_url: str) -> bool:
        """
        Open a course page and see whether we get bounced to the login.

        Args:
            probe_url: Any course page URL

        Returns:
            bool: True if the page loaded on the portal itself
        """
        landed = self.context.goto(probe_url, timeout=20)
        logger.debug(f"Session probe landed on: {landed}")

        if is_login_url(landed, self.settings.login_domain):
            logger.info("Session expired, login required")
            valid = False
        elif urlparse(landed).hostname == self.settings.portal_domain:
            valid = True
        else:
            logger.warning(f"Unexpected URL during session probe: {landed}")
            valid = False

        if not valid and self.state == SessionState.AUTHENTICATED:
            self.transition(SessionState.UNAUTHENTICATED)
        return valid

    def ensure_authenticated(self, probe_url: str) -> None:
        """
        Healthy browser, valid session; log in if either is missing.

        Raises:
            LoginFailed: If the login could not be completed
        """
        self.ensure_healthy()

        try:
            valid = self.is_session_valid(probe_url)
        except BrowserError as e:
            logger.warning(f"Could not verify session: {e}")
            self.reset()
            valid = False

        if valid:
            if self.state != SessionState.AUTHENTICATED:
                # Cookies survived from an earlier login in this browser
                self.state = SessionState.AUTHENTICATED
                self.history.append(self.state)
            logger.info("Already logged in, session is active")
            return

        self.login()
