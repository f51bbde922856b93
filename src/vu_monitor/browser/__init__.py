"""Browser layer: the shared Chrome session and the login page object."""

from vu_monitor.browser.context import BrowserContext
from vu_monitor.browser.login_page import PortalLoginPage

__all__ = ["BrowserContext", "PortalLoginPage"]
