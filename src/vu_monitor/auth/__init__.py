"""Authentication: session state machine and captcha channel."""

from vu_monitor.auth.captcha import CaptchaChannel
from vu_monitor.auth.session import RetryPolicy, SessionManager, SessionState

__all__ = ["CaptchaChannel", "RetryPolicy", "SessionManager", "SessionState"]
