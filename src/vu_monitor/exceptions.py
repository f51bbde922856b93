"""
Exception hierarchy for the VU course monitor.

Each class maps to one recovery strategy in the check cycle:
browser errors reset the session and abandon the current course,
login failures abort the whole cycle, delivery errors are logged
and processing continues.
"""


class MonitorError(Exception):
    """Base class for all monitor errors."""
    pass


class BrowserError(MonitorError):
    """Raised when the browsing context fails (closed target, dead driver, bad navigation)."""
    pass


class NavigationTimeout(BrowserError):
    """Raised when a page did not load in time."""
    pass


class CourseTimeout(MonitorError):
    """Raised when a course check exceeds its time budget."""
    pass


class LoginRequired(MonitorError):
    """Raised when a content page turned out to be the login page."""
    pass


class LoginError(MonitorError):
    """Raised when a single login attempt fails."""
    pass


class LoginFailed(MonitorError):
    """Raised when every login attempt of a cycle has failed."""
    pass


class CaptchaTimeout(LoginError):
    """Raised when no captcha reply arrived within the configured bound."""
    pass


class InvalidTransition(MonitorError):
    """Raised when the session state machine is asked for an illegal move."""
    pass


class ExtractionError(MonitorError):
    """Raised when a course page could not be turned into a snapshot."""
    pass


class DeliveryError(MonitorError):
    """Raised when a message or file could not be delivered."""
    pass


class MessageNotFound(DeliveryError):
    """Raised when a message to edit no longer exists."""
    pass


class StoreError(MonitorError):
    """Raised when a state document cannot be read or written."""
    pass


class DownloadError(MonitorError):
    """Raised when an attachment download returned something other than the file."""
    pass
