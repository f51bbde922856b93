"""
Deadline parsing and classification.

The portal prints dates like ``Monday، 20 January 2025، 11:59 PM``: a
weekday, Gregorian day/month/year with English month names, and a 12-hour
time, separated by Arabic commas. DeadlineTracker turns that text into an
aware datetime in the operating timezone, counts the days left and renders
it for display through an optional secondary calendar.
"""

import logging
import math
import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

import jdatetime
from dateutil.tz import gettz
from pydantic import BaseModel

from vu_monitor.models import UNKNOWN_DATE

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(
    r"(?P<weekday>\S+)\s*[،,]\s*(?P<day>\d{1,2})\s+(?P<month>[A-Za-z]+)\s+"
    r"(?P<year>\d{4})\s*[،,]\s*(?P<time>.+)"
)
TIME_PATTERN = re.compile(r"(?P<hour>\d{1,2}):(?P<minute>\d{2})\s*(?P<period>AM|PM)", re.IGNORECASE)

MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4,
    "may": 5, "june": 6, "july": 7, "august": 8,
    "september": 9, "october": 10, "november": 11, "december": 12,
}

SECONDS_PER_DAY = 24 * 60 * 60


class DeadlineBand(str, Enum):
    """How close a deadline is, evaluated in declaration order."""
    PASSED = "passed"
    TODAY = "today"
    ONE_DAY = "one_day"
    URGENT = "urgent"
    SOON = "soon"
    COMFORTABLE = "comfortable"
    UNKNOWN = "unknown"


def classify(days_remaining: Optional[int]) -> DeadlineBand:
    """Map a day count to its display band."""
    if days_remaining is None:
        return DeadlineBand.UNKNOWN
    if days_remaining < 0:
        return DeadlineBand.PASSED
    if days_remaining == 0:
        return DeadlineBand.TODAY
    if days_remaining == 1:
        return DeadlineBand.ONE_DAY
    if days_remaining <= 3:
        return DeadlineBand.URGENT
    if days_remaining <= 7:
        return DeadlineBand.SOON
    return DeadlineBand.COMFORTABLE


class DeadlineInfo(BaseModel):
    """
    Result of parsing a portal date.

    Attributes:
        instant: Parsed moment in the operating timezone (None if unparseable)
        days_remaining: Whole days until the deadline's calendar day (None if unparseable)
        display_text: Text to show users; the raw input when unparseable
    """
    instant: Optional[datetime] = None
    days_remaining: Optional[int] = None
    display_text: str = ""

    @property
    def band(self) -> DeadlineBand:
        return classify(self.days_remaining)

    @property
    def is_expired(self) -> bool:
        return self.days_remaining is not None and self.days_remaining < 0


class SecondaryCalendar(Protocol):
    """Renders a Gregorian date in another calendar for display."""

    def format_date(self, value: date) -> str:
        ...


class JalaliCalendar:
    """Solar Hijri rendering backed by jdatetime."""

    def format_date(self, value: date) -> str:
        jalali = jdatetime.date.fromgregorian(date=value)
        return jalali.strftime("%A, %d %B %Y")


class DeadlineTracker:
    """
    Parses, classifies and formats portal deadlines.

    Every component asks ``is_expired`` instead of doing its own date math,
    so "already past" means the same thing everywhere.
    """

    def __init__(
        self,
        tz_name: str = "Asia/Tehran",
        calendar: Optional[SecondaryCalendar] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the tracker.

        Args:
            tz_name: Timezone the portal's dates are written in
            calendar: Optional secondary calendar for display
            clock: Returns the current aware datetime (defaults to UTC now)
        """
        self.tz = gettz(tz_name) or timezone.utc
        self.calendar = calendar
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self.clock().astimezone(self.tz)

    def to_instant(self, date_text: Optional[str]) -> Optional[datetime]:
        """Parse portal text into an aware datetime, or None."""
        if not date_text or date_text == UNKNOWN_DATE:
            return None

        match = DATE_PATTERN.search(date_text)
        if not match:
            return None

        month = MONTHS.get(match.group("month").lower())
        if month is None:
            return None

        hour, minute = 0, 0
        time_match = TIME_PATTERN.search(match.group("time"))
        if time_match:
            hour = int(time_match.group("hour")) % 12
            minute = int(time_match.group("minute"))
            if time_match.group("period").upper() == "PM":
                hour += 12

        try:
            return datetime(
                int(match.group("year")), month, int(match.group("day")),
                hour, minute, tzinfo=self.tz,
            )
        except ValueError as e:
            logger.debug(f"Invalid date '{date_text}': {e}")
            return None

    def days_until(self, instant: datetime, now: Optional[datetime] = None) -> int:
        """
        Whole days from now until the start of the deadline's calendar day.

        A deadline later today gives 0, tomorrow gives 1, yesterday gives -1.
        """
        now = (now or self.now()).astimezone(self.tz)
        day_start = instant.astimezone(self.tz).replace(hour=0, minute=0, second=0, microsecond=0)
        return math.ceil((day_start - now).total_seconds() / SECONDS_PER_DAY)

    def parse(self, date_text: Optional[str], now: Optional[datetime] = None) -> DeadlineInfo:
        """
        Parse a portal date. Never raises.

        Args:
            date_text: Raw portal text (may be None or the unknown sentinel)
            now: Reference time, defaults to the tracker's clock

        Returns:
            DeadlineInfo: parsed instant, days remaining and display text
        """
        instant = self.to_instant(date_text)
        if instant is None:
            return DeadlineInfo(display_text=date_text or "")

        return DeadlineInfo(
            instant=instant,
            days_remaining=self.days_until(instant, now),
            display_text=self.format_instant(instant),
        )

    def is_expired(self, date_text: Optional[str], now: Optional[datetime] = None) -> bool:
        """True only for parseable dates whose day has already gone by."""
        return self.parse(date_text, now).is_expired

    def hours_until(self, date_text: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
        """Exact hours until the deadline instant, or None when unparseable."""
        instant = self.to_instant(date_text)
        if instant is None:
            return None
        now = now or self.now()
        return (instant - now).total_seconds() / 3600

    def format_date(self, value: date) -> str:
        """Render a date in the secondary calendar, or Gregorian when unavailable."""
        if self.calendar is not None:
            try:
                return self.calendar.format_date(value)
            except Exception as e:
                logger.warning(f"Secondary calendar failed for {value}: {e}")
        return value.strftime("%A, %d %B %Y")

    def format_instant(self, instant: datetime) -> str:
        local = instant.astimezone(self.tz)
        return f"{self.format_date(local.date())} - {local.strftime('%H:%M')}"

    def format_now(self) -> str:
        """Timestamp footer for overview messages."""
        now = self.now()
        return f"{self.format_date(now.date())}, {now.strftime('%H:%M:%S')}"


class DeadlineEntry(BaseModel):
    """One line of the deadline overview."""
    course_name: str
    activity_name: str
    url: str
    is_quiz: bool = False
    event: str = "deadline"
    info: DeadlineInfo

    @property
    def sort_key(self):
        days = self.info.days_remaining
        return (days is None, days if days is not None else 0)
