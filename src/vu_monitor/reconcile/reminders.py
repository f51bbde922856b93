"""
Last-day reminders.

Once per activity, when its deadline is less than a day away, a reminder
with the exact hours and minutes left is sent.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from vu_monitor.deadlines import DeadlineTracker
from vu_monitor.exceptions import DeliveryError
from vu_monitor.models import ActivityRef, CourseRecord, MonitorState, ReminderLedgerEntry
from vu_monitor.notify.formatters import MessageFormatter, activity_button
from vu_monitor.notify.telegram import TelegramGateway
from vu_monitor.reconcile.notifier import due_text
from vu_monitor.scrapers.extractor import ContentExtractor

logger = logging.getLogger(__name__)


def reminder_key(course_id: str, activity_url: str) -> str:
    return f"{course_id}_{activity_url}"


def last_day_key(course_id: str, activity_url: str) -> str:
    return f"{reminder_key(course_id, activity_url)}_lastday"


class ReminderScheduler:
    """Sends the one-shot last-day reminder for every tracked deadline."""

    WINDOW_HOURS = 24

    def __init__(
        self,
        gateway: TelegramGateway,
        extractor: ContentExtractor,
        tracker: DeadlineTracker,
        formatter: MessageFormatter,
        persist: Callable[[], None],
    ):
        self.gateway = gateway
        self.extractor = extractor
        self.tracker = tracker
        self.formatter = formatter
        self.persist = persist

    def run(self, state: MonitorState, now: Optional[datetime] = None) -> int:
        """
        Check every assignment and quiz of every course.

        Returns:
            int: Number of reminders sent
        """
        logger.info("Checking for assignment reminders...")
        now = now or self.tracker.now()
        sent = 0

        for course in state.courses.values():
            for section, activity in course.deadline_activities():
                if self._check(state, course, section, activity, now):
                    sent += 1

        logger.info(f"Reminder check completed ({sent} sent)")
        return sent

    def _check(
        self,
        state: MonitorState,
        course: CourseRecord,
        section: str,
        activity: ActivityRef,
        now: datetime,
    ) -> bool:
        key = reminder_key(course.id, activity.url)
        lastday = last_day_key(course.id, activity.url)
        if key in state.reminders:
            return False
        if lastday in state.last_day_reminders:
            logger.debug(f"Last day reminder already sent for: {activity.name}")
            return False

        details = self.extractor.extract_details(activity)
        if not details.fetch_succeeded:
            details = course.assignments.get(activity.url)
            if details is None:
                return False
            logger.debug(f"Using stored details for reminder of {activity.name}")

        deadline_text = due_text(activity, details)
        instant = self.tracker.to_instant(deadline_text)
        if instant is None:
            return False

        hours_left = self.tracker.hours_until(deadline_text, now)
        if hours_left <= 0:
            logger.debug(f"Skipping reminder for {activity.name} - deadline has passed")
            return False
        if hours_left > self.WINDOW_HOURS:
            return False

        text = self.formatter.format_last_day_reminder(
            course.name, section, activity, deadline_text, hours_left
        )
        try:
            self.gateway.send_message(text, reply_markup=activity_button(activity))
        except DeliveryError as e:
            logger.error(f"Error sending reminder for {activity.name}: {e}")
            return False

        entry = ReminderLedgerEntry(
            sent_at=now,
            deadline=instant,
            course_name=course.name,
            activity_name=activity.name,
        )
        state.last_day_reminders[lastday] = entry
        state.reminders[key] = entry.model_copy()
        self.persist()

        logger.info(f"Sent last day reminder for: {activity.name}")
        return True
