"""
Overview messages kept up to date by editing in place.

Each course has one overview message listing its sections, and there is
one deadline overview across all courses. Message ids are remembered so
the same message is edited every cycle; a deleted message is replaced by
a fresh one.
"""

import logging
from datetime import datetime
from typing import Callable, List, Mapping, Optional

from vu_monitor.deadlines import DeadlineEntry, DeadlineTracker
from vu_monitor.exceptions import DeliveryError, MessageNotFound
from vu_monitor.models import ActivityRef, CourseRecord, MonitorState
from vu_monitor.notify.formatters import MessageFormatter
from vu_monitor.notify.telegram import TelegramGateway

logger = logging.getLogger(__name__)


class OverviewPublisher:
    """Publishes the per-course overviews and the deadline overview."""

    def __init__(
        self,
        gateway: TelegramGateway,
        tracker: DeadlineTracker,
        formatter: MessageFormatter,
        persist: Callable[[], None],
    ):
        self.gateway = gateway
        self.tracker = tracker
        self.formatter = formatter
        self.persist = persist

    def _edit_or_send(self, message_id: Optional[int], text: str) -> int:
        if message_id:
            try:
                self.gateway.edit_message(message_id, text)
                return message_id
            except MessageNotFound:
                logger.info(f"Message {message_id} no longer exists, sending a new one")
        return self.gateway.send_message(text)

    def publish_course(
        self,
        state: MonitorState,
        course: CourseRecord,
        sections: Mapping[str, List[ActivityRef]],
    ) -> None:
        """Send or edit the overview message of one course."""
        text = self.formatter.format_course_overview(course, dict(sections))
        current = state.message_ids.get(course.id)
        try:
            message_id = self._edit_or_send(current, text)
        except DeliveryError as e:
            logger.error(f"Error updating overview of {course.name}: {e}")
            return

        if message_id != current:
            state.message_ids[course.id] = message_id
            self.persist()

    def deadline_entries(self, state: MonitorState, now: Optional[datetime] = None) -> List[DeadlineEntry]:
        """
        Collect upcoming events across all courses.

        An assignment or quiz contributes its opening if that is still ahead
        and its deadline unless it has passed. Sorted by days remaining,
        unknown dates last.
        """
        now = now or self.tracker.now()
        entries: List[DeadlineEntry] = []

        for course in state.courses.values():
            for url, details in course.assignments.items():
                found = course.find_activity(url)
                if found is None:
                    continue
                activity = found[1]

                opened = self.tracker.parse(details.opened, now)
                if opened.instant is not None and opened.instant > now:
                    entries.append(DeadlineEntry(
                        course_name=course.name,
                        activity_name=activity.name,
                        url=url,
                        is_quiz=activity.is_quiz,
                        event="opened",
                        info=opened,
                    ))

                due = details.closed if activity.is_quiz else details.deadline
                if not due:
                    continue
                info = self.tracker.parse(due, now)
                if info.is_expired:
                    continue
                entries.append(DeadlineEntry(
                    course_name=course.name,
                    activity_name=activity.name,
                    url=url,
                    is_quiz=activity.is_quiz,
                    info=info,
                ))

        entries.sort(key=lambda entry: entry.sort_key)
        return entries

    def publish_deadlines(self, state: MonitorState, now: Optional[datetime] = None) -> None:
        """Send or edit the single deadline overview message."""
        text = self.formatter.format_deadline_overview(self.deadline_entries(state, now))
        current = state.deadline_message_id
        try:
            message_id = self._edit_or_send(current, text)
        except DeliveryError as e:
            logger.error(f"Error updating deadline overview: {e}")
            return

        if message_id != current:
            state.deadline_message_id = message_id
            self.persist()
