"""
Notification decisions for detected changes.

Decides what to announce for new and changed assignments and quizzes,
keeps the ``sent_notifications`` ledger, and triggers file delivery.
"""

import logging
from typing import Callable, Dict, List, Mapping, Optional

from vu_monitor.deadlines import DeadlineBand, DeadlineTracker
from vu_monitor.exceptions import DeliveryError
from vu_monitor.models import (
    ActivityRef,
    AssignmentDetails,
    Attachment,
    ChangeSet,
    CourseRecord,
    NewItem,
    NotificationRecord,
    UpdatedItem,
)
from vu_monitor.notify.formatters import MessageFormatter, activity_button
from vu_monitor.notify.telegram import TelegramGateway
from vu_monitor.reconcile.files import FileDelivery
from vu_monitor.scrapers.extractor import ContentExtractor

logger = logging.getLogger(__name__)


def due_text(activity: ActivityRef, details: AssignmentDetails) -> Optional[str]:
    """The closing date field that matters for this kind of activity."""
    return details.closed if activity.is_quiz else details.deadline


class NotificationReconciler:
    """
    Turns a ChangeSet into Telegram messages.

    Every new assignment or quiz is announced at most once per url; changes
    to a known one are reported as deltas against the stored details.
    State is flushed through ``persist`` after each mutation.
    """

    def __init__(
        self,
        gateway: TelegramGateway,
        extractor: ContentExtractor,
        tracker: DeadlineTracker,
        formatter: MessageFormatter,
        files: FileDelivery,
        persist: Callable[[], None],
    ):
        self.gateway = gateway
        self.extractor = extractor
        self.tracker = tracker
        self.formatter = formatter
        self.files = files
        self.persist = persist

    def prefetch(self, course: CourseRecord, sections: Mapping[str, List[ActivityRef]]) -> Dict[str, AssignmentDetails]:
        """
        Fill in details for assignments and quizzes we know too little about.

        Activities with no stored details, or with missing/unknown dates, are
        fetched; only successful fetches are stored.

        Returns:
            dict: Details fetched in this pass, keyed by activity url
        """
        fetched: Dict[str, AssignmentDetails] = {}
        for activities in sections.values():
            for activity in activities:
                if not activity.is_deadline_bearing or activity.url in fetched:
                    continue
                stored = course.assignments.get(activity.url)
                if stored is not None and not stored.needs_refresh(quiz=activity.is_quiz):
                    continue

                details = self.extractor.extract_details(activity)
                if not details.fetch_succeeded:
                    logger.warning(f"Skipping storing details for {activity.url} due to fetch failure")
                    continue

                fetched[activity.url] = details
                course.assignments[activity.url] = details
                self.persist()
        return fetched

    def handle_new(
        self,
        course: CourseRecord,
        changes: ChangeSet,
        fresh: Optional[Mapping[str, AssignmentDetails]] = None,
    ) -> int:
        """
        Announce new assignments and quizzes.

        Args:
            course: Course record (mutated in place)
            changes: Detected changes
            fresh: Details already fetched in this cycle, keyed by url

        Returns:
            int: Number of announcements sent
        """
        fresh = fresh or {}
        sent = 0
        for item in changes.new_items:
            if not item.activity.is_deadline_bearing:
                continue
            if item.activity.url in course.sent_notifications:
                logger.info(f"Notification already sent for: {item.activity.name}")
                continue
            try:
                if self._announce(course, item, fresh.get(item.activity.url)):
                    sent += 1
            except DeliveryError as e:
                logger.error(f"Failed to announce {item.activity.name}, will retry next cycle: {e}")
                changes.unannounced.add(item.activity.url)
        return sent

    def _announce(self, course: CourseRecord, item: NewItem, details: Optional[AssignmentDetails]) -> bool:
        activity = item.activity
        if details is None:
            details = self.extractor.extract_details(activity)
        if not details.fetch_succeeded:
            logger.warning(f"Couldn't fetch details for {activity.name}, sending basic notification")
            details = AssignmentDetails.unavailable(quiz=activity.is_quiz)

        info = self.tracker.parse(due_text(activity, details))
        if info.is_expired:
            logger.info(f"Skipping expired activity: {activity.name}")
            course.assignments[activity.url] = details
            self.persist()
            return False

        final_reminder = info.band == DeadlineBand.TODAY
        text = self.formatter.format_new_activity(
            course.name, item.section, activity, details, final_reminder=final_reminder
        )
        self.gateway.send_message(text, reply_markup=activity_button(activity))

        if final_reminder:
            logger.info(f"Last day - skipping file attachments for: {activity.name}")
        else:
            for attachment in details.attachments:
                self.files.deliver(course, attachment)

        course.assignments[activity.url] = details
        course.sent_notifications[activity.url] = NotificationRecord(activity_name=activity.name)
        self.persist()
        return True

    def handle_updates(self, course: CourseRecord, changes: ChangeSet) -> int:
        """
        Report changes to known assignments and quizzes.

        Returns:
            int: Number of change reports sent
        """
        sent = 0
        for item in changes.updated_items:
            if self._check_update(course, item):
                sent += 1
        return sent

    def _check_update(self, course: CourseRecord, item: UpdatedItem) -> bool:
        activity = item.activity
        old = item.old_details

        new = self.extractor.extract_details(activity)
        if not new.fetch_succeeded:
            logger.warning(f"Couldn't fetch details for {activity.name}, skipping update check")
            return False

        old_due = due_text(activity, old)
        new_due = due_text(activity, new)

        if self.tracker.is_expired(new_due):
            logger.info(f"Skipping update for expired activity: {activity.name}")
            course.assignments[activity.url] = new
            self.persist()
            return False

        opened_change = (old.opened, new.opened) if new.opened != old.opened else None

        due_change = None
        if new_due != old_due:
            # Reformatted text of a date that is long gone is not news
            if not (self.tracker.is_expired(old_due) and self.tracker.is_expired(new_due)):
                due_change = (old_due, new_due)

        added, removed = self._attachment_delta(old, new)
        if removed and not new.attachments:
            # An empty list where there used to be files means the page did not render them
            logger.warning(f"No attachment data received for {activity.name}; skipping deleted-file notification")
            removed = []
            new = new.model_copy(update={"attachments": list(old.attachments)})

        sent = False
        if opened_change or due_change or added or removed:
            text = self.formatter.format_update(
                course.name,
                activity,
                opened_change=opened_change,
                due_change=due_change,
                added=added,
                removed=removed,
            )
            try:
                self.gateway.send_message(text, reply_markup=activity_button(activity))
                sent = True
            except DeliveryError as e:
                # Stored details stay as they were so the change is reported next cycle
                logger.error(f"Failed to report update for {activity.name}, will retry next cycle: {e}")
                return False

            for attachment in added:
                self.files.deliver(course, attachment)

        course.assignments[activity.url] = new
        self.persist()
        return sent

    @staticmethod
    def _attachment_delta(old: AssignmentDetails, new: AssignmentDetails):
        if old.attachment_urls == new.attachment_urls:
            return [], []
        old_urls = set(old.attachment_urls)
        new_urls = set(new.attachment_urls)
        added: List[Attachment] = [a for a in new.attachments if a.url not in old_urls]
        removed: List[Attachment] = [a for a in old.attachments if a.url not in new_urls]
        return added, removed
