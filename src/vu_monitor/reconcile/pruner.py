"""
Garbage collection of expired state.

Drops assignments whose deadline day has passed (together with their
notification records and any delivered files nothing refers to anymore)
and reminder ledger entries whose deadline is behind us.
"""

import logging
from datetime import datetime
from typing import Optional

from vu_monitor.deadlines import DeadlineTracker
from vu_monitor.models import CourseRecord, MonitorState

logger = logging.getLogger(__name__)


def prune_ledgers(state: MonitorState, now: datetime) -> int:
    """
    Remove reminder ledger entries whose stored deadline is in the past.

    Entries go whether or not their reminder ever fired.

    Returns:
        int: Number of entries removed across both ledgers
    """
    removed = 0
    for ledger in (state.reminders, state.last_day_reminders):
        expired = [key for key, entry in ledger.items() if entry.deadline < now]
        for key in expired:
            del ledger[key]
        removed += len(expired)
    if removed:
        logger.debug(f"Removed {removed} expired reminder ledger entries")
    return removed


class Pruner:
    """Deletes assignment, notification and file records past their deadline."""

    def __init__(self, tracker: DeadlineTracker):
        self.tracker = tracker

    def prune_course(self, course: CourseRecord, now: Optional[datetime] = None) -> int:
        """
        Prune one course record in place.

        Returns:
            int: Number of assignments removed
        """
        expired = [
            url for url, details in course.assignments.items()
            if details.due and self.tracker.is_expired(details.due, now)
        ]
        for url in expired:
            del course.assignments[url]
            course.sent_notifications.pop(url, None)

        reachable = {
            att.url
            for details in course.assignments.values()
            for att in details.attachments
        }
        orphaned = [url for url in course.sent_files if url not in reachable]
        for url in orphaned:
            del course.sent_files[url]

        if expired or orphaned:
            logger.info(
                f"Pruned {course.name}: {len(expired)} expired assignment(s), "
                f"{len(orphaned)} file record(s)"
            )
        return len(expired)

    def run(self, state: MonitorState, now: Optional[datetime] = None) -> int:
        """Prune every course. Returns the total number of assignments removed."""
        return sum(self.prune_course(course, now) for course in state.courses.values())
