from datetime import timedelta

from vu_monitor.models import (
    AssignmentDetails,
    FileSentRecord,
    NotificationRecord,
    ReminderLedgerEntry,
)
from vu_monitor.reconcile.pruner import Pruner, prune_ledgers

from conftest import NOW, assignment, attachment, days_from_now


def test_prunes_expired_assignments_and_their_records(tracker, course, state):
    old, current = assignment("Old", 1), assignment("Current", 2)
    old_file, current_file = attachment("old.pdf"), attachment("current.pdf")
    course.assignments[old.url] = AssignmentDetails(
        opened=days_from_now(-20), deadline=days_from_now(-2), attachments=[old_file]
    )
    course.assignments[current.url] = AssignmentDetails(
        opened=days_from_now(-1), deadline=days_from_now(3), attachments=[current_file]
    )
    for activity in (old, current):
        course.sent_notifications[activity.url] = NotificationRecord(activity_name=activity.name)
    course.sent_files[old_file.url] = FileSentRecord(file_name="old.pdf")
    course.sent_files[current_file.url] = FileSentRecord(file_name="current.pdf")

    removed = Pruner(tracker).run(state)

    assert removed == 1
    assert list(course.assignments) == [current.url]
    assert list(course.sent_notifications) == [current.url]
    assert list(course.sent_files) == [current_file.url]


def test_keeps_unknown_and_today(tracker, course):
    unknown, today = assignment("Unknown", 1), assignment("Today", 2)
    course.assignments[unknown.url] = AssignmentDetails.unavailable()
    course.assignments[today.url] = AssignmentDetails(deadline=days_from_now(0, hour=1))

    assert Pruner(tracker).prune_course(course) == 0
    assert len(course.assignments) == 2


def test_quiz_closing_date_counts(tracker, course):
    course.assignments["q"] = AssignmentDetails(opened=days_from_now(-9), closed=days_from_now(-1))

    assert Pruner(tracker).prune_course(course) == 1


def test_ledger_entries_past_their_deadline_are_removed(state):
    def entry(deadline):
        return ReminderLedgerEntry(deadline=deadline, course_name="c", activity_name="a")

    state.reminders = {"past": entry(NOW - timedelta(minutes=1)), "future": entry(NOW + timedelta(hours=2))}
    state.last_day_reminders = {"past_lastday": entry(NOW - timedelta(days=3))}

    assert prune_ledgers(state, NOW) == 2
    assert list(state.reminders) == ["future"]
    assert state.last_day_reminders == {}
