from datetime import timedelta

import pytest

from vu_monitor.models import AssignmentDetails
from vu_monitor.reconcile.reminders import ReminderScheduler, last_day_key, reminder_key

from conftest import NOW, assignment, days_from_now, portal_date, quiz


@pytest.fixture
def reminders(gateway, extractor, tracker, formatter, persist):
    return ReminderScheduler(gateway, extractor, tracker, formatter, persist)


def track(course, activity, details):
    course.sections.setdefault("Week 1", []).append(activity)
    course.assignments[activity.url] = details


def test_reminder_sent_once_when_deadline_enters_last_day(reminders, gateway, extractor, course, state, persist):
    hw = assignment()
    due = portal_date(NOW + timedelta(hours=30))
    details = AssignmentDetails(opened=days_from_now(-3), deadline=due)
    track(course, hw, details)
    extractor.details[hw.url] = details

    assert reminders.run(state, now=NOW) == 0
    assert gateway.messages == []

    later = NOW + timedelta(hours=8)
    assert reminders.run(state, now=later) == 1
    assert reminders.run(state, now=later + timedelta(minutes=5)) == 0

    assert len(gateway.messages) == 1
    assert "22 hours" in gateway.messages[0].text
    assert reminder_key(course.id, hw.url) in state.reminders
    assert last_day_key(course.id, hw.url) in state.last_day_reminders
    assert state.reminders[reminder_key(course.id, hw.url)].deadline == NOW + timedelta(hours=30)
    assert persist.calls == 1


def test_ledger_short_circuits_before_fetching(reminders, extractor, course, state):
    hw = assignment()
    track(course, hw, AssignmentDetails(deadline=portal_date(NOW + timedelta(hours=2))))
    extractor.details[hw.url] = course.assignments[hw.url]

    reminders.run(state, now=NOW)
    calls = len(extractor.detail_calls)
    reminders.run(state, now=NOW + timedelta(minutes=10))

    assert len(extractor.detail_calls) == calls


def test_passed_deadline_gets_no_reminder(reminders, gateway, extractor, course, state):
    hw = assignment()
    details = AssignmentDetails(deadline=portal_date(NOW - timedelta(minutes=5)))
    track(course, hw, details)
    extractor.details[hw.url] = details

    assert reminders.run(state, now=NOW) == 0
    assert gateway.messages == []


def test_falls_back_to_stored_details_when_fetch_fails(reminders, gateway, course, state):
    q = quiz()
    track(course, q, AssignmentDetails(opened=days_from_now(-2), closed=portal_date(NOW + timedelta(minutes=45))))

    assert reminders.run(state, now=NOW) == 1
    assert "45 minutes" in gateway.messages[0].text
    assert "quiz" in gateway.messages[0].text


def test_unknown_deadline_is_ignored(reminders, gateway, course, state):
    track(course, assignment(), AssignmentDetails.unavailable())

    assert reminders.run(state, now=NOW) == 0


def test_failed_send_leaves_ledgers_untouched(reminders, gateway, extractor, course, state):
    hw = assignment()
    details = AssignmentDetails(deadline=portal_date(NOW + timedelta(hours=3)))
    track(course, hw, details)
    extractor.details[hw.url] = details
    gateway.fail_sends = True

    assert reminders.run(state, now=NOW) == 0
    assert state.reminders == {}
    assert state.last_day_reminders == {}
