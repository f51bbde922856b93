from vu_monitor.deadlines import DeadlineEntry
from vu_monitor.models import ActivityRef, AssignmentDetails, CourseRecord
from vu_monitor.notify.formatters import MessageFormatter, activity_button, activity_emoji

from conftest import COURSE_URL, assignment, attachment, days_from_now, quiz


def test_new_assignment_message(formatter):
    details = AssignmentDetails(
        opened=days_from_now(-1), deadline=days_from_now(2), attachments=[attachment("brief.pdf")]
    )

    text = formatter.format_new_activity("DSP <1>", "Week 2", assignment(), details)

    assert text.startswith("🆕 <b>New assignment</b>")
    assert "DSP &lt;1&gt;" in text
    assert "📅 Opened:" in text
    assert "⏰ Due:" in text
    assert "⚠️ 2 days left" in text
    assert "brief.pdf" in text


def test_unknown_dates_are_left_out(formatter):
    text = formatter.format_new_activity("DSP", "Week 2", quiz(), AssignmentDetails.unavailable(quiz=True))

    assert "Opened" not in text
    assert "Closes" not in text


def test_update_lists_only_what_changed(formatter):
    text = formatter.format_update(
        "DSP",
        quiz(),
        due_change=(days_from_now(1), days_from_now(8)),
    )

    assert "Quiz dates changed" in text
    assert "⏰ Closes:" in text
    assert "Opening date" not in text
    assert "✅ 8 days left" in text


def test_last_day_reminder(formatter):
    text = formatter.format_last_day_reminder("DSP", "Week 2", assignment(), days_from_now(0), 5.25)

    assert "Only 5 hours and 15 minutes left!" in text


def test_course_overview_without_content(formatter):
    course = CourseRecord(id="1", name="DSP", url=COURSE_URL)

    text = formatter.format_course_overview(course, {})

    assert "No content has been added yet" in text
    assert COURSE_URL.replace("&", "&amp;") in text


def test_overview_is_truncated_to_telegram_limit(formatter):
    course = CourseRecord(id="1", name="DSP", url=COURSE_URL)
    activities = [
        ActivityRef(name=f"Lecture notes part {i}", type="resource", url=f"https://vu.um.ac.ir/mod/resource/view.php?id={i}")
        for i in range(200)
    ]

    text = formatter.format_course_overview(course, {"Week 1": activities})

    assert len(text) <= MessageFormatter.MAX_LENGTH
    assert text.count("<a ") == text.count("</a>")
    assert text.count("<b>") == text.count("</b>")
    assert "\n...\n" in text
    assert text.splitlines()[-1].startswith("🕐 ")


def test_deadline_overview_keeps_footer_when_truncated(formatter, tracker):
    entries = [
        DeadlineEntry(
            course_name="DSP",
            activity_name=f"Homework {i}",
            url=f"https://vu.um.ac.ir/mod/assign/view.php?id={i}",
            is_quiz=False,
            info=tracker.parse(days_from_now(5)),
        )
        for i in range(150)
    ]

    text = formatter.format_deadline_overview(entries)

    assert len(text) <= MessageFormatter.MAX_LENGTH
    assert text.count("<b>") == text.count("</b>")
    assert text.splitlines()[-1].startswith("🕐 Last updated:")


def test_error_message_is_escaped_and_short():
    text = MessageFormatter.format_error("<boom> " + "x " * 600)

    assert "&lt;boom&gt;" in text
    assert len(text) < 700


def test_activity_button_and_emoji():
    hw = assignment()

    assert activity_button(hw)["inline_keyboard"][0][0] == {"text": "🔗 View assignment", "url": hw.url}
    assert activity_emoji("mod_quiz") == "❓"
    assert activity_emoji("wiki") == "📌"
