"""
Message formatters for Telegram notifications.

Formats course changes, reminders and overviews into HTML messages
that read well on mobile devices.
"""

from html import escape
from typing import Dict, Iterable, List, Optional, Tuple

from vu_monitor.deadlines import DeadlineBand, DeadlineEntry, DeadlineInfo, DeadlineTracker
from vu_monitor.models import UNKNOWN_DATE, ActivityRef, AssignmentDetails, Attachment, CourseRecord

DIVIDER = "━━━━━━━━━━━━━━━━━"

ACTIVITY_EMOJI = {
    "assign": "📝",
    "resource": "📁",
    "url": "🔗",
    "forum": "💬",
    "quiz": "❓",
    "page": "📄",
    "folder": "📂",
    "label": "🏷️",
}

# Change of a single date field: (old text, new text)
DateChange = Tuple[Optional[str], Optional[str]]


def activity_emoji(activity_type: str) -> str:
    return ACTIVITY_EMOJI.get(activity_type.replace("mod_", ""), "📌")


def activity_button(activity: ActivityRef) -> dict:
    """Inline keyboard with a single link to the activity."""
    label = "quiz" if activity.is_quiz else "assignment" if activity.is_assignment else "activity"
    return {"inline_keyboard": [[{"text": f"🔗 View {label}", "url": activity.url}]]}


class MessageFormatter:
    """
    Formats notification content for Telegram messages.

    Dates are rendered through the DeadlineTracker so every message shows
    them the same way.
    """

    # Telegram allows 4096 chars per message; leave a buffer
    MAX_LENGTH = 4000

    def __init__(self, tracker: DeadlineTracker):
        self.tracker = tracker

    @staticmethod
    def _truncate(text: str, max_length: int = 500) -> str:
        """Truncate text with ellipsis if too long."""
        if len(text) <= max_length:
            return text
        return text[:max_length - 3].rsplit(" ", 1)[0] + "..."

    def _fit(self, lines: List[str], footer: List[str]) -> str:
        """
        Join message lines within MAX_LENGTH.

        Whole lines are dropped from the end of the body, never cut, so every
        HTML tag stays closed; the footer is always kept.
        """
        text = "\n".join(lines + footer)
        if len(text) <= self.MAX_LENGTH:
            return text

        tail = ["..."] + footer
        room = self.MAX_LENGTH - len("\n".join(tail)) - 1
        kept: List[str] = []
        used = 0
        for line in lines:
            if used + len(line) + 1 > room:
                break
            kept.append(line)
            used += len(line) + 1
        return "\n".join(kept + tail)

    @staticmethod
    def _countdown(info: DeadlineInfo) -> Optional[str]:
        """Urgency line for a parsed deadline."""
        days = info.days_remaining
        band = info.band
        if band == DeadlineBand.UNKNOWN:
            return None
        if band == DeadlineBand.PASSED:
            return f"❌ <b>Deadline has passed</b> ({abs(days)} day(s) ago)"
        if band == DeadlineBand.TODAY:
            return "🔴 <b>Due today!</b>"
        if band == DeadlineBand.ONE_DAY:
            return "⚠️ <b>Only 1 day left</b>"
        if band == DeadlineBand.URGENT:
            return f"⚠️ {days} days left"
        if band == DeadlineBand.SOON:
            return f"🟡 {days} days left"
        return f"✅ {days} days left"

    def _date(self, text: Optional[str]) -> Optional[str]:
        if not text or text == UNKNOWN_DATE:
            return None
        return escape(self.tracker.parse(text).display_text)

    def format_new_activity(
        self,
        course_name: str,
        section: str,
        activity: ActivityRef,
        details: AssignmentDetails,
        final_reminder: bool = False,
    ) -> str:
        """
        Format the first announcement of an assignment or quiz.

        Args:
            course_name: Course the activity belongs to
            section: Section the activity appeared in
            activity: The new activity
            details: Fetched (or placeholder) details
            final_reminder: Deadline is today; use the reminder variant without attachments

        Returns:
            str: Formatted message string
        """
        kind = "quiz" if activity.is_quiz else "assignment"
        if final_reminder:
            title = f"⏰ <b>{kind.capitalize()} reminder</b>"
        else:
            title = f"🆕 <b>New {kind}</b>"

        lines = [
            title,
            "",
            f"🎓 Course: {escape(course_name)}",
            f"📍 Section: {escape(section)}",
            "",
            f"{activity_emoji(activity.type)} {escape(activity.name)}",
            "",
        ]

        opened = self._date(details.opened)
        if opened:
            lines.append(f"📅 Opened: {opened}")

        due_text = details.closed if activity.is_quiz else details.deadline
        due = self._date(due_text)
        if due:
            label = "Closes" if activity.is_quiz else "Due"
            lines.append(f"⏰ {label}: {due}")
            countdown = self._countdown(self.tracker.parse(due_text))
            if countdown:
                lines.append(countdown)

        if not final_reminder and details.attachments:
            lines.extend(["", "📎 <b>Attachments:</b>"])
            lines.extend(f"📄 {escape(att.file_name)}" for att in details.attachments)

        return "\n".join(lines).rstrip()

    def format_update(
        self,
        course_name: str,
        activity: ActivityRef,
        opened_change: Optional[DateChange] = None,
        due_change: Optional[DateChange] = None,
        added: Iterable[Attachment] = (),
        removed: Iterable[Attachment] = (),
    ) -> str:
        """
        Format a change report for a known assignment or quiz.

        Only the parts that changed are included.
        """
        added = list(added)
        removed = list(removed)
        kind = "quiz" if activity.is_quiz else "assignment"

        if opened_change or due_change:
            title = f"🔄 <b>{kind.capitalize()} dates changed</b>"
        else:
            title = f"🔄 <b>{kind.capitalize()} files changed</b>"

        lines = [
            title,
            "",
            f"📚 Course: {escape(course_name)}",
            f"{activity_emoji(activity.type)} {escape(activity.name)}",
            "",
        ]

        if opened_change:
            lines.append("📅 Opening date:")
            lines.extend(self._change_lines(opened_change))
            lines.append("")

        if due_change:
            lines.append("⏰ Closes:" if activity.is_quiz else "⏰ Deadline:")
            lines.extend(self._change_lines(due_change))
            countdown = self._countdown(self.tracker.parse(due_change[1]))
            if countdown:
                lines.append(f" {countdown}")
            lines.append("")

        if added:
            lines.append("➕ <b>New files:</b>")
            lines.extend(f" 📄 {escape(att.file_name)}" for att in added)
            lines.append("")

        if removed:
            lines.append("➖ <b>Removed files:</b>")
            lines.extend(f" 📄 {escape(att.file_name)}" for att in removed)

        return "\n".join(lines).rstrip()

    def _change_lines(self, change: DateChange) -> List[str]:
        old, new = change
        lines = []
        old_text = self._date(old)
        new_text = self._date(new)
        if old_text:
            lines.append(f" Before: {old_text}")
        if new_text:
            lines.append(f" Now: {new_text}")
        return lines

    def format_last_day_reminder(
        self,
        course_name: str,
        section: str,
        activity: ActivityRef,
        due_text: str,
        hours_left: float,
    ) -> str:
        """Format the one-shot reminder sent inside the last 24 hours."""
        kind = "quiz" if activity.is_quiz else "assignment"
        hours = int(hours_left)
        minutes = int((hours_left - hours) * 60)
        if hours == 0:
            remaining = f"🔴 <b>Only {minutes} minutes left!</b>"
        else:
            remaining = f"🔴 <b>Only {hours} hours and {minutes} minutes left!</b>"

        lines = [
            f"⏰ <b>Reminder: the {kind} deadline is near!</b>",
            "",
            f"🎓 Course: {escape(course_name)}",
            f"📍 Section: {escape(section)}",
            "",
            f"{activity_emoji(activity.type)} {escape(activity.name)}",
            "",
            f"⏰ {'Closes' if activity.is_quiz else 'Due'}: {self._date(due_text) or escape(due_text)}",
            remaining,
        ]
        return "\n".join(lines)

    def format_course_overview(self, course: CourseRecord, sections: Dict[str, List[ActivityRef]]) -> str:
        """
        Format the pinned overview of a course.

        Assignments and quizzes are listed only once their details are stored.
        """
        lines = [
            f"🎓 <b>{escape(course.name)}</b>",
            f'🔗 <a href="{escape(course.url)}">Course page</a>',
            "",
        ]

        listed = False
        for section_name, activities in sections.items():
            visible = [
                a for a in activities
                if not a.is_deadline_bearing or a.url in course.assignments
            ]
            if not visible:
                continue
            listed = True
            lines.append(f"📍 <b>{escape(section_name)}</b>")
            lines.extend(
                f' {activity_emoji(a.type)} <a href="{escape(a.url)}">{escape(a.name)}</a>'
                for a in visible
            )
            lines.append("")

        if not listed:
            lines.extend(["📭 No content has been added yet.", ""])

        return self._fit(lines, [DIVIDER, f"🕐 {self.tracker.format_now()}"])

    def format_deadline_overview(self, entries: List[DeadlineEntry]) -> str:
        """Format the single deadline overview message, grouped by course."""
        lines = ["📃 <b>Upcoming events</b>", ""]

        if not entries:
            lines.extend(["✅ No active assignments or quizzes!", ""])
        else:
            by_course: Dict[str, List[DeadlineEntry]] = {}
            for entry in entries:
                by_course.setdefault(entry.course_name, []).append(entry)

            for course_name, items in by_course.items():
                lines.extend([f"📚 <b>{escape(course_name)}</b>", ""])
                for item in items:
                    if item.event == "opened":
                        emoji, label = "🔓", "Opens"
                    elif item.is_quiz:
                        emoji, label = "❓", "Closes"
                    else:
                        emoji, label = "📝", "Due"
                    lines.append(f"{emoji} <b>{escape(item.activity_name)}</b>")
                    lines.append(f"{label}: {escape(item.info.display_text)}")
                    lines.append(self._countdown(item.info) or "ℹ️ Time unknown")
                    lines.append("")
                lines.extend([DIVIDER, ""])

        return self._fit(lines, [f"🕐 Last updated: {self.tracker.format_now()}"])

    @staticmethod
    def format_file_too_large(file_name: str, size_mb: float, url: str) -> str:
        return f"📎 File is too large ({size_mb:.2f} MB)\n{escape(file_name)}\n🔗 {escape(url)}"

    @staticmethod
    def format_file_error(file_name: str, url: str) -> str:
        return f"⚠️ Could not download file\n📎 {escape(file_name)}\n🔗 {escape(url)}"

    @staticmethod
    def format_captcha_prompt() -> str:
        return "🔒 Please reply with the security code shown in the image:"

    @staticmethod
    def format_captcha_received() -> str:
        return "✅ Code received, logging in..."

    @classmethod
    def format_error(cls, error_message: str) -> str:
        """
        Format an error notification for the admin chat.

        Args:
            error_message: The error to report

        Returns:
            str: Formatted error message
        """
        return (
            "🚨 <b>Course check cycle failed</b>\n\n"
            f"<pre>{escape(cls._truncate(error_message, 500))}</pre>\n\n"
            "<i>Please check the logs for more details.</i>"
        )
