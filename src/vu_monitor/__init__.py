"""
VU Course Monitor.

Watches Moodle course pages on the portal and posts new assignments,
quizzes, date changes, files and last-day reminders to Telegram.
"""

__version__ = "1.0.0"
