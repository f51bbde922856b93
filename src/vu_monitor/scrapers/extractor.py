"""
Content extractor facade.

The single entry point the monitor uses to read the portal: course
snapshots and assignment/quiz details.
"""

import logging
from typing import Dict, List, Optional

from vu_monitor.browser.context import BrowserContext
from vu_monitor.config import Settings, get_settings
from vu_monitor.models import ActivityRef, AssignmentDetails, CourseSnapshot
from vu_monitor.scrapers.activity import ActivityDetailsScraper
from vu_monitor.scrapers.course_page import CoursePageScraper

logger = logging.getLogger(__name__)


class ContentExtractor:
    """Reads course pages and activity details through the shared browser."""

    def __init__(self, context: BrowserContext, settings: Optional[Settings] = None):
        self.context = context
        self.settings = settings or get_settings()
        self.course_pages = CoursePageScraper(context, self.settings)
        self.activities = ActivityDetailsScraper(context, self.settings)

    def open_course(self, course_url: str) -> CourseSnapshot:
        """
        Snapshot a course page.

        Raises:
            LoginRequired: If the session has expired
            BrowserError: On navigation failures
        """
        return self.course_pages.scrape(course_url)

    def extract_sections(self, html: str, base_url: str = "") -> Dict[str, List[ActivityRef]]:
        """Parse sections out of already loaded course page HTML."""
        soup = self.course_pages.parse_html(html)
        return self.course_pages.parse_sections(soup, base_url)

    def extract_assignment_details(self, url: str) -> AssignmentDetails:
        return self.activities.scrape(url, quiz=False)

    def extract_quiz_details(self, url: str) -> AssignmentDetails:
        return self.activities.scrape(url, quiz=True)

    def extract_details(self, activity: ActivityRef) -> AssignmentDetails:
        """Dispatch on the activity type."""
        if activity.is_quiz:
            return self.extract_quiz_details(activity.url)
        return self.extract_assignment_details(activity.url)
