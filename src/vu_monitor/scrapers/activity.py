"""
Assignment and quiz page scraper.

Reads the activity dates block (opened / due / closed) and, for
assignments, the files attached to the description.
"""

import logging
import re
from typing import Dict, List, Optional
from urllib.parse import unquote, urlparse

from bs4 import BeautifulSoup

from vu_monitor.exceptions import BrowserError, LoginRequired
from vu_monitor.models import UNKNOWN_DATE, AssignmentDetails, Attachment
from vu_monitor.scrapers.base import BaseScraper

logger = logging.getLogger(__name__)

# Date labels as printed by the portal, in Persian and English
DATE_LABELS = {
    "opened": re.compile(r"(?:باز شده:|باز می‌شود:|Opened:|Opens:)\s*(.+)"),
    "deadline": re.compile(r"(?:مهلت:|Due:)\s*(.+)"),
    "closed": re.compile(r"(?:بسته شده:|بسته می‌شود:|Closed:|Closes:)\s*(.+)"),
}

INTRO_SELECTORS = (
    ".activity-description#intro",
    "div.activity-description",
    "#intro",
)

# Header cells of the submission status table that introduce the due date
DEADLINE_HEADERS = ("مهلت", "Due date", "تاریخ", "deadline")

EXCLUDED_FILE_PATHS = ("/theme/image.php", "/core/")


class ActivityDetailsScraper(BaseScraper):
    """Extracts dates and attachments from assignment and quiz pages."""

    def scrape(self, activity_url: str, quiz: bool = False) -> AssignmentDetails:
        """
        Fetch the details of an assignment or quiz.

        Never raises for page problems: a failed fetch comes back with
        ``fetch_succeeded=False`` and unknown dates.

        Args:
            activity_url: Activity page URL
            quiz: Parse as a quiz (opened/closed, no attachments)

        Returns:
            AssignmentDetails
        """
        try:
            soup = self.load(activity_url)
            base_url = self.context.current_url
        except (BrowserError, LoginRequired) as e:
            logger.error(f"Error extracting {'quiz' if quiz else 'assignment'} details: {e}")
            return AssignmentDetails.unavailable(quiz=quiz)

        if quiz:
            return self.parse_quiz(soup)
        return self.parse_assignment(soup, base_url)

    def _dates(self, soup: BeautifulSoup) -> Dict[str, str]:
        found: Dict[str, str] = {}
        block = soup.select_one('[data-region="activity-dates"]')
        if block is None:
            return found

        for line in block.select(".description-inner > div"):
            text = self.clean_text(line.get_text(" "))
            for field, pattern in DATE_LABELS.items():
                match = pattern.search(text)
                if match:
                    found[field] = match.group(1).strip()
        return found

    def parse_quiz(self, soup: BeautifulSoup) -> AssignmentDetails:
        dates = self._dates(soup)
        return AssignmentDetails(
            opened=dates.get("opened", UNKNOWN_DATE),
            closed=dates.get("closed", UNKNOWN_DATE),
        )

    def parse_assignment(self, soup: BeautifulSoup, base_url: str) -> AssignmentDetails:
        dates = self._dates(soup)
        deadline = dates.get("deadline") or self._deadline_from_tables(soup) or UNKNOWN_DATE

        return AssignmentDetails(
            opened=dates.get("opened", UNKNOWN_DATE),
            deadline=deadline,
            attachments=self.parse_attachments(soup, base_url),
        )

    def _deadline_from_tables(self, soup: BeautifulSoup) -> Optional[str]:
        """Fall back to the submission status table."""
        for table in soup.select(".submissionstatustable, .generaltable"):
            for row in table.select("tr"):
                cells = row.select("td, th")
                for header, value in zip(cells, cells[1:]):
                    header_text = self.clean_text(header.get_text())
                    if any(label.lower() in header_text.lower() for label in DEADLINE_HEADERS):
                        return self.clean_text(value.get_text())
        return None

    def parse_attachments(self, soup: BeautifulSoup, base_url: str) -> List[Attachment]:
        """
        Collect files linked from the assignment description.

        Theme images, core assets and nameless links are skipped.
        """
        intro = None
        for selector in INTRO_SELECTORS:
            intro = soup.select_one(selector)
            if intro is not None:
                break
        if intro is None:
            return []

        attachments: List[Attachment] = []
        seen = set()
        for link in intro.select('a[href*="pluginfile.php"]'):
            url = self.absolute_url(base_url, link.get("href"))
            file_name = self.clean_text(link.get_text())
            if not file_name:
                file_name = unquote(urlparse(url).path.rsplit("/", 1)[-1])

            if not url or url in seen:
                continue
            if any(path in url for path in EXCLUDED_FILE_PATHS) or len(file_name) <= 2:
                continue

            seen.add(url)
            attachments.append(Attachment(url=url, file_name=file_name))

        return attachments
