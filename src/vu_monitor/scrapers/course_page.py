"""
Course page scraper.

Turns a Moodle course page into a snapshot: the course name plus every
section with the activities listed in it.
"""

import logging
import re
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from vu_monitor.models import ActivityRef, CourseSnapshot, course_id_from_url
from vu_monitor.scrapers.base import BaseScraper

logger = logging.getLogger(__name__)

# Tried in order; the first selector that matches anything wins
SECTION_SELECTORS = (
    'li.section.course-section[data-for="section"]',
    "ul.topics > li.section",
    "ul.weeks > li.section",
    "li.section",
)

SECTION_TITLE_SELECTORS = (
    'h3.sectionname[data-for="section_title"]',
    'h3[class*="sectionname"]',
    ".sectionname",
    "h3",
)

ACTIVITY_SELECTORS = (
    'li.activity[data-for="cmitem"]',
    "li.activity.activity-wrapper",
    "li.activity",
)

ACTIVITY_NAME_SELECTORS = (
    ".instancename",
    ".activityname a span",
    ".activityname",
)

ACTIVITY_LINK_SELECTORS = (
    "a.aalink.stretched-link",
    "a.aalink",
    'a[href*="/mod/"]',
    ".activityname a",
)

MODTYPE_PATTERN = re.compile(r"modtype[_-](\w+)")


def first_match(node: Tag, selectors) -> List[Tag]:
    for selector in selectors:
        found = node.select(selector)
        if found:
            return found
    return []


class CoursePageScraper(BaseScraper):
    """Extracts course name and sections from a course page."""

    COURSE_PAGE_TIMEOUT = 90

    def scrape(self, course_url: str) -> CourseSnapshot:
        """
        Load a course page and snapshot it.

        Args:
            course_url: URL of the course page

        Returns:
            CourseSnapshot: name and sections as currently listed

        Raises:
            LoginRequired: If the session has expired
        """
        logger.info(f"Checking course: {course_url}")
        soup = self.load(course_url, timeout=self.COURSE_PAGE_TIMEOUT)
        base_url = self.context.current_url

        name = self.extract_course_name(soup)
        sections = self.parse_sections(soup, base_url)
        logger.info(f"Course: {name} ({len(sections)} section(s))")

        return CourseSnapshot(
            course_id=course_id_from_url(course_url),
            name=name,
            url=course_url,
            sections=sections,
        )

    def extract_course_name(self, soup: BeautifulSoup) -> str:
        for selector in (".breadcrumb li:last-child", ".page-header-headings h1"):
            element = soup.select_one(selector)
            if element:
                text = self.clean_text(element.get_text())
                if text:
                    return text
        return "Unknown Course"

    def parse_sections(self, soup: BeautifulSoup, base_url: str) -> Dict[str, List[ActivityRef]]:
        """
        Parse all sections of a course page.

        Sections without any recognisable activity are left out.
        """
        result: Dict[str, List[ActivityRef]] = {}

        for index, section in enumerate(first_match(soup, SECTION_SELECTORS)):
            title = first_match(section, SECTION_TITLE_SELECTORS)
            section_name = self.clean_text(title[0].get_text()) if title else ""
            if not section_name:
                section_name = f"Section {index}"

            activities = []
            for element in self._activity_elements(section):
                activity = self._parse_activity(element, base_url)
                if activity is not None:
                    activities.append(activity)
            if activities:
                result.setdefault(section_name, []).extend(activities)

        return result

    @staticmethod
    def _activity_elements(section: Tag) -> List[Tag]:
        container = section.select_one('ul[data-for="cmlist"]') or section
        elements = first_match(container, ACTIVITY_SELECTORS)
        if not elements:
            elements = section.select('li[class*="modtype_"]')
        return elements

    def _parse_activity(self, element: Tag, base_url: str) -> Optional[ActivityRef]:
        name = ""
        item = element.select_one(".activity-item[data-activityname]")
        if item is not None and item.get("data-activityname"):
            name = self.clean_text(item["data-activityname"])
        else:
            found = first_match(element, ACTIVITY_NAME_SELECTORS)
            if found:
                label = found[0]
                for hidden in label.select(".accesshide, .badge, .sr-only"):
                    hidden.decompose()
                name = self.clean_text(label.get_text())

        classes = " ".join(element.get("class", []))
        type_match = MODTYPE_PATTERN.search(classes)
        activity_type = type_match.group(1) if type_match else "unknown"

        links = first_match(element, ACTIVITY_LINK_SELECTORS)
        url = self.absolute_url(base_url, links[0].get("href")) if links else ""

        if not name or not url:
            return None
        return ActivityRef(name=name, type=activity_type, url=url)
