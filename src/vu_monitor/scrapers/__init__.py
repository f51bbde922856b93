"""Portal scrapers module."""

from vu_monitor.scrapers.activity import ActivityDetailsScraper
from vu_monitor.scrapers.course_page import CoursePageScraper
from vu_monitor.scrapers.extractor import ContentExtractor

__all__ = [
    "ActivityDetailsScraper",
    "ContentExtractor",
    "CoursePageScraper",
]
