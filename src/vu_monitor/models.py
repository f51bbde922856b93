"""
Data models for the VU course monitor.

Defines Pydantic models for everything the monitor persists or passes
between components:
- Course snapshots (sections and activities)
- Assignment/quiz details
- Dedup ledgers (sent notifications, sent files, reminders)
- The monitor state that owns all of the above
"""

from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Set, Tuple
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Sentinel the extractor stores when a date label is missing on the page
UNKNOWN_DATE = "unknown"

ASSIGNMENT_TYPES = frozenset({"assign", "mod_assign"})
QUIZ_TYPES = frozenset({"quiz", "mod_quiz"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def course_id_from_url(url: str) -> str:
    """
    Extract the course id from a course page URL.

    Moodle course pages look like ``/course/view.php?id=1234``; the whole URL
    is used as the id when there is no ``id`` parameter.
    """
    values = parse_qs(urlparse(url).query).get("id")
    return values[0] if values else url


class DocumentModel(BaseModel):
    """Base for persisted models: camelCase keys on disk, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ActivityRef(DocumentModel):
    """
    A single activity listed in a course section.

    Attributes:
        name: Display name of the activity
        type: Moodle module type (assign, quiz, resource, forum, ...)
        url: Link to the activity page
    """
    name: str
    type: str = "unknown"
    url: str

    @property
    def is_assignment(self) -> bool:
        return self.type in ASSIGNMENT_TYPES

    @property
    def is_quiz(self) -> bool:
        return self.type in QUIZ_TYPES

    @property
    def is_deadline_bearing(self) -> bool:
        """Assignments and quizzes carry dates worth tracking."""
        return self.is_assignment or self.is_quiz

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.name, self.url)


class Attachment(DocumentModel):
    url: str
    file_name: str


class AssignmentDetails(DocumentModel):
    """
    Dates and attachments of an assignment or quiz.

    Dates are kept as the portal's own text until DeadlineTracker parses them.
    Assignments use ``deadline``, quizzes use ``closed``.
    """
    opened: Optional[str] = None
    deadline: Optional[str] = None
    closed: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)
    fetch_succeeded: bool = True

    @field_validator("attachments", mode="before")
    @classmethod
    def default_attachments(cls, v):
        return v or []

    @classmethod
    def unavailable(cls, quiz: bool = False) -> "AssignmentDetails":
        """Placeholder used when the details page could not be fetched."""
        if quiz:
            return cls(opened=UNKNOWN_DATE, closed=UNKNOWN_DATE, fetch_succeeded=False)
        return cls(opened=UNKNOWN_DATE, deadline=UNKNOWN_DATE, fetch_succeeded=False)

    @property
    def due(self) -> Optional[str]:
        """The closing date, whichever field carries it."""
        return self.deadline if self.deadline else self.closed

    @property
    def attachment_urls(self) -> List[str]:
        return sorted(att.url for att in self.attachments)

    def needs_refresh(self, quiz: bool = False) -> bool:
        """True when a date is missing or still unknown."""
        closing = self.closed if quiz else self.deadline
        return any(
            value is None or value == UNKNOWN_DATE
            for value in (self.opened, closing)
        )


class NotificationRecord(DocumentModel):
    """Presence means the activity's first appearance was already announced."""
    sent: bool = True
    sent_at: datetime = Field(default_factory=utcnow)
    activity_name: str


class FileSentRecord(DocumentModel):
    """Presence means the file was already delivered."""
    sent: bool = True
    file_name: str
    local_path: Optional[str] = None
    sent_at: datetime = Field(default_factory=utcnow)


class ReminderLedgerEntry(DocumentModel):
    sent_at: datetime = Field(default_factory=utcnow)
    deadline: datetime
    course_name: str
    activity_name: str


class CourseRecord(DocumentModel):
    """
    Everything the monitor remembers about one course.

    Created on first sighting, never deleted, updated on every cycle.
    Missing maps in stored documents load as empty maps.
    """
    id: str
    name: str
    url: str
    sections: Dict[str, List[ActivityRef]] = Field(default_factory=dict)
    assignments: Dict[str, AssignmentDetails] = Field(default_factory=dict)
    sent_files: Dict[str, FileSentRecord] = Field(default_factory=dict)
    sent_notifications: Dict[str, NotificationRecord] = Field(default_factory=dict)
    last_checked: Optional[datetime] = None

    @field_validator(
        "sections", "assignments", "sent_files", "sent_notifications", mode="before"
    )
    @classmethod
    def default_maps(cls, v):
        return v or {}

    def find_activity(self, url: str) -> Optional[Tuple[str, ActivityRef]]:
        """Locate an activity by url in the stored snapshot."""
        for section_name, activities in self.sections.items():
            for activity in activities:
                if activity.url == url:
                    return section_name, activity
        return None

    def deadline_activities(self) -> Iterator[Tuple[str, ActivityRef]]:
        for section_name, activities in self.sections.items():
            for activity in activities:
                if activity.is_deadline_bearing:
                    yield section_name, activity


class MonitorState(BaseModel):
    """
    The monitor's whole mutable state.

    Passed explicitly to every component; the repository loads and saves it
    as separate documents.
    """
    courses: Dict[str, CourseRecord] = Field(default_factory=dict)
    message_ids: Dict[str, int] = Field(default_factory=dict)
    reminders: Dict[str, ReminderLedgerEntry] = Field(default_factory=dict)
    last_day_reminders: Dict[str, ReminderLedgerEntry] = Field(default_factory=dict)
    deadline_message_id: Optional[int] = None

    def course(self, course_id: str, name: str, url: str) -> CourseRecord:
        """Get the course record, creating it on first sighting."""
        record = self.courses.get(course_id)
        if record is None:
            record = CourseRecord(id=course_id, name=name, url=url)
            self.courses[course_id] = record
        return record


class CourseSnapshot(BaseModel):
    """What the extractor saw on a course page during this cycle."""
    course_id: str
    name: str
    url: str
    sections: Dict[str, List[ActivityRef]] = Field(default_factory=dict)


class NewItem(BaseModel):
    section: str
    activity: ActivityRef


class UpdatedItem(BaseModel):
    section: str
    activity: ActivityRef
    old_details: AssignmentDetails


class ChangeSet(BaseModel):
    new_items: List[NewItem] = Field(default_factory=list)
    updated_items: List[UpdatedItem] = Field(default_factory=list)
    # urls whose announcement could not be delivered this cycle
    unannounced: Set[str] = Field(default_factory=set)

    @property
    def has_changes(self) -> bool:
        return bool(self.new_items)
