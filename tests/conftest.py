from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from dateutil.tz import gettz

from vu_monitor.config import Settings
from vu_monitor.db.document_store import DocumentStore
from vu_monitor.deadlines import DeadlineTracker
from vu_monitor.exceptions import DeliveryError, MessageNotFound
from vu_monitor.models import (
    ActivityRef,
    AssignmentDetails,
    Attachment,
    CourseRecord,
    FileSentRecord,
    MonitorState,
)
from vu_monitor.notify.formatters import MessageFormatter
from vu_monitor.notify.telegram import AdminReply

TEHRAN = gettz("Asia/Tehran")

# Monday noon in Tehran
NOW = datetime(2025, 1, 20, 12, 0, tzinfo=TEHRAN)

COURSE_URL = "https://vu.um.ac.ir/course/view.php?id=1234"


def portal_date(value: datetime) -> str:
    """Render a datetime the way the portal prints it."""
    return f"{value.strftime('%A')}، {value.day} {value.strftime('%B %Y')}، {value.strftime('%I:%M %p')}"


def days_from_now(days: int, hour: int = 23, minute: int = 59) -> str:
    return portal_date((NOW + timedelta(days=days)).replace(hour=hour, minute=minute))


def assignment(name: str = "HW1", number: int = 1) -> ActivityRef:
    return ActivityRef(name=name, type="assign", url=f"https://vu.um.ac.ir/mod/assign/view.php?id={number}")


def quiz(name: str = "Quiz 1", number: int = 50) -> ActivityRef:
    return ActivityRef(name=name, type="quiz", url=f"https://vu.um.ac.ir/mod/quiz/view.php?id={number}")


def resource(name: str = "Slides", number: int = 90) -> ActivityRef:
    return ActivityRef(name=name, type="resource", url=f"https://vu.um.ac.ir/mod/resource/view.php?id={number}")


def attachment(name: str = "hw1.pdf") -> Attachment:
    return Attachment(url=f"https://vu.um.ac.ir/pluginfile.php/1/mod_assign/intro/{name}", file_name=name)


class SentMessage:
    def __init__(self, message_id: int, text: str, reply_markup: Optional[dict], chat_id: Optional[str]):
        self.message_id = message_id
        self.text = text
        self.reply_markup = reply_markup
        self.chat_id = chat_id


class FakeGateway:
    """Records everything sent; ``reply_with`` answers the next captcha photo."""

    def __init__(self):
        self.messages: List[SentMessage] = []
        self.edits: List[tuple] = []
        self.documents: List[tuple] = []
        self.photos: List[tuple] = []
        self.admin_messages: List[str] = []
        self.missing_ids = set()
        self.fail_sends = False
        self.latest_reply: Optional[AdminReply] = None
        self.reply_with: Optional[str] = None
        self.polls = 0
        self._next_id = 100
        self._next_update = 1

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def admin_says(self, text: str) -> AdminReply:
        self.latest_reply = AdminReply(
            update_id=self._next_update, chat_id="200", text=text, date=0
        )
        self._next_update += 1
        return self.latest_reply

    def send_message(self, text, parse_mode="HTML", reply_markup=None, chat_id=None):
        if self.fail_sends:
            raise DeliveryError("Telegram API error: Bad Request")
        message_id = self._id()
        self.messages.append(SentMessage(message_id, text, reply_markup, chat_id))
        return message_id

    def edit_message(self, message_id, text, parse_mode="HTML"):
        if message_id in self.missing_ids:
            raise MessageNotFound("Bad Request: message to edit not found")
        self.edits.append((message_id, text))

    def send_document(self, path, caption=""):
        self.documents.append((Path(path), caption))
        return self._id()

    def send_photo(self, photo, caption="", chat_id=None):
        self.photos.append((photo, caption))
        if self.reply_with is not None:
            self.admin_says(self.reply_with)
        return self._id()

    def send_admin_message(self, text, parse_mode="HTML"):
        self.admin_messages.append(text)
        return self._id()

    def poll_admin_reply(self, window_seconds=30):
        self.polls += 1
        return self.latest_reply

    def test_connection(self):
        return True


class FakeExtractor:
    """Serves scripted details and course snapshots."""

    def __init__(self):
        self.details: Dict[str, AssignmentDetails] = {}
        self.snapshots: Dict[str, list] = {}
        self.detail_calls: List[str] = []
        self.course_calls: List[str] = []

    def extract_details(self, activity: ActivityRef) -> AssignmentDetails:
        self.detail_calls.append(activity.url)
        details = self.details.get(activity.url)
        if details is None:
            return AssignmentDetails.unavailable(quiz=activity.is_quiz)
        return details.model_copy(deep=True)

    def open_course(self, course_url: str):
        self.course_calls.append(course_url)
        queue = self.snapshots[course_url]
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeFiles:
    """Stands in for FileDelivery; marks every file as delivered."""

    def __init__(self):
        self.delivered: List[str] = []

    def deliver(self, course: CourseRecord, att: Attachment) -> bool:
        if att.url in course.sent_files:
            return False
        self.delivered.append(att.url)
        course.sent_files[att.url] = FileSentRecord(file_name=att.file_name)
        return True


class FakeContext:
    """Browser context with scripted navigation and no real browser."""

    def __init__(self):
        self.healthy = True
        self.started = False
        self.restarts = 0
        self.cache_clears = 0
        self.visited: List[str] = []
        self.landings: Dict[str, str] = {}
        self.goto_error: Optional[Exception] = None
        self.budgets: List[float] = []
        self.pages: Dict[str, str] = {}
        self.current_url = ""

    def start(self):
        self.started = True

    def restart(self):
        self.restarts += 1
        self.healthy = True
        self.started = True

    def close(self):
        self.started = False

    def ping(self):
        return self.healthy

    @contextmanager
    def budget(self, seconds):
        self.budgets.append(seconds)
        yield

    @contextmanager
    def unbounded(self):
        yield

    def capped_timeout(self, timeout):
        return timeout

    def goto(self, url, timeout=60):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        self.current_url = self.landings.get(url, url)
        return self.current_url

    @property
    def page_source(self):
        return self.pages.get(self.current_url, "<html><body></body></html>")

    def wait_for(self, css, timeout=10, visible=False):
        return None

    def cookies(self):
        return {"MoodleSession": "abc123"}

    def user_agent(self):
        return "Mozilla/5.0 (test)"

    def clear_cache(self):
        self.cache_clears += 1


class MemoryStore(DocumentStore):
    def __init__(self):
        self.documents: Dict[str, dict] = {}
        self.saves = 0

    def load(self, key):
        return self.documents.get(key)

    def save(self, key, document):
        self.saves += 1
        self.documents[key] = document


class PersistCounter:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        vu_username="4001234567",
        vu_password="secret",
        course_urls=COURSE_URL,
        telegram_bot_token="123:abc",
        telegram_chat_id="100",
        telegram_admin_chat_id="200",
        timezone="Asia/Tehran",
        data_dir=str(tmp_path / "data"),
        downloads_dir=str(tmp_path / "files"),
    )


@pytest.fixture
def tracker():
    return DeadlineTracker("Asia/Tehran", clock=lambda: NOW)


@pytest.fixture
def formatter(tracker):
    return MessageFormatter(tracker)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def files():
    return FakeFiles()


@pytest.fixture
def context():
    return FakeContext()


@pytest.fixture
def persist():
    return PersistCounter()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def course():
    return CourseRecord(id="1234", name="Signals and Systems", url=COURSE_URL)


@pytest.fixture
def state(course):
    return MonitorState(courses={course.id: course})
