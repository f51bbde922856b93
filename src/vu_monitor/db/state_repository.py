"""
Loading and saving the monitor state.

Maps the typed MonitorState onto five flat documents in a DocumentStore.
Expired reminder ledger entries are dropped on every load and save.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from vu_monitor.db.document_store import DocumentStore
from vu_monitor.exceptions import StoreError
from vu_monitor.models import CourseRecord, MonitorState, ReminderLedgerEntry
from vu_monitor.reconcile.pruner import prune_ledgers

logger = logging.getLogger(__name__)

COURSE_DATA = "course_data"
MESSAGE_IDS = "message_ids"
REMINDERS = "reminders"
LAST_DAY_REMINDERS = "last_day_reminders"
DEADLINE_MESSAGE = "deadline_message_id"


class StateRepository:
    """Reads and writes MonitorState through a DocumentStore."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def load(self) -> MonitorState:
        """
        Load the full state, starting empty for any document never saved.

        Raises:
            StoreError: If a stored document cannot be read or does not validate
        """
        state = MonitorState()

        try:
            courses = self.store.load(COURSE_DATA)
            if courses:
                state.courses = {
                    course_id: CourseRecord.model_validate({**doc, "id": course_id})
                    for course_id, doc in courses.items()
                }
                logger.info(f"Loaded stored data for {len(state.courses)} course(s)")
            else:
                logger.info("No existing course data found, starting fresh")

            state.message_ids = {
                str(k): int(v) for k, v in (self.store.load(MESSAGE_IDS) or {}).items()
            }
            state.reminders = self._load_ledger(REMINDERS)
            state.last_day_reminders = self._load_ledger(LAST_DAY_REMINDERS)

            deadline_doc = self.store.load(DEADLINE_MESSAGE) or {}
            state.deadline_message_id = deadline_doc.get("messageId")
        except (ValidationError, TypeError, ValueError) as e:
            raise StoreError(f"Stored state is invalid: {e}") from e

        prune_ledgers(state, self.clock())
        return state

    def _load_ledger(self, key: str) -> dict:
        return {
            entry_key: ReminderLedgerEntry.model_validate(doc)
            for entry_key, doc in (self.store.load(key) or {}).items()
        }

    def save(self, state: MonitorState) -> None:
        """Rewrite every state document in full."""
        prune_ledgers(state, self.clock())

        self.store.save(
            COURSE_DATA,
            {course_id: record.to_document() for course_id, record in state.courses.items()},
        )
        self.store.save(MESSAGE_IDS, dict(state.message_ids))
        self.store.save(
            REMINDERS,
            {key: entry.to_document() for key, entry in state.reminders.items()},
        )
        self.store.save(
            LAST_DAY_REMINDERS,
            {key: entry.to_document() for key, entry in state.last_day_reminders.items()},
        )
        if state.deadline_message_id is not None:
            self.store.save(DEADLINE_MESSAGE, {"messageId": state.deadline_message_id})
