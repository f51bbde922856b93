"""
Main orchestrator for the VU course monitor.

Coordinates one check cycle:
1. Make sure the browser is healthy and the portal session valid
2. For each course: snapshot, detect changes, notify, persist
3. Refresh the deadline overview
4. Send last-day reminders
5. Prune expired state

and runs that cycle on a schedule until stopped.
"""

import logging
import signal
import sys
from typing import Optional

from pydantic import ValidationError

from vu_monitor.auth import CaptchaChannel, SessionManager
from vu_monitor.browser import BrowserContext
from vu_monitor.config import Settings, get_settings, setup_logging
from vu_monitor.db import JsonFileStore, StateRepository, SupabaseDocumentStore
from vu_monitor.db.client import get_supabase_client
from vu_monitor.deadlines import DeadlineTracker, JalaliCalendar
from vu_monitor.exceptions import (
    BrowserError,
    CourseTimeout,
    ExtractionError,
    LoginRequired,
    MonitorError,
)
from vu_monitor.models import CourseSnapshot, utcnow
from vu_monitor.notify import MessageFormatter, TelegramGateway
from vu_monitor.reconcile import (
    ChangeDetector,
    FileDelivery,
    NotificationReconciler,
    OverviewPublisher,
    Pruner,
    ReminderScheduler,
)
from vu_monitor.reconcile.changes import count_activities, without_activities
from vu_monitor.scheduler import CycleScheduler
from vu_monitor.scrapers import ContentExtractor

logger = logging.getLogger(__name__)


def build_repository(settings: Settings) -> StateRepository:
    """Pick the document store configured by STORE_BACKEND."""
    if settings.store_backend == "supabase":
        store = SupabaseDocumentStore(get_supabase_client())
    else:
        store = JsonFileStore(settings.data_dir)
    return StateRepository(store)


class CourseMonitor:
    """
    Main orchestrator for course monitoring.

    Owns the shared browser, the monitor state and every component that
    reads or mutates it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        context: Optional[BrowserContext] = None,
        gateway: Optional[TelegramGateway] = None,
        extractor: Optional[ContentExtractor] = None,
        repository: Optional[StateRepository] = None,
        session: Optional[SessionManager] = None,
        tracker: Optional[DeadlineTracker] = None,
        files: Optional[FileDelivery] = None,
    ):
        """Initialize the monitor with all components; collaborators can be injected."""
        self.settings = settings or get_settings()
        self.context = context or BrowserContext(self.settings)
        self.gateway = gateway or TelegramGateway(self.settings)
        self.extractor = extractor or ContentExtractor(self.context, self.settings)
        self.repository = repository or build_repository(self.settings)
        self.tracker = tracker or DeadlineTracker(self.settings.timezone, calendar=JalaliCalendar())
        self.formatter = MessageFormatter(self.tracker)

        self.session = session or SessionManager(
            self.context,
            CaptchaChannel(self.gateway, timeout=self.settings.captcha_timeout_seconds),
            self.settings,
        )

        self.state = self.repository.load()

        self.detector = ChangeDetector()
        self.files = files or FileDelivery(self.context, self.gateway, self.persist, self.settings)
        self.reconciler = NotificationReconciler(
            self.gateway, self.extractor, self.tracker, self.formatter, self.files, self.persist
        )
        self.overview = OverviewPublisher(self.gateway, self.tracker, self.formatter, self.persist)
        self.reminders = ReminderScheduler(
            self.gateway, self.extractor, self.tracker, self.formatter, self.persist
        )
        self.pruner = Pruner(self.tracker)

        self.stats = {}
        self._reset_stats()

    def _reset_stats(self) -> None:
        self.stats = {
            "courses_checked": 0,
            "activities_found": 0,
            "notifications_sent": 0,
            "updates_sent": 0,
            "reminders_sent": 0,
            "assignments_pruned": 0,
            "errors": 0,
        }

    def persist(self) -> None:
        """Flush the whole state to the store."""
        self.repository.save(self.state)

    def start(self) -> None:
        """
        Start the browser and check the Telegram connection.

        Raises:
            BrowserError: If the browser cannot be started
        """
        self.context.start()
        if not self.gateway.test_connection():
            logger.warning("Telegram connection test failed, notifications may not arrive")

    def close(self) -> None:
        self.context.close()
        logger.info("Browser closed")

    def run_cycle(self) -> bool:
        """
        Execute one full check cycle.

        Returns:
            bool: True if the cycle completed
        """
        logger.info("=" * 50)
        logger.info("Starting course check cycle...")
        logger.info("=" * 50)
        self._reset_stats()

        try:
            self.session.ensure_authenticated(self.settings.course_urls[0])

            for course_url in self.settings.course_urls:
                self._check_course_safely(course_url)

            logger.info("Course checks completed")
            self.context.clear_cache()

            self.overview.publish_deadlines(self.state)
            self.stats["reminders_sent"] = self.reminders.run(self.state)
            self.stats["assignments_pruned"] = self.pruner.run(self.state)
            self.persist()

            self._log_summary()
            return True

        except Exception as e:
            logger.error(f"Check cycle failed with error: {e}", exc_info=True)
            self.stats["errors"] += 1

            try:
                self.gateway.send_admin_message(self.formatter.format_error(str(e)))
            except MonitorError as send_error:
                logger.error(f"Failed to send error notification: {send_error}")
            return False

    def _check_course_safely(self, course_url: str) -> None:
        """Check one course, containing failures that only affect this course."""
        try:
            if not self.context.ping():
                logger.warning("Browser became unhealthy, reinitializing...")
                self.session.reset()
                self.session.login()

            with self.context.budget(self.settings.course_timeout_seconds):
                self.check_course(course_url)
            self.stats["courses_checked"] += 1

        except CourseTimeout as e:
            logger.error(f"Timeout while checking course {course_url}: {e}")
            self.stats["errors"] += 1

        except ExtractionError as e:
            logger.warning(f"Could not read course {course_url}, keeping stored state: {e}")
            self.stats["errors"] += 1

        except BrowserError as e:
            logger.error(f"Error checking course {course_url}: {e}")
            self.stats["errors"] += 1
            logger.info("Reinitializing browser and re-logging in...")
            try:
                self.session.reset()
                self.session.login()
                logger.info("Successfully recovered from error")
            except BrowserError as recovery_error:
                logger.error(f"Failed to recover: {recovery_error}")

    def _open_course(self, course_url: str) -> Optional[CourseSnapshot]:
        """Snapshot a course, logging in again once if the session has expired."""
        try:
            return self.extractor.open_course(course_url)
        except LoginRequired:
            logger.info("Login required while extracting sections, logging in and retrying once...")

        self.session.login()
        try:
            return self.extractor.open_course(course_url)
        except LoginRequired as e:
            logger.error(f"Still cannot extract sections after login: {e}")
            return None

    def check_course(self, course_url: str) -> None:
        """
        Snapshot a course and reconcile it against stored state.

        Raises:
            ExtractionError: If the page came back without any sections
            CourseTimeout: If the course budget ran out
            BrowserError: On browser failures
        """
        snapshot = self._open_course(course_url)
        if snapshot is None:
            return

        course = self.state.course(snapshot.course_id, snapshot.name, course_url)
        course.name = snapshot.name
        course.url = course_url

        if not snapshot.sections and course.sections:
            self.overview.publish_course(self.state, course, course.sections)
            raise ExtractionError(f"No sections found on {course_url}")

        fresh = self.reconciler.prefetch(course, snapshot.sections)
        changes = self.detector.detect(course.sections, snapshot.sections, course.assignments)

        if changes.updated_items:
            self.stats["updates_sent"] += self.reconciler.handle_updates(course, changes)

        self.overview.publish_course(self.state, course, snapshot.sections)

        if changes.has_changes:
            self.stats["notifications_sent"] += self.reconciler.handle_new(course, changes, fresh)

        # Activities whose announcement failed stay out so they are new again next cycle
        course.sections = without_activities(snapshot.sections, changes.unannounced)
        course.last_checked = utcnow()
        self.persist()

        self.stats["activities_found"] += count_activities(snapshot.sections)

    def _log_summary(self) -> None:
        """Log cycle summary."""
        logger.info("=" * 50)
        logger.info("Check Cycle Complete - Summary")
        logger.info("=" * 50)
        logger.info(f"Courses checked:      {self.stats['courses_checked']}")
        logger.info(f"Activities found:     {self.stats['activities_found']}")
        logger.info(f"Notifications sent:   {self.stats['notifications_sent']}")
        logger.info(f"Updates sent:         {self.stats['updates_sent']}")
        logger.info(f"Reminders sent:       {self.stats['reminders_sent']}")
        logger.info(f"Assignments pruned:   {self.stats['assignments_pruned']}")
        logger.info(f"Errors:               {self.stats['errors']}")
        logger.info("=" * 50)


def main() -> int:
    """
    Entry point for the VU course monitor.

    Returns:
        int: Exit code (0 for success, 1 for failure)
    """
    try:
        # Validate configuration early
        settings = get_settings()
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        print("Please check your environment variables.", file=sys.stderr)
        return 1

    setup_logging(settings)
    logger.debug(f"Loaded configuration for {len(settings.course_urls)} course(s)")

    try:
        monitor = CourseMonitor(settings)
    except MonitorError as e:
        logger.error(f"Could not initialize monitor: {e}")
        return 1

    scheduler = CycleScheduler(monitor.run_cycle, settings.check_interval, settings.timezone)
    signal.signal(signal.SIGTERM, lambda signum, frame: scheduler.stop())

    try:
        monitor.start()
        scheduler.trigger()
        logger.info("Startup check completed")
        scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except MonitorError as e:
        logger.error(f"Fatal error: {e}")
        return 1
    finally:
        monitor.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
