import logging
from datetime import timezone
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session, sessionmaker

from gscms.core.config import settings
from gscms.core.observability import automation_logger, log_event
from gscms.core.time_utils import utcnow
from gscms.db.session import SessionLocal
from gscms.services.automation_service import get_automation_engine
from gscms.services.deadline_service import DeadlineCheckSummary, check_deadlines
from gscms.services.email_service import create_default_email_templates

DEADLINE_JOB_ID = "check-deadlines"


def run_deadline_check(session_factory: sessionmaker[Session] = SessionLocal) -> DeadlineCheckSummary | None:
    db = session_factory()
    try:
        summary = check_deadlines(db, engine=get_automation_engine(db))
        db.commit()
        return summary
    except Exception as exc:  # noqa: BLE001 - a failed tick must not kill the scheduler thread
        db.rollback()
        log_event(
            automation_logger,
            "deadline_job_failed",
            level=logging.ERROR,
            job_id=DEADLINE_JOB_ID,
            error=str(exc),
        )
        return None
    finally:
        db.close()


class AutomationScheduler:
    """Runs the deadline sweep on a fixed interval, starting immediately.

    Ticks may overlap if a sweep outlasts the interval; APScheduler's default
    max_instances=1 skips the overlapping run.
    """

    def __init__(
        self,
        *,
        interval_minutes: int | None = None,
        job: Callable[[], object] | None = None,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self.interval_minutes = interval_minutes or settings.deadline_check_interval_minutes
        self.job = job or run_deadline_check
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def start(self) -> None:
        if self.running:
            return
        self.scheduler.add_job(
            self.job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=DEADLINE_JOB_ID,
            name="Check deadlines",
            replace_existing=True,
            next_run_time=utcnow(),
        )
        self.scheduler.start()
        log_event(
            automation_logger,
            "scheduler_started",
            job_id=DEADLINE_JOB_ID,
            interval_minutes=self.interval_minutes,
        )

    def stop(self) -> None:
        if not self.running:
            return
        self.scheduler.shutdown(wait=False)
        log_event(automation_logger, "scheduler_stopped", job_id=DEADLINE_JOB_ID)


_scheduler: AutomationScheduler | None = None
_initialized = False


def get_scheduler() -> AutomationScheduler | None:
    return _scheduler


def initialize_automation(session_factory: sessionmaker[Session] = SessionLocal) -> None:
    """Seed default templates and start the scheduler once per process. Never raises."""
    global _scheduler, _initialized
    if _initialized:
        return

    try:
        if settings.automation_seed_templates:
            db = session_factory()
            try:
                create_default_email_templates(db)
                db.commit()
            finally:
                db.close()

        if settings.scheduler_enabled and _scheduler is None:
            _scheduler = AutomationScheduler()
            _scheduler.start()

        _initialized = True
        log_event(
            automation_logger,
            "automation_initialized",
            templates_seeded=settings.automation_seed_templates,
            scheduler_enabled=_scheduler is not None,
        )
    except Exception as exc:  # noqa: BLE001
        log_event(
            automation_logger,
            "automation_initialize_failed",
            level=logging.ERROR,
            error=str(exc),
        )


def shutdown_automation() -> None:
    global _scheduler, _initialized
    if _scheduler is not None:
        _scheduler.stop()
    _scheduler = None
    _initialized = False
