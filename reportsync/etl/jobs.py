"""
Scheduled incremental sync jobs.

One cron job per incremental task type, fired at SYNC_CRON_HOURS in the sync
timezone. Jobs run one at a time on a single worker thread so at most one run
per (account, task) is ever in flight. Each job records its last run, status,
error and next firing time in the job status table.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from reportsync.core.exceptions import PersistenceError
from reportsync.logging_config.logger import setup_logger
from reportsync.sync.models import SyncMode
from reportsync.sync.orchestrator import Orchestrator

logger = setup_logger(__name__)

JOB_PREFIX = "sync-"


@dataclass
class JobTaskStatus:
    job_name: str
    task_type: str
    last_run_at: Optional[datetime] = None
    last_status: Optional[str] = None
    last_error: Optional[str] = None
    next_scheduled_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        row = {"job_name": self.job_name, "task_type": self.task_type}
        for name in ("last_run_at", "last_status", "last_error", "next_scheduled_at"):
            value = getattr(self, name)
            if value is not None:
                row[name] = value.isoformat() if isinstance(value, datetime) else value
        return row


class JobStatusStore(ABC):
    @abstractmethod
    def upsert(self, status: JobTaskStatus) -> None:
        """Write the non-empty fields of status, keyed by job_name"""
        pass

    @abstractmethod
    def list(self) -> List[Dict[str, Any]]:
        pass


class SupabaseJobStatusStore(JobStatusStore):
    def __init__(self, supabase, table: str):
        self.supabase = supabase
        self.table = table

    def upsert(self, status: JobTaskStatus) -> None:
        try:
            self.supabase.table(self.table).upsert(status.to_row(), on_conflict="job_name").execute()
        except Exception as e:
            raise PersistenceError(f"Failed to save job status {status.job_name}: {e}") from e

    def list(self) -> List[Dict[str, Any]]:
        resp = self.supabase.table(self.table).select("*").order("job_name").execute()
        return resp.data or []


def job_name(task_type: str) -> str:
    return f"{JOB_PREFIX}{task_type}"


def next_scheduled_run(from_dt: datetime, hours: Iterable[int]) -> datetime:
    """First HH:00 strictly after from_dt whose hour is in hours"""
    ordered = sorted(set(hours))
    if not ordered:
        raise ValueError("hours must not be empty")
    base = from_dt.replace(minute=0, second=0, microsecond=0)
    for day in range(2):
        for hour in ordered:
            candidate = base.replace(hour=hour) + timedelta(days=day)
            if candidate > from_dt:
                return candidate
    raise ValueError(f"No firing time after {from_dt}")


def run_sync_job(
    orchestrator: Orchestrator,
    status_store: JobStatusStore,
    task_type: str,
    hours: List[int],
    clock: Callable[[], datetime],
) -> None:
    """Job body: run one task type incrementally for all accounts and record the outcome"""
    name = job_name(task_type)
    started = clock()
    _save_status(status_store, JobTaskStatus(
        job_name=name,
        task_type=task_type,
        next_scheduled_at=next_scheduled_run(started, hours),
    ))

    logger.info(f"Job {name} starting")
    try:
        report = orchestrator.run_task(task_type, SyncMode.INCREMENTAL)
        status = "success" if report.success else "failed"
        error = report.error_message
    except Exception as e:
        logger.error(f"Job {name} failed: {e}", exc_info=True)
        status, error = "failed", str(e)

    _save_status(status_store, JobTaskStatus(
        job_name=name,
        task_type=task_type,
        last_run_at=started,
        last_status=status,
        last_error=error or "",
    ))
    logger.info(f"Job {name} finished: {status}")


def _save_status(status_store: JobStatusStore, status: JobTaskStatus) -> None:
    # Bookkeeping failures must not stop the sync itself
    try:
        status_store.upsert(status)
    except Exception as e:
        logger.warning(f"Could not record status for {status.job_name}: {e}")


def build_scheduler(
    orchestrator: Orchestrator,
    status_store: JobStatusStore,
    settings,
    clock: Optional[Callable[[], datetime]] = None,
) -> BlockingScheduler:
    """
    Create the scheduler with one cron job per incremental task type

    Args:
        orchestrator: Orchestrator used by every job
        status_store: Where job outcomes are recorded
        settings: Application settings (SYNC_CRON_HOURS, SYNC_TIMEZONE)
        clock: Time source for status rows (defaults to the orchestrator's runner clock)

    Returns:
        Configured BlockingScheduler (not yet started)
    """
    hours = settings.get_cron_hours()
    clock = clock or orchestrator.runner.clock
    scheduler = BlockingScheduler(
        executors={"default": ThreadPoolExecutor(1)},
        timezone=settings.SYNC_TIMEZONE,
    )

    for task_type in orchestrator.registry.task_types(SyncMode.INCREMENTAL):
        scheduler.add_job(
            run_sync_job,
            trigger=CronTrigger(
                hour=",".join(str(h) for h in hours),
                minute=0,
                timezone=settings.SYNC_TIMEZONE,
            ),
            id=job_name(task_type.value),
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            kwargs={
                "orchestrator": orchestrator,
                "status_store": status_store,
                "task_type": task_type.value,
                "hours": hours,
                "clock": clock,
            },
        )

    logger.info(f"Scheduled {len(scheduler.get_jobs())} sync jobs at hours {hours} ({settings.SYNC_TIMEZONE})")
    return scheduler
