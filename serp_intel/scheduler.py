"""Recurring per-domain SERP analyses on APScheduler with a persistent job store."""

import logging
from pathlib import Path
from typing import Any, Callable, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

JOB_PREFIX = "serp_intel:"
DEFAULT_JOB_STORE = "sqlite:///data/scheduler_jobs.db"
CRON_FIELDS = ("minute", "hour", "day", "month", "day_of_week")


def domain_job_id(domain: str) -> str:
    """Job id used for a domain's recurring analysis."""
    return JOB_PREFIX + domain.strip().lower()


def parse_cron(cron: str, timezone: str = "UTC") -> CronTrigger:
    """Turn a 5-field crontab line into a CronTrigger; ValueError otherwise."""
    fields = cron.split()
    if len(fields) != len(CRON_FIELDS):
        raise ValueError(
            f"Cron expression must have {len(CRON_FIELDS)} fields, got {len(fields)}: {cron!r}"
        )
    return CronTrigger(timezone=timezone, **dict(zip(CRON_FIELDS, fields)))


def _job_info(job) -> dict[str, Any]:
    # Jobs added before start() have no next_run_time attribute yet.
    next_run = getattr(job, "next_run_time", None)
    return {
        "id": job.id,
        "domain": job.kwargs.get("domain"),
        "trigger": str(job.trigger),
        "next_run_time": next_run.isoformat() if next_run else None,
        "pending": job.pending,
    }


class RankingScheduler:
    """Cron-driven analysis runs, one job per domain.

    A domain's job never overlaps itself and missed runs coalesce into one;
    different domains share a small worker pool. Jobs survive restarts in
    the SQLAlchemy job store (pass ``job_store_url=None`` for an in-memory
    store).

    Usage::

        sched = RankingScheduler()
        sched.schedule_domain("example.com", run_scheduled_analysis, "0 6 * * *",
                              keywords_file="kw.csv")
        sched.start()
    """

    def __init__(
        self,
        job_store_url: Optional[str] = DEFAULT_JOB_STORE,
        timezone: str = "UTC",
        max_workers: int = 3,
    ):
        if job_store_url is None:
            store = MemoryJobStore()
        else:
            sqlite_path = job_store_url.removeprefix("sqlite:///")
            if sqlite_path != job_store_url and sqlite_path != ":memory:":
                Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)
            store = SQLAlchemyJobStore(url=job_store_url)

        self._timezone = timezone
        self._scheduler = BackgroundScheduler(
            jobstores={"default": store},
            executors={"default": ThreadPoolExecutor(max_workers=max_workers)},
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 3600},
            timezone=timezone,
        )
        logger.info(
            "RankingScheduler ready (store=%s, tz=%s, workers=%d)",
            job_store_url or "memory", timezone, max_workers,
        )

    @property
    def is_running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if self.is_running:
            logger.warning("Scheduler is already running.")
            return
        self._scheduler.start()
        logger.info("Scheduler started with %d job(s).", len(self._scheduler.get_jobs()))

    def stop(self, wait: bool = True) -> None:
        if self.is_running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped.")

    def add_job(
        self,
        job_id: str,
        func: Callable,
        cron: str,
        args: Optional[tuple] = None,
        kwargs: Optional[dict[str, Any]] = None,
        replace_existing: bool = True,
    ) -> None:
        """Register (or replace) a cron-triggered job.

        ``func`` must be importable at module level, since the persistent
        job store keeps a reference to it rather than the object.
        """
        trigger = parse_cron(cron, self._timezone)
        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            args=args or (),
            kwargs=kwargs or {},
            replace_existing=replace_existing,
        )
        logger.info("Job %s scheduled [%s]", job_id, cron)

    def schedule_domain(
        self,
        domain: str,
        func: Callable,
        cron: str,
        **job_kwargs: Any,
    ) -> str:
        """Schedule ``func(domain=..., **job_kwargs)`` for a domain; returns the job id."""
        job_id = domain_job_id(domain)
        self.add_job(job_id, func, cron, kwargs={"domain": domain, **job_kwargs})
        return job_id

    def remove_job(self, job_id: str) -> bool:
        """Drop a job; False when no such job exists."""
        if self._scheduler.get_job(job_id) is None:
            logger.warning("No scheduled job %s", job_id)
            return False
        self._scheduler.remove_job(job_id)
        logger.info("Job %s removed", job_id)
        return True

    def unschedule_domain(self, domain: str) -> bool:
        return self.remove_job(domain_job_id(domain))

    def list_jobs(self) -> list[dict[str, Any]]:
        return [_job_info(job) for job in self._scheduler.get_jobs()]

    def get_job(self, job_id: str) -> Optional[dict[str, Any]]:
        job = self._scheduler.get_job(job_id)
        return _job_info(job) if job is not None else None
