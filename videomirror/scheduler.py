"""Scheduler management with failure isolation and a job-run ledger."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import STATE_RUNNING
from apscheduler.triggers.interval import IntervalTrigger

from .db import DatabaseManager
from .errors import PersistenceError
from .tasks import Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SchedulerSnapshot:
    """Snapshot of job registrations and high-level runtime state."""

    total_jobs: int
    running: bool
    next_runs: dict[str, str | None]


class SchedulerManager:
    """Wrap APScheduler so each task runs alone and never takes others down."""

    def __init__(self, db: DatabaseManager, *, max_workers: int = 4) -> None:
        self.db = db
        self.scheduler = BackgroundScheduler(
            executors={"default": {"type": "threadpool", "max_workers": max_workers}},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 90,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        self.scheduler.start()
        logger.info("Scheduler started with %d jobs", len(self.scheduler.get_jobs()))
        self.publish_health()

    def shutdown(self, wait: bool = True) -> None:
        self.scheduler.shutdown(wait=wait)
        logger.info("Scheduler shutdown complete.")
        self.publish_health()

    def wrap(self, task: Task, job_id: str) -> Callable[[], None]:
        """Build the callable APScheduler runs: one tick, logged and recorded."""

        def wrapped_job() -> None:
            start_time = datetime.now(timezone.utc)
            try:
                logger.debug("Running job %s", job_id)
                result = task.tick()
            except Exception as exc:
                duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
                logger.exception(
                    "Job %s failed",
                    job_id,
                    extra={"job_id": job_id, "status": "failure", "duration_ms": round(duration_ms, 2)},
                )
                self._record(job_id, "failure", start_time, duration_ms, error=str(exc))
                return
            duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
            logger.debug(
                "Job %s completed in %.2fms (result=%s)",
                job_id,
                duration_ms,
                result,
                extra={"job_id": job_id, "status": "success", "duration_ms": round(duration_ms, 2)},
            )
            self._record(job_id, "success", start_time, duration_ms)

        return wrapped_job

    def add_recurring_job(
        self,
        task: Task,
        *,
        id: str,
        seconds: int,
        run_immediately: bool = True,
    ) -> None:
        trigger = IntervalTrigger(seconds=seconds, timezone=timezone.utc)
        now = datetime.now(timezone.utc)
        next_run = now if run_immediately else now + timedelta(seconds=seconds)
        self.scheduler.add_job(
            self.wrap(task, id),
            trigger,
            id=id,
            name=id,
            replace_existing=True,
            max_instances=1,
            next_run_time=next_run,
        )
        logger.info("Registered job %s every %ds", id, seconds)

    def snapshot(self) -> SchedulerSnapshot:
        """Return a snapshot of scheduler state for external health checks."""
        jobs = self.scheduler.get_jobs()
        next_runs = {
            job.id: job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None
            for job in jobs
        }
        running = self.scheduler.state == STATE_RUNNING
        return SchedulerSnapshot(total_jobs=len(jobs), running=running, next_runs=next_runs)

    def publish_health(self) -> None:
        """Persist scheduler health into the database."""
        snapshot = self.snapshot()
        status = "pass" if snapshot.running else "fail"
        detail = json.dumps({"next_runs": snapshot.next_runs}) if snapshot.next_runs else None
        try:
            self.db.record_health(component="scheduler", status=status, detail=detail)
        except PersistenceError:
            logger.exception("Could not record scheduler health")

    def _record(
        self,
        job_id: str,
        status: Literal["success", "failure"],
        started_at: datetime,
        duration_ms: float,
        error: str | None = None,
    ) -> None:
        try:
            self.db.record_job_run(
                job_id=job_id,
                status=status,
                started_at=started_at,
                duration_ms=duration_ms,
                error=error,
            )
            self.db.record_health(
                component=f"job:{job_id}",
                status="pass" if status == "success" else "fail",
                detail=error or f"{duration_ms:.2f}ms",
            )
        except PersistenceError:
            logger.exception("Could not record run of job %s", job_id)
