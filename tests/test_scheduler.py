from __future__ import annotations

from videomirror.errors import SyncError
from videomirror.scheduler import SchedulerManager


class CountingTask:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.ticks = 0

    def tick(self) -> int:
        self.ticks += 1
        if self.error is not None:
            raise self.error
        return self.ticks


def test_failed_tick_is_contained_and_recorded(db):
    manager = SchedulerManager(db)
    task = CountingTask(SyncError("catalog endpoint returned HTTP 500"))

    job = manager.wrap(task, "sync_videos")
    job()
    job()

    assert task.ticks == 2
    runs = db.recent_job_runs("sync_videos")
    assert [run["status"] for run in runs] == ["failure", "failure"]
    assert runs[0]["error"] == "catalog endpoint returned HTTP 500"


def test_successful_tick_is_recorded(db):
    manager = SchedulerManager(db)

    manager.wrap(CountingTask(), "sync_views")()

    assert [run["status"] for run in db.recent_job_runs("sync_views")] == ["success"]


def test_jobs_are_registered_without_overlap(db):
    manager = SchedulerManager(db)
    manager.add_recurring_job(CountingTask(), id="sync_videos", seconds=600)
    manager.add_recurring_job(CountingTask(), id="get_access_token", seconds=240, run_immediately=False)

    snapshot = manager.snapshot()

    assert snapshot.total_jobs == 2
    assert snapshot.running is False
    assert set(snapshot.next_runs) == {"sync_videos", "get_access_token"}
    job = manager.scheduler.get_job("sync_videos")
    assert job.max_instances == 1
    assert job.trigger.interval.total_seconds() == 600


def test_start_and_shutdown_publish_health(db):
    manager = SchedulerManager(db)
    manager.add_recurring_job(CountingTask(), id="sync_views", seconds=3600, run_immediately=False)

    manager.start()
    try:
        assert manager.snapshot().running is True
    finally:
        manager.shutdown()

    with db.cursor() as cur:
        cur.execute("SELECT status FROM health_checks WHERE component = 'scheduler' ORDER BY id")
        assert [row[0] for row in cur.fetchall()] == ["pass", "fail"]
