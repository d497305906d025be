import threading
from datetime import timedelta

import pytest

from farmhub.utils.time import utc_now
from farmhub.workers.unified_scheduler import UnifiedScheduler


@pytest.fixture()
def scheduler():
    sched = UnifiedScheduler(max_workers=2)
    sched._ensure_executor()
    yield sched
    sched.shutdown()


def test_schedule_interval_validates_input(scheduler):
    with pytest.raises(KeyError):
        scheduler.schedule_interval("missing", 10)
    scheduler.register_task("noop", lambda: None)
    with pytest.raises(ValueError):
        scheduler.schedule_interval("noop", 0)


def test_due_job_runs_and_is_rescheduled(scheduler):
    calls = []
    scheduler.register_task("scan", lambda: calls.append(1) or "done")
    job = scheduler.schedule_interval("scan", 30)
    first_run = job.next_run

    assert scheduler._process_due_jobs(now=first_run - timedelta(seconds=1)) == 0
    assert scheduler._process_due_jobs(now=first_run) == 1
    assert scheduler.wait_for_idle(timeout=2)

    assert calls == [1]
    assert job.next_run == first_run + timedelta(seconds=30)
    assert job.success_count == 1
    assert scheduler.get_history("scan")[-1].result == "done"


def test_missed_slots_are_skipped(scheduler):
    scheduler.register_task("scan", lambda: None)
    job = scheduler.schedule_interval("scan", 10)
    first_run = job.next_run

    scheduler._process_due_jobs(now=first_run + timedelta(seconds=35))
    assert job.next_run == first_run + timedelta(seconds=40)


def test_running_job_is_not_started_twice(scheduler):
    release = threading.Event()
    started = threading.Event()

    def slow():
        started.set()
        release.wait(2)

    scheduler.register_task("slow", slow)
    job = scheduler.schedule_interval("slow", 1, start_immediately=True)
    now = utc_now()

    assert scheduler._process_due_jobs(now=now) == 1
    assert started.wait(2)
    assert scheduler._process_due_jobs(now=job.next_run) == 0
    release.set()
    assert scheduler.wait_for_idle(timeout=2)
    assert job.run_count == 1


def test_failed_job_is_recorded(scheduler):
    def broken():
        raise RuntimeError("boom")

    scheduler.register_task("broken", broken)
    job = scheduler.schedule_interval("broken", 5, start_immediately=True)
    scheduler._process_due_jobs(now=utc_now())
    scheduler.wait_for_idle(timeout=2)

    assert job.failure_count == 1
    assert job.last_error == "boom"
    assert scheduler.get_status()["recent_failures"] == 1


def test_disabled_job_does_not_run(scheduler):
    scheduler.register_task("scan", lambda: None)
    job = scheduler.schedule_interval("scan", 5, enabled=False, start_immediately=True)

    assert scheduler._process_due_jobs(now=utc_now() + timedelta(seconds=1)) == 0
    assert job.run_count == 0


def test_run_now(scheduler):
    scheduler.register_task("add", lambda a, b: a + b)
    result = scheduler.run_now("add", 2, 3)
    assert result.success and result.result == 5
    assert scheduler.run_now("missing") is None


def test_immediate_runs_are_in_history_and_status(scheduler):
    scheduler.register_task("scan", lambda: ["sensor_1"])
    scheduler.run_now("scan")

    (run,) = scheduler.get_history("scan")
    assert run.success is True
    assert run.result == ["sensor_1"]
    recent = scheduler.get_status()["recent_runs"]
    assert recent[-1]["job_id"] == run.job_id
    assert recent[-1]["success"] is True


def test_remove_job(scheduler):
    scheduler.register_task("scan", lambda: None)
    scheduler.schedule_interval("scan", 5, start_immediately=True)
    assert scheduler.remove_job("scan") is True
    assert scheduler.remove_job("scan") is False
    assert scheduler._process_due_jobs(now=utc_now() + timedelta(seconds=1)) == 0


def test_start_and_stop():
    sched = UnifiedScheduler(check_interval_seconds=0.05)
    sched.start()
    assert sched.is_running()
    sched.shutdown()
    assert not sched.is_running()
