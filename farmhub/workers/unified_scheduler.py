"""
Background scheduling for the device services.

One loop thread pops due jobs off a heap and hands them to a bounded
ThreadPoolExecutor. Only fixed-rate interval jobs exist here: the health
scan and the change-feed poll.

Heap entries are immutable ``(run_at_ts, seq, job_id)`` tuples. Entries are
never removed in place; a popped entry is skipped when its job was removed
or disabled, or when ``job.next_run`` no longer matches it.
"""

from __future__ import annotations

import heapq
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from farmhub.utils.time import utc_now

logger = logging.getLogger(__name__)


@dataclass
class JobResult:
    """Result of a job execution."""

    job_id: str
    success: bool
    started_at: datetime
    completed_at: datetime
    result: Any = None
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "error": self.error,
        }


@dataclass
class ScheduledJob:
    """An interval job and its execution counters."""

    job_id: str
    task_name: str
    interval_seconds: int
    enabled: bool = True

    next_run: datetime | None = None
    last_run: datetime | None = None
    run_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "task_name": self.task_name,
            "enabled": self.enabled,
            "interval_seconds": self.interval_seconds,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "last_error": self.last_error,
        }


class UnifiedScheduler:
    """
    Scheduler for the periodic device tasks.

    - No unbounded thread creation: jobs run on a bounded executor.
    - Fixed-rate: the next run advances from the scheduled time, not from
      completion, and missed slots are skipped rather than piled up.
    - A job is never submitted twice concurrently; a run still in flight
      when its next slot comes due makes that slot a no-op.
    """

    def __init__(
        self,
        check_interval_seconds: float = 0.5,
        max_history: int = 200,
        max_workers: int = 2,
    ):
        self._check_interval = float(check_interval_seconds)
        self._max_history = int(max_history)
        self._max_workers = max(1, int(max_workers))

        self._jobs: dict[str, ScheduledJob] = {}
        self._tasks: dict[str, Callable[..., Any]] = {}
        self._in_flight: set[str] = set()

        self._job_heap: list[tuple[float, int, str]] = []
        self._heap_seq = 0

        self._history: list[JobResult] = []

        self._running = False
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._job_lock = threading.RLock()
        self._executor: ThreadPoolExecutor | None = None

    # ==================== Task Registration ====================

    def register_task(self, name: str, func: Callable[..., Any]) -> None:
        """Register a task function under *name*."""
        with self._job_lock:
            self._tasks[name] = func
        logger.debug("Registered task: %s", name)

    def _ensure_executor(self) -> None:
        """Create the executor (supports stop() -> start() restarts)."""
        if self._executor is not None:
            return
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix="FarmHubSchedulerJob",
        )

    def _push_heap(self, job: ScheduledJob) -> None:
        if not job.enabled or not job.next_run:
            return
        self._heap_seq += 1
        heapq.heappush(self._job_heap, (job.next_run.timestamp(), self._heap_seq, job.job_id))

    # ==================== Job Scheduling ====================

    def schedule_interval(
        self,
        task_name: str,
        interval_seconds: int,
        *,
        job_id: str | None = None,
        enabled: bool = True,
        start_immediately: bool = False,
    ) -> ScheduledJob:
        """Schedule a registered task to run every *interval_seconds*."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if task_name not in self._tasks:
            raise KeyError(f"Task not registered: {task_name}")

        job_id = job_id or task_name
        now = utc_now()
        job = ScheduledJob(
            job_id=job_id,
            task_name=task_name,
            interval_seconds=int(interval_seconds),
            enabled=enabled,
            next_run=now if start_immediately else now + timedelta(seconds=int(interval_seconds)),
        )
        with self._job_lock:
            self._jobs[job.job_id] = job
            self._push_heap(job)
        logger.info("Scheduled interval job: %s (every %ss)", job_id, interval_seconds)
        return job

    def run_now(self, task_name: str, *args: Any, **kwargs: Any) -> JobResult | None:
        """Run a registered task immediately on the calling thread."""
        func = self._tasks.get(task_name)
        if func is None:
            logger.error("Task not found: %s", task_name)
            return None

        started_at = utc_now()
        job_id = f"{task_name}_immediate_{int(started_at.timestamp())}"
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error("Immediate task %s failed: %s", task_name, e, exc_info=True)
            job_result = JobResult(job_id, False, started_at, utc_now(), error=str(e))
        else:
            job_result = JobResult(job_id, True, started_at, utc_now(), result=result)
        self._record_history(job_result)
        return job_result

    # ==================== Job Management ====================

    def remove_job(self, job_id: str) -> bool:
        with self._job_lock:
            if self._jobs.pop(job_id, None) is None:
                return False
        logger.info("Removed job: %s", job_id)
        return True

    def get_jobs(self) -> list[ScheduledJob]:
        with self._job_lock:
            return list(self._jobs.values())

    # ==================== Scheduler Control ====================

    def start(self) -> None:
        """Start the scheduler background thread."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._ensure_executor()
        self._stop_event.clear()
        self._running = True
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="FarmHubScheduler")
        self._thread.start()
        logger.info("UnifiedScheduler started")

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        was_running = self._running
        self._running = False
        self._stop_event.set()

        if wait and self._thread:
            self._thread.join(timeout=timeout)
        self._thread = None

        if self._executor:
            self._executor.shutdown(wait=wait)
            self._executor = None

        if was_running:
            logger.info("UnifiedScheduler stopped")

    def shutdown(self, wait: bool = True, timeout: float = 5.0) -> None:
        """Alias for stop(); matches the other services' shutdown() convention."""
        self.stop(wait=wait, timeout=timeout)

    def is_running(self) -> bool:
        return self._running

    def _run_loop(self) -> None:
        logger.debug("Scheduler loop started")
        while self._running:
            try:
                self._process_due_jobs()
            except Exception as e:
                logger.error("Error in scheduler loop: %s", e, exc_info=True)
            self._stop_event.wait(self._check_interval)
        logger.debug("Scheduler loop ended")

    # ==================== Core Scheduling Logic ====================

    def _process_due_jobs(self, now: datetime | None = None) -> int:
        """Submit every due job to the executor; returns how many were submitted."""
        now = now or utc_now()
        now_ts = now.timestamp()
        submitted = 0

        with self._job_lock:
            while self._job_heap:
                run_at_ts, _seq, job_id = self._job_heap[0]
                if run_at_ts > now_ts:
                    break
                heapq.heappop(self._job_heap)

                job = self._jobs.get(job_id)
                if not job or not job.enabled or not job.next_run:
                    continue
                if abs(job.next_run.timestamp() - run_at_ts) > 1e-6:
                    continue

                scheduled_for = job.next_run
                job.next_run = self._next_slot(scheduled_for, job.interval_seconds, now)
                self._push_heap(job)

                if job_id in self._in_flight:
                    logger.debug("Job %s still running; skipping slot %s", job_id, scheduled_for.isoformat())
                    continue
                if not self._executor:
                    logger.warning("Executor unavailable; skipping job execution")
                    continue

                self._in_flight.add(job_id)
                self._executor.submit(self._execute_job, job_id, scheduled_for)
                submitted += 1
        return submitted

    @staticmethod
    def _next_slot(scheduled_for: datetime, interval: int, now: datetime) -> datetime:
        next_run = scheduled_for + timedelta(seconds=interval)
        if next_run <= now:
            skips = int((now - next_run).total_seconds() // interval) + 1
            next_run += timedelta(seconds=skips * interval)
        return next_run

    def _execute_job(self, job_id: str, scheduled_for: datetime) -> None:
        try:
            with self._job_lock:
                job = self._jobs.get(job_id)
                func = self._tasks.get(job.task_name) if job else None
            if not job or not job.enabled or func is None:
                return

            started_at = utc_now()
            try:
                result = func()
            except Exception as e:
                with self._job_lock:
                    job.last_run = started_at
                    job.run_count += 1
                    job.failure_count += 1
                    job.last_error = str(e)
                self._record_history(JobResult(job_id, False, started_at, utc_now(), error=str(e)))
                logger.error("Job %s failed: %s", job_id, e, exc_info=True)
                return

            with self._job_lock:
                job.last_run = started_at
                job.run_count += 1
                job.success_count += 1
                job.last_error = None
            job_result = JobResult(job_id, True, started_at, utc_now(), result=result)
            self._record_history(job_result)
            logger.debug(
                "Job %s completed in %.2fs (scheduled_for=%s)",
                job_id,
                job_result.duration_seconds,
                scheduled_for.isoformat(),
            )
        finally:
            with self._job_lock:
                self._in_flight.discard(job_id)

    def _record_history(self, result: JobResult) -> None:
        with self._job_lock:
            self._history.append(result)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history :]

    # ==================== Status & History ====================

    def get_status(self) -> dict[str, Any]:
        with self._job_lock:
            jobs = self.get_jobs()
            return {
                "running": self._running,
                "total_jobs": len(jobs),
                "enabled_jobs": sum(1 for j in jobs if j.enabled),
                "in_flight": sorted(self._in_flight),
                "history_size": len(self._history),
                "recent_failures": sum(1 for r in self._history[-20:] if not r.success),
                "max_workers": self._max_workers,
                "jobs": [j.to_dict() for j in jobs],
                "recent_runs": [r.to_dict() for r in self.get_history(limit=10)],
            }

    def get_history(self, job_id: str | None = None, limit: int = 50) -> list[JobResult]:
        """Most recent results, oldest first; *job_id* also matches its immediate runs."""
        with self._job_lock:
            history = [
                r
                for r in self._history
                if job_id is None or r.job_id == job_id or r.job_id.startswith(f"{job_id}_immediate_")
            ]
        return history[-limit:]

    def wait_for_idle(self, timeout: float = 2.0) -> bool:
        """Block until no job is in flight (tests, shutdown)."""
        deadline = time.monotonic() + timeout
        while True:
            with self._job_lock:
                if not self._in_flight:
                    return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
