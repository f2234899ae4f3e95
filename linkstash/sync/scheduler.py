"""Periodic outbox replay, connectivity probing and remote pulls on APScheduler."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from threading import Lock
from time import perf_counter
from typing import Any, Callable, NamedTuple
from uuid import uuid4

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from linkstash.config.scheduler import SchedulerConfig

from .engine import SyncEngine


class SyncJob(NamedTuple):
    job_id: str
    name: str
    interval_seconds: int
    func: Callable[[], Any]


@dataclass(slots=True)
class JobMetrics:
    """Run counters and timings for one sync job."""

    job_id: str
    job_name: str
    total_runs: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_status: str | None = None
    last_error: str | None = None
    last_start_time: datetime | None = None
    last_end_time: datetime | None = None
    last_duration_seconds: float | None = None
    next_run_time: datetime | None = None

    def begin(self, started: datetime) -> None:
        self.last_start_time = started
        self.last_status = "running"
        self.last_error = None

    def finish(self, ended: datetime, duration: float, error: str | None) -> None:
        self.total_runs += 1
        self.last_end_time = ended
        self.last_duration_seconds = duration
        if error is None:
            self.success_count += 1
            self.last_status = "success"
        else:
            self.failure_count += 1
            self.last_status = "failure"
            self.last_error = error


class SchedulerMetricsRegistry:
    """Lock-guarded map of job id to :class:`JobMetrics`."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: dict[str, JobMetrics] = {}

    def update(self, job: SyncJob, change: Callable[[JobMetrics], None]) -> None:
        with self._lock:
            metrics = self._jobs.setdefault(job.job_id, JobMetrics(job_id=job.job_id, job_name=job.name))
            change(metrics)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {job_id: asdict(metrics) for job_id, metrics in self._jobs.items()}


class SyncScheduler:
    """Drives :class:`SyncEngine` housekeeping from a background scheduler.

    Up to three interval jobs are registered: ``replay`` (drain the outbox),
    ``connectivity`` (probe the remote and resume sync when it comes back)
    and, when ``pull_interval_seconds`` is set, ``pull`` (merge remote rows
    into the local store). Each job runs at most once at a time and missed
    runs are coalesced.
    """

    def __init__(
        self,
        config: SchedulerConfig | None,
        engine: SyncEngine,
        *,
        log_dir: Path | None = None,
        dry_run: bool = False,
    ) -> None:
        self.config = config
        self.engine = engine
        self.dry_run = dry_run
        self._timezone = config.timezone if config and config.timezone else "UTC"
        self.scheduler = BackgroundScheduler(timezone=self._timezone)
        self.metrics = SchedulerMetricsRegistry()
        self._jobs: dict[str, SyncJob] = {}
        self._file_sink_id: int | None = None
        if log_dir is not None:
            self._add_file_sink(log_dir)

    def _add_file_sink(self, log_dir: Path) -> None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            self._file_sink_id = logger.add(
                log_dir / "sync.log",
                rotation="5 MB",
                retention=5,
                enqueue=True,
                serialize=True,
                level="INFO",
            )
        except OSError as exc:  # pragma: no cover - depends on the filesystem
            logger.warning("Could not open sync log under {}: {}", log_dir, exc)

    def planned_jobs(self) -> list[SyncJob]:
        """Jobs the current configuration asks for, in registration order."""

        if self.config is None or not self.config.enabled:
            return []
        jobs = [
            SyncJob("replay", "outbox-replay", self.config.replay_interval_seconds, self.engine.flush),
            SyncJob(
                "connectivity",
                "connectivity-probe",
                self.config.connectivity_interval_seconds,
                self.engine.check_connectivity,
            ),
        ]
        if self.config.pull_interval_seconds:
            jobs.append(SyncJob("pull", "remote-pull", self.config.pull_interval_seconds, self.engine.pull))
        return jobs

    def setup_jobs(self) -> None:
        jobs = self.planned_jobs()
        if not jobs:
            logger.warning("Scheduler is disabled in the configuration. No jobs will be scheduled.")
            return

        self.scheduler.remove_all_jobs()
        self._jobs.clear()
        for job in jobs:
            logger.info("Registering job '{}' every {}s", job.job_id, job.interval_seconds)
            scheduled = self.scheduler.add_job(
                self._run,
                IntervalTrigger(seconds=job.interval_seconds, timezone=self._timezone),
                args=[job.job_id],
                id=job.job_id,
                name=job.name,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self._jobs[job.job_id] = job
            next_run = getattr(scheduled, "next_run_time", None)
            self.metrics.update(job, lambda metrics: setattr(metrics, "next_run_time", next_run))

        if self.dry_run:
            for scheduled in self.scheduler.get_jobs():
                logger.info("[Dry Run] Job '{}' with trigger: {}", scheduled.id, scheduled.trigger)

    def _run(self, job_id: str) -> None:
        job = self._jobs[job_id]
        log = logger.bind(job_id=job.job_id, job_name=job.name, run_id=uuid4().hex)
        started = self._now()
        self.metrics.update(job, lambda m: m.begin(started))

        timer = perf_counter()
        error: str | None = None
        try:
            job.func()
        except Exception as exc:
            error = str(exc)
            log.exception("Sync job '{}' failed", job.job_id)
        duration = perf_counter() - timer

        ended = self._now()
        next_run = self._next_run_time(job.job_id)

        def _finish(metrics: JobMetrics) -> None:
            metrics.finish(ended, duration, error)
            metrics.next_run_time = next_run

        self.metrics.update(job, _finish)
        if error is None:
            log.debug("Sync job '{}' finished in {:.3f}s", job.job_id, duration)

    def trigger_job(self, job_id: str) -> bool:
        """Run a registered job right away on the calling thread."""

        if job_id not in self._jobs:
            return False
        self._run(job_id)
        return True

    def list_jobs(self) -> list[dict[str, Any]]:
        listed = []
        for scheduled in self.scheduler.get_jobs():
            next_run = self._next_run_time(scheduled.id)
            listed.append(
                {
                    "id": scheduled.id,
                    "name": scheduled.name,
                    "trigger": str(scheduled.trigger),
                    "next_run_time": next_run.isoformat() if next_run else None,
                }
            )
        return listed

    def get_metrics_snapshot(self) -> dict[str, dict[str, Any]]:
        return self.metrics.snapshot()

    def start(self) -> None:
        if self.dry_run:
            logger.info("[Dry Run] Scheduler start is skipped.")
            return
        if not self._jobs:
            logger.warning("No sync jobs registered; the scheduler stays idle.")
            return
        if not self.scheduler.running:
            logger.info("Starting sync scheduler with {} job(s)", len(self._jobs))
            self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            logger.info("Stopping sync scheduler")
            self.scheduler.shutdown()
        if self._file_sink_id is not None:
            logger.remove(self._file_sink_id)
            self._file_sink_id = None

    def _now(self) -> datetime:
        return datetime.now(self.scheduler.timezone)

    def _next_run_time(self, job_id: str) -> datetime | None:
        scheduled = self.scheduler.get_job(job_id)
        return getattr(scheduled, "next_run_time", None) if scheduled is not None else None


__all__ = ["JobMetrics", "SchedulerMetricsRegistry", "SyncJob", "SyncScheduler"]
