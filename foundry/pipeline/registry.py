"""In-process registry of running jobs.

Each accepted processing request is handed to ``JobRegistry.submit`` which
schedules ``PipelineExecutor.run`` on a worker thread and returns at once.
The registry owns every in-flight run and its cancellation event, so the
one-active-job-per-source rule and cancellation are enforced in-process as
well as through the job table.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

from sqlalchemy import select

from foundry.core.constants import ACTIVE_JOB_STATUSES, JOB_FAILED, SOURCE_ERROR
from foundry.db.models import ProcessingJob
from foundry.pipeline.executor import PipelineExecutor

logger = logging.getLogger(__name__)

RESTART_MESSAGE = "Interrupted by server restart"


class JobAlreadyActiveError(RuntimeError):
    """A run for this source is already registered."""


@dataclass
class _RunHandle:
    job_id: int
    source_id: int
    future: Future
    cancel_event: threading.Event = field(default_factory=threading.Event)


class JobRegistry:
    """Own the worker pool and every in-flight job run."""

    def __init__(self, executor: PipelineExecutor, max_workers: int = 4) -> None:
        self.executor = executor
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="job-runner")
        self._runs: dict[int, _RunHandle] = {}
        self._lock = threading.RLock()
        self._closed = False

    def submit(self, job_id: int, source_id: int, output_format: str | None = None) -> Future:
        """Schedule a run for *job_id* and return without waiting for it."""
        with self._lock:
            if self._closed:
                raise RuntimeError("JobRegistry is shut down")
            if self.is_active(source_id):
                raise JobAlreadyActiveError(f"Source {source_id} already has an active run")

            cancel_event = threading.Event()
            future = self._pool.submit(self.executor.run, job_id, cancel_event, output_format)
            self._runs[job_id] = _RunHandle(job_id, source_id, future, cancel_event)
            future.add_done_callback(lambda f, jid=job_id: self._finished(jid, f))

        logger.info("Job %s submitted for source %s", job_id, source_id)
        return future

    def is_active(self, source_id: int) -> bool:
        """True if a run for *source_id* is registered, unfinished and not cancelled."""
        with self._lock:
            return any(
                h.source_id == source_id and not h.cancel_event.is_set() and not h.future.done()
                for h in self._runs.values()
            )

    def active_job_ids(self) -> list[int]:
        with self._lock:
            return sorted(job_id for job_id, h in self._runs.items() if not h.future.done())

    def cancel(self, job_id: int) -> bool:
        """Raise the cancellation signal for *job_id*.  Returns False if it is not running."""
        with self._lock:
            handle = self._runs.get(job_id)
        if handle is None:
            return False
        handle.cancel_event.set()
        logger.info("Cancellation signalled for job %s", job_id)
        return True

    def wait(self, job_id: int, timeout: float | None = None) -> str | None:
        """Block until the run for *job_id* finishes; return its final status."""
        with self._lock:
            handle = self._runs.get(job_id)
        if handle is None:
            return None
        return handle.future.result(timeout=timeout)

    def wait_all(self, timeout: float | None = None) -> None:
        with self._lock:
            futures = [h.future for h in self._runs.values()]
        for future in futures:
            future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
            handles = list(self._runs.values())
        for handle in handles:
            handle.cancel_event.set()
        self._pool.shutdown(wait=wait, cancel_futures=True)
        logger.info("JobRegistry shut down (%d run(s) signalled)", len(handles))

    def recover_interrupted(self) -> int:
        """Fail jobs left pending/running by a previous process.  Returns the count."""
        with self.executor.session_factory() as db:
            stale = db.execute(
                select(ProcessingJob).where(ProcessingJob.status.in_(ACTIVE_JOB_STATUSES))
            ).scalars().all()
            with self._lock:
                stale = [job for job in stale if job.id not in self._runs]
            for job in stale:
                job.status = JOB_FAILED
                job.error_message = RESTART_MESSAGE
                job.source.status = SOURCE_ERROR
            db.commit()
        if stale:
            logger.warning("Marked %d interrupted job(s) as failed", len(stale))
        return len(stale)

    def _finished(self, job_id: int, future: Future) -> None:
        with self._lock:
            self._runs.pop(job_id, None)
        if future.cancelled():
            logger.warning("Job %s was never started (registry shut down)", job_id)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Job %s runner crashed: %s", job_id, type(exc).__name__)
