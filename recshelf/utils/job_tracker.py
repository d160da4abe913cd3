"""
Background job tracking for RecShelf.

JobTracker is a lock-guarded, in-memory registry of job statuses: written by
the worker running the job, read by progress polls. JobRunner hands work to
a thread pool and records every outcome, including crashes, in the tracker.

Both live on the Flask app (``app.extensions['recshelf.jobs']``) for the life
of the process; nothing here is persisted and entries are never evicted.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Callable, Dict, Optional

from flask import current_app

from recshelf.domain.models import JobState, JobStatus, now_utc
from recshelf.exceptions import JobError

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'recshelf.jobs'


class JobTracker:
    """Thread-safe registry of job id -> JobStatus."""

    def __init__(self):
        self._jobs: Dict[str, JobStatus] = {}
        self._lock = threading.RLock()
        self._stats = {
            'jobs_created': 0,
            'jobs_completed': 0,
            'jobs_failed': 0,
        }

    def register(self, job_id: str, kind: str = "", message: str = "Starting...") -> JobStatus:
        with self._lock:
            if job_id in self._jobs:
                raise ValueError(f"Job {job_id} already registered")
            status = JobStatus(percent=0, message=message, kind=kind)
            self._jobs[job_id] = status
            self._stats['jobs_created'] += 1
        logger.info(f"Created job {job_id} ({kind})")
        return replace(status)

    def update(self, job_id: str, percent: Optional[int] = None, message: Optional[str] = None) -> bool:
        """Record progress for a running job. Terminal jobs are left untouched."""
        with self._lock:
            status = self._jobs.get(job_id)
            if status is None:
                logger.warning(f"Job {job_id} not found for update")
                return False
            if status.is_terminal:
                return False
            if percent is not None:
                status.percent = max(0, min(100, int(percent)))
            if message is not None:
                status.message = message
            status.updated_at = now_utc()
        logger.debug(f"Updated job {job_id}: {percent}% {message}")
        return True

    def _finish(self, job_id: str, state: JobState, message: str, percent: int) -> bool:
        with self._lock:
            status = self._jobs.get(job_id)
            if status is None or status.is_terminal:
                return False
            status.state = state
            status.message = message
            status.percent = percent
            status.updated_at = now_utc()
            self._stats['jobs_completed' if state is JobState.COMPLETE else 'jobs_failed'] += 1
        return True

    def complete(self, job_id: str, message: str) -> bool:
        return self._finish(job_id, JobState.COMPLETE, message, 100)

    def fail(self, job_id: str, message: str) -> bool:
        return self._finish(job_id, JobState.FAILED, message, 0)

    def poll(self, job_id: Optional[str]) -> JobStatus:
        """Copy of the job's status; an unknown id yields the "Unknown process" error status."""
        with self._lock:
            status = self._jobs.get(job_id) if job_id else None
            if status is None:
                return JobStatus.unknown()
            return replace(status)

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            stats = dict(self._stats)
            stats['jobs_running'] = sum(1 for s in self._jobs.values() if not s.is_terminal)
        return stats


class JobProgress:
    """Handle passed to a job body so it can report progress on its own id."""

    def __init__(self, tracker: JobTracker, job_id: str):
        self._tracker = tracker
        self.job_id = job_id

    def __call__(self, percent: int, message: Optional[str] = None) -> None:
        self._tracker.update(self.job_id, percent, message)


class JobRunner:
    """Runs job bodies on a worker pool inside their own application context."""

    def __init__(self, app, tracker: JobTracker, max_workers: int = 4):
        self.app = app
        self.tracker = tracker
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='recshelf-job')
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def start(self, kind: str, target: Callable[..., Any], *args, **kwargs) -> str:
        """Register and launch ``target(progress, *args, **kwargs)``; returns the job id at once.

        The target's return value becomes the completion message. Raising
        JobError fails the job with that message; any other exception fails it
        with "Error: <message>".
        """
        job_id = uuid.uuid4().hex
        self.tracker.register(job_id, kind=kind)
        with self._lock:
            self._futures[job_id] = self._executor.submit(self._run, job_id, kind, target, args, kwargs)
        return job_id

    def _run(self, job_id: str, kind: str, target, args, kwargs) -> None:
        progress = JobProgress(self.tracker, job_id)
        try:
            with self.app.app_context():
                message = target(progress, *args, **kwargs)
            self.tracker.complete(job_id, message or "Complete!")
            logger.info(f"Job {job_id} ({kind}) completed: {message}")
        except JobError as e:
            logger.warning(f"Job {job_id} ({kind}) failed: {e}")
            self.tracker.fail(job_id, str(e))
        except Exception as e:
            logger.exception(f"Job {job_id} ({kind}) crashed: {e}")
            self.tracker.fail(job_id, f"Error: {e}")
        finally:
            with self._lock:
                self._futures.pop(job_id, None)

    def poll(self, job_id: Optional[str]) -> JobStatus:
        return self.tracker.poll(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> JobStatus:
        """Block until the job finishes (or ``timeout`` passes) and return its status."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.tracker.poll(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def get_job_runner(app=None) -> JobRunner:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
