"""Background execution of generation jobs on a thread pool."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable

from contentforge.errors import ContentForgeError
from contentforge.jobs.models import JobStatus, utcnow
from contentforge.jobs.processor import JobProcessor
from contentforge.jobs.store import JobStore

logger = logging.getLogger(__name__)


class JobRunner:
    """Runs jobs in the background; ``submit`` is the per-creation trigger.

    The processor is built on first use, so a missing provider key fails the
    job instead of the server start. Items within a job run in order; distinct
    jobs run concurrently up to ``max_workers``.
    """

    def __init__(
        self,
        store: JobStore,
        processor_factory: Callable[[], JobProcessor],
        max_workers: int = 3,
    ):
        self._store = store
        self._factory = processor_factory
        self._processor: JobProcessor | None = None
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="cf-job")

    def _get_processor(self) -> JobProcessor:
        with self._lock:
            if self._processor is None:
                self._processor = self._factory()
            return self._processor

    def submit(self, job_id: str) -> Future:
        return self._executor.submit(self._run, job_id)

    def submit_resume(self, job_id: str, stale_before: datetime | None = None) -> Future:
        return self._executor.submit(self._run, job_id, True, stale_before)

    def _run(self, job_id: str, resume: bool = False, stale_before: datetime | None = None) -> None:
        try:
            processor = self._get_processor()
        except ContentForgeError as e:
            logger.error("[Job %s] Cannot start: %s", job_id, e)
            self._fail_unstarted(job_id, e)
            return
        try:
            if resume:
                processor.resume(job_id, stale_before=stale_before)
            else:
                processor.process(job_id)
        except Exception:
            logger.exception("[Job %s] Processor crashed", job_id)

    def _fail_unstarted(self, job_id: str, error: ContentForgeError) -> None:
        try:
            self._store.update(
                job_id,
                {JobStatus.PENDING, JobStatus.PROCESSING},
                status=JobStatus.FAILED,
                error=str(error),
                error_kind=error.kind,
                completed_at=utcnow(),
            )
        except Exception:
            logger.exception("[Job %s] Could not record failure: %s", job_id, error)

    def recover_stale(self, stale_after_seconds: float) -> list[str]:
        """Re-trigger jobs a dead process left behind.

        Pending jobs are processed again; processing jobs not written for
        ``stale_after_seconds`` are resumed from their last recorded item.
        """
        cutoff = utcnow() - timedelta(seconds=stale_after_seconds)
        picked: list[str] = []
        for job in self._store.list_by_status({JobStatus.PENDING, JobStatus.PROCESSING}):
            if job.status == JobStatus.PENDING:
                self.submit(job.id)
            elif (job.updated_at or job.created_at) < cutoff:
                self.submit_resume(job.id, stale_before=cutoff)
            else:
                continue
            picked.append(job.id)
        if picked:
            logger.info("Re-triggered %d stale jobs: %s", len(picked), ", ".join(picked))
        return picked

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
