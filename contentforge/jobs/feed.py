"""In-process change notification for job records.

Stores publish every successful job write here; listeners registered for a
job id are called synchronously, in the writer's thread. Each listener only
ever sees increasing ``version`` values, so an update that loses a race with
a newer write is dropped instead of being delivered out of order.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from contentforge.jobs.models import GenerationJob

logger = logging.getLogger(__name__)

JobListener = Callable[[GenerationJob], None]


class _Subscription:
    def __init__(self, job_id: str, callback: JobListener):
        self.job_id = job_id
        self.callback = callback
        self.last_version = -1
        self.active = True
        self._lock = threading.RLock()

    def deliver(self, job: GenerationJob) -> None:
        with self._lock:
            if not self.active or job.version <= self.last_version:
                return
            self.last_version = job.version
            try:
                self.callback(job)
            except Exception:
                logger.exception("Job listener failed for job %s", self.job_id)


class JobFeed:
    """Per-job listener registry."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: dict[str, list[_Subscription]] = {}

    def subscribe(
        self,
        job_id: str,
        callback: JobListener,
        current: Callable[[], GenerationJob | None] | None = None,
    ) -> Callable[[], None]:
        """Register ``callback`` for ``job_id``; returns an idempotent unsubscribe.

        When ``current`` is given it is read after registration and its result
        delivered first, so no write between the read and the registration
        can be missed.
        """
        sub = _Subscription(job_id, callback)
        with self._lock:
            self._subs.setdefault(job_id, []).append(sub)

        def unsubscribe() -> None:
            sub.active = False
            with self._lock:
                subs = self._subs.get(job_id)
                if subs and sub in subs:
                    subs.remove(sub)
                    if not subs:
                        del self._subs[job_id]

        if current is not None:
            job = current()
            if job is not None:
                sub.deliver(job)
        return unsubscribe

    def publish(self, job: GenerationJob) -> None:
        with self._lock:
            subs = list(self._subs.get(job.id, ()))
        for sub in subs:
            sub.deliver(job)

    def listener_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._subs.get(job_id, ()))
