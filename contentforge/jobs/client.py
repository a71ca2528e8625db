"""Owner-facing job operations: create, observe, cancel.

Creation validates and persists a ``pending`` record, then fires the
``on_created`` edge trigger exactly once. Observation goes through the
store's change feed; cancellation is a compare-and-set, so it can only
win against a job that has not finished yet. A cancel takes effect at the
processor's next item boundary, so the latency is at most one item's
provider call.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Callable

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from contentforge.errors import InvalidStateError, NotFoundError, ValidationError
from contentforge.jobs.models import (
    ACTIVE_STATUSES,
    GenerationJob,
    ImageSource,
    JobProgress,
    JobSource,
    JobStatus,
    TopicsSource,
    WebsiteSource,
    utcnow,
)
from contentforge.jobs.store import JobStore, new_job_id
from contentforge.users.models import DEFAULT_SETTINGS
from contentforge.users.store import SettingsStore

logger = logging.getLogger(__name__)

_source_adapter = TypeAdapter(JobSource)


def parse_source(source: Any) -> TopicsSource | ImageSource | WebsiteSource:
    """Coerce a dict (or a source model) into a mode-tagged source."""
    if isinstance(source, (TopicsSource, ImageSource, WebsiteSource)):
        return source
    try:
        return _source_adapter.validate_python(source)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'source'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid job source: {problems}") from e


class JobClient:
    def __init__(
        self,
        store: JobStore,
        settings_store: SettingsStore | None = None,
        on_created: Callable[[str], Any] | None = None,
    ):
        self._store = store
        self._settings_store = settings_store
        self._on_created = on_created

    # -- create -------------------------------------------------------------

    def create_job(
        self,
        user_id: str,
        source: Any,
        count: int | None = None,
        language: str = "English",
        system_prompt: str = "",
        image_prompt_suffix: str | None = None,
        image_aspect_ratio: str = "1:1",
    ) -> str:
        """Persist a pending job and trigger processing. Returns the job id.

        In image mode the count is the number of images.
        Raises ValidationError before anything is written.
        """
        if not user_id:
            raise ValidationError("user_id is required")
        parsed = parse_source(source)
        if count is not None and count < 1:
            raise ValidationError(f"count must be at least 1, got {count}")
        if not (language or "").strip():
            raise ValidationError("language must not be empty")

        topic: str | None = None
        image_urls: list[str] | None = None
        if isinstance(parsed, ImageSource):
            image_urls = list(parsed.image_urls)
            if count is not None and count != len(image_urls):
                logger.info(
                    "Image job count %d pinned to the %d uploaded images", count, len(image_urls)
                )
            count = len(image_urls)
        elif isinstance(parsed, WebsiteSource):
            topic = parsed.url
        else:
            topic = parsed.topic
        if count is None:
            raise ValidationError("count is required for topics and website jobs")

        job = GenerationJob(
            id=new_job_id(),
            user_id=user_id,
            mode=parsed.mode,
            topic=topic,
            image_urls=image_urls,
            count=count,
            language=language.strip(),
            system_prompt=system_prompt or "",
            image_prompt_suffix=image_prompt_suffix or None,
            image_aspect_ratio=image_aspect_ratio or "1:1",
            status=JobStatus.PENDING,
            progress=0,
        )
        self._store.create(job)
        logger.info("[Job %s] Created %s job (%d items) for user %s", job.id, job.mode.value, count, user_id)

        if self._on_created is not None:
            self._on_created(job.id)
        return job.id

    def create_job_from_settings(
        self,
        user_id: str,
        source: Any,
        count: int | None = None,
        language: str | None = None,
    ) -> str:
        """Create a job with generation parameters taken from the owner's settings."""
        settings = None
        if self._settings_store is not None:
            settings = self._settings_store.get(user_id)
        settings = settings or DEFAULT_SETTINGS

        parsed = parse_source(source)
        system_prompt = settings.ai.system_prompt
        if isinstance(parsed, ImageSource) and settings.vision.vision_system_prompt.strip():
            system_prompt = settings.vision.vision_system_prompt

        return self.create_job(
            user_id,
            parsed,
            count=count,
            language=language or settings.ai.content_language,
            system_prompt=system_prompt,
            image_prompt_suffix=settings.vision.image_prompt_suffix,
            image_aspect_ratio=settings.vision.image_aspect_ratio,
        )

    # -- read ---------------------------------------------------------------

    def get_job(self, job_id: str, user_id: str | None = None) -> GenerationJob:
        """Return the job; NotFoundError when missing or owned by someone else."""
        job = self._store.get(job_id)
        if job is None or (user_id is not None and job.user_id != user_id):
            raise NotFoundError(f"Job not found: {job_id}")
        return job

    def list_jobs(self, user_id: str, limit: int = 20) -> list[GenerationJob]:
        return self._store.list_for_user(user_id, limit=limit)

    @staticmethod
    def progress(job: GenerationJob) -> JobProgress:
        return JobProgress.from_job(job)

    # -- observe ------------------------------------------------------------

    def subscribe(
        self,
        job_id: str,
        on_update: Callable[[GenerationJob], None],
        user_id: str | None = None,
    ) -> Callable[[], None]:
        """Deliver the job's current state now and every change after it.

        The subscription detaches itself after delivering a terminal state.
        Returns an idempotent unsubscribe function.
        """
        self.get_job(job_id, user_id)

        finished = threading.Event()
        holder: list[Callable[[], None]] = []

        def listener(job: GenerationJob) -> None:
            on_update(job)
            if job.is_terminal:
                finished.set()
                if holder:
                    holder[0]()

        unsubscribe = self._store.feed.subscribe(
            job_id, listener, current=lambda: self._store.get(job_id)
        )
        holder.append(unsubscribe)
        if finished.is_set():
            unsubscribe()
        return unsubscribe

    async def stream(
        self,
        job_id: str,
        user_id: str | None = None,
        keepalive: float | None = None,
    ) -> AsyncIterator[JobProgress | None]:
        """Async progress events for one job, ending after the terminal state.

        With ``keepalive`` set, yields None whenever that many seconds pass
        without a change.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[GenerationJob] = asyncio.Queue()
        unsubscribe = self.subscribe(
            job_id, lambda job: loop.call_soon_threadsafe(queue.put_nowait, job), user_id
        )
        try:
            while True:
                try:
                    job = await asyncio.wait_for(queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    yield None
                    continue
                yield JobProgress.from_job(job)
                if job.is_terminal:
                    break
        finally:
            unsubscribe()

    # -- cancel -------------------------------------------------------------

    def cancel(self, job_id: str, user_id: str | None = None) -> GenerationJob:
        """Cancel a pending or processing job.

        Raises NotFoundError for unknown jobs and InvalidStateError once the
        job is already completed, failed or cancelled.
        """
        job = self.get_job(job_id, user_id)
        if job.is_terminal:
            raise InvalidStateError(f"Job {job_id} is already {job.status.value}")
        cancelled = self._store.update(
            job_id, ACTIVE_STATUSES, status=JobStatus.CANCELLED, completed_at=utcnow()
        )
        if cancelled is None:
            current = self.get_job(job_id, user_id)
            raise InvalidStateError(f"Job {job_id} is already {current.status.value}")
        logger.info("[Job %s] Cancelled by owner at %d/%d", job_id, cancelled.progress, cancelled.count)
        return cancelled
