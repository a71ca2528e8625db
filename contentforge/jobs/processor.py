"""Batch generation job processor.

Runs one job to completion: for each requested item it calls the provider,
stores the generated article, then advances ``progress``. Every job write is
a compare-and-set on the job status and on the version this processor last
wrote. An owner's cancellation is never overwritten and a second trigger for
the same job does nothing. A processor that lost the job to a resume stops
without touching it.

Cancellation is cooperative: the status is re-read before each item, so a
cancel takes effect within one item's provider latency. An item that was
already in flight when the cancel landed still gets its article saved.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from datetime import datetime
from typing import Any, Callable

from contentforge.articles.models import Article, ArticleStatus, ArticleText
from contentforge.articles.store import ArticleStore, new_article_id
from contentforge.errors import (
    GenerationTimeoutError,
    JobCancelled,
    JobSuperseded,
    StoreError,
    ValidationError,
)
from contentforge.ingest.url_scraper import page_excerpt
from contentforge.jobs.models import GenerationJob, GenerationMode, JobStatus, utcnow
from contentforge.jobs.store import JobStore
from contentforge.llm.base import ContentProvider, with_suffix
from contentforge.llm.prompts import image_instruction, topic_instruction, website_instruction
from contentforge.media.storage import MediaStorage
from contentforge.users.models import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

_MAX_ERROR_CHARS = 500
_PERSISTED_KINDS = frozenset({"provider", "timeout", "store", "internal"})


class JobProcessor:
    """Executes generation jobs against a provider. Safe to share between threads."""

    def __init__(
        self,
        jobs: JobStore,
        articles: ArticleStore,
        provider: ContentProvider,
        media: MediaStorage,
        job_timeout: float = 540.0,
        call_timeout: float = 120.0,
        page_fetcher: Callable[[str], str] = page_excerpt,
    ):
        self._jobs = jobs
        self._articles = articles
        self._provider = provider
        self._media = media
        self._job_timeout = job_timeout
        self._call_timeout = call_timeout
        self._page_fetcher = page_fetcher

    def process(self, job_id: str) -> GenerationJob | None:
        """Run a pending job. Returns the final record, or None if it does not exist."""
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning("[Job %s] Not found; nothing to process", job_id)
            return None

        started = self._jobs.update(
            job_id, {JobStatus.PENDING}, status=JobStatus.PROCESSING, started_at=utcnow()
        )
        if started is None:
            current = self._jobs.get(job_id)
            logger.info(
                "[Job %s] Not pending (status=%s); ignoring trigger",
                job_id,
                current.status.value if current else "missing",
            )
            return current

        logger.info(
            "[Job %s] Starting %s job for user %s (%d items)",
            job_id, started.mode.value, started.user_id, started.count,
        )
        return self._run(started, first_item=1)

    def resume(self, job_id: str, stale_before: datetime | None = None) -> GenerationJob | None:
        """Continue a ``processing`` job after its previous processor died.

        Items up to ``progress`` already have articles; work restarts at the
        next one. The job is claimed first with a write pinned to the version
        read here, so only one of several concurrent resumes runs. A job
        written at or after ``stale_before`` (default: the moment of this call)
        is owned by a live processor and is left alone, as is any status other
        than ``processing``.
        """
        stale_before = stale_before or utcnow()
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            return job
        if (job.updated_at or job.created_at) >= stale_before:
            logger.info("[Job %s] Still active (last write %s); not resuming", job_id, job.updated_at)
            return job

        claimed = self._jobs.update(
            job_id, {JobStatus.PROCESSING}, expected_version=job.version, resumed_at=utcnow()
        )
        if claimed is None:
            logger.info("[Job %s] Claimed by another processor; not resuming", job_id)
            return self._jobs.get(job_id)
        logger.info("[Job %s] Resuming at item %d/%d", job_id, claimed.progress + 1, claimed.count)
        return self._run(claimed, first_item=claimed.progress + 1)

    def _run(self, job: GenerationJob, first_item: int) -> GenerationJob | None:
        deadline = time.monotonic() + self._job_timeout
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"cf-{job.id}")
        article_ids = list(job.article_ids)
        page_cache: dict[str, str] = {}
        try:
            for i in range(first_item, job.count + 1):
                self._ensure_owned(job)
                if time.monotonic() >= deadline:
                    raise GenerationTimeoutError(
                        f"Job exceeded its time budget of {self._job_timeout:.0f}s"
                    )

                logger.info("[Job %s] Generating item %d/%d", job.id, i, job.count)
                article = self._generate_item(job, i, pool, deadline, page_cache)
                saved = self._articles.create(article)
                article_ids.append(saved.id)

                updated = self._jobs.update(
                    job.id,
                    {JobStatus.PROCESSING},
                    expected_version=job.version,
                    progress=i,
                    article_ids=article_ids,
                )
                if updated is None:
                    # Changed under us; a cancel or a takeover leaves the saved article in place
                    self._ensure_owned(job)
                    raise StoreError(f"Job {job.id} could not record progress {i}")
                job = updated
                logger.info("[Job %s] Progress %d/%d (article %s)", job.id, i, job.count, saved.id)
        except JobCancelled:
            logger.info("[Job %s] Cancelled; halting", job.id)
            return self._jobs.get(job.id)
        except JobSuperseded:
            logger.warning("[Job %s] Taken over by another processor; halting", job.id)
            return self._jobs.get(job.id)
        except Exception as e:
            logger.exception("[Job %s] Failed", job.id)
            return self._fail(job, e)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        done = self._jobs.update(
            job.id,
            {JobStatus.PROCESSING},
            expected_version=job.version,
            status=JobStatus.COMPLETED,
            completed_at=utcnow(),
        )
        if done is None:
            logger.info("[Job %s] Finished all items but was no longer processing", job.id)
            return self._jobs.get(job.id)
        logger.info("[Job %s] Completed (%d articles)", job.id, len(done.article_ids))
        return done

    def _ensure_owned(self, job: GenerationJob) -> None:
        """Raise unless ``job`` is still processing at the version this processor wrote last."""
        current = self._jobs.get(job.id)
        if current is None or current.status != JobStatus.PROCESSING:
            raise JobCancelled(job.id)
        if current.version != job.version:
            raise JobSuperseded(job.id)

    def _fail(self, job: GenerationJob, error: Exception) -> GenerationJob | None:
        """Record the failure unless the job was cancelled or taken over meanwhile."""
        job_id = job.id
        message = (str(error) or error.__class__.__name__)[:_MAX_ERROR_CHARS]
        kind = getattr(error, "kind", "internal")
        if kind not in _PERSISTED_KINDS:
            kind = "internal"
        try:
            failed = self._jobs.update(
                job_id,
                {JobStatus.PROCESSING},
                expected_version=job.version,
                status=JobStatus.FAILED,
                error=message,
                error_kind=kind,
                completed_at=utcnow(),
            )
        except Exception:
            logger.exception("[Job %s] Could not record failure: %s", job_id, message)
            return None
        if failed is None:
            return self._jobs.get(job_id)
        return failed

    def _call(
        self,
        pool: ThreadPoolExecutor,
        deadline: float,
        label: str,
        fn: Callable[..., Any],
        *args: Any,
    ) -> Any:
        """Run ``fn`` with a timeout bounded by both the per-call and the batch budget."""
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise GenerationTimeoutError(f"Job exceeded its time budget of {self._job_timeout:.0f}s")
        timeout = min(self._call_timeout, remaining)
        future = pool.submit(fn, *args)
        try:
            return future.result(timeout=timeout)
        except GenerationTimeoutError:
            raise
        except FuturesTimeout:
            future.cancel()
            if timeout < self._call_timeout:
                raise GenerationTimeoutError(
                    f"Job exceeded its time budget of {self._job_timeout:.0f}s during {label}"
                )
            raise GenerationTimeoutError(f"{label} timed out after {timeout:.1f}s")

    def _generate_item(
        self,
        job: GenerationJob,
        i: int,
        pool: ThreadPoolExecutor,
        deadline: float,
        page_cache: dict[str, str],
    ) -> Article:
        system_prompt = job.system_prompt or DEFAULT_SYSTEM_PROMPT

        if job.mode == GenerationMode.IMAGE:
            urls = job.image_urls or []
            if not urls:
                raise ValidationError(f"Job {job.id} has no source images")
            if i <= len(urls):
                source = urls[i - 1]
            else:
                logger.warning("[Job %s] Item %d has no image of its own; reusing the last image", job.id, i)
                source = urls[-1]
            image_bytes, mime_type = self._call(pool, deadline, "Image fetch", self._media.load, source)
            text: ArticleText = self._call(
                pool, deadline, "Vision generation",
                self._provider.generate_vision_text,
                image_bytes, mime_type, image_instruction(job.language), system_prompt,
            )
            return self._article(job, text, image_url=source, image_prompt=text.image_prompt)

        if job.mode == GenerationMode.WEBSITE:
            url = job.topic or ""
            if url not in page_cache:
                page_cache[url] = self._call(pool, deadline, "Website fetch", self._page_fetcher, url)
            instruction = website_instruction(url, job.language, page_cache[url])
        else:
            instruction = topic_instruction(job.topic or "", job.language)

        text = self._call(
            pool, deadline, "Text generation", self._provider.generate_text, instruction, system_prompt
        )
        image_prompt = with_suffix(text.image_prompt, job.image_prompt_suffix)
        image = self._call(
            pool, deadline, "Image generation",
            self._provider.generate_image, image_prompt, job.image_aspect_ratio,
        )
        image_url = self._media.save(job.user_id, image.data, image.mime_type)
        return self._article(job, text, image_url=image_url, image_prompt=image_prompt)

    @staticmethod
    def _article(job: GenerationJob, text: ArticleText, image_url: str, image_prompt: str) -> Article:
        return Article(
            id=new_article_id(),
            user_id=job.user_id,
            job_id=job.id,
            title=text.title,
            content=text.content,
            image_url=image_url,
            image_prompt=image_prompt,
            topic=job.topic,
            mode=job.mode,
            status=ArticleStatus.DRAFT,
        )
