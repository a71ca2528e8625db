"""Wires stores, provider, processor and services together for the CLI and the API."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from contentforge.articles.service import ArticleService
from contentforge.articles.store import ArticleStore, get_article_store
from contentforge.config import Settings, get_settings
from contentforge.jobs.client import JobClient
from contentforge.jobs.processor import JobProcessor
from contentforge.jobs.runner import JobRunner
from contentforge.jobs.store import JobStore, get_job_store
from contentforge.llm import ContentProvider, provider_from_settings
from contentforge.media.storage import MediaStorage, get_media_storage
from contentforge.publishing.scheduler import ScheduledPostChecker
from contentforge.publishing.webhook import WebhookPublisher
from contentforge.users.store import SettingsStore, get_settings_store

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    jobs: JobStore
    articles: ArticleStore
    user_settings: SettingsStore
    media: MediaStorage
    publisher: WebhookPublisher
    _provider: ContentProvider | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def provider(self) -> ContentProvider:
        """Build the configured provider on first use (raises ProviderError without a key)."""
        with self._lock:
            if self._provider is None:
                self._provider = provider_from_settings(self.settings)
            return self._provider

    def processor(self) -> JobProcessor:
        return JobProcessor(
            self.jobs,
            self.articles,
            self.provider(),
            self.media,
            job_timeout=self.settings.cf_job_timeout_seconds,
            call_timeout=self.settings.cf_provider_timeout_seconds,
        )

    def runner(self) -> JobRunner:
        return JobRunner(self.jobs, self.processor, max_workers=self.settings.cf_max_concurrent_jobs)

    def job_client(self, runner: JobRunner | None = None) -> JobClient:
        return JobClient(
            self.jobs,
            settings_store=self.user_settings,
            on_created=runner.submit if runner is not None else None,
        )

    def article_service(self) -> ArticleService:
        return ArticleService(
            self.articles,
            self.user_settings,
            self.publisher,
            media=self.media,
            provider_factory=self.provider,
        )

    def scheduled_checker(self) -> ScheduledPostChecker:
        return ScheduledPostChecker(
            self.articles,
            self.user_settings,
            self.publisher,
            interval=self.settings.cf_scheduler_interval_seconds,
        )


def build_services(settings: Settings | None = None) -> Services:
    settings = settings or get_settings()
    return Services(
        settings=settings,
        jobs=get_job_store(),
        articles=get_article_store(),
        user_settings=get_settings_store(),
        media=get_media_storage(),
        publisher=WebhookPublisher(timeout=settings.cf_provider_timeout_seconds),
    )
