"""Periodic checker that publishes scheduled articles when they fall due."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime

from contentforge.articles.models import Article, ArticleStatus
from contentforge.articles.store import ArticleStore
from contentforge.jobs.models import utcnow
from contentforge.publishing.webhook import WebhookPublisher
from contentforge.users.models import DEFAULT_SETTINGS
from contentforge.users.store import SettingsStore

logger = logging.getLogger(__name__)


@dataclass
class CheckSummary:
    posted: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.posted) + len(self.dropped) + len(self.failed)


class ScheduledPostChecker:
    """Posts due articles to their owners' webhooks.

    A schedule is consumed either way: an article with nowhere to post, or
    whose post fails, goes back to draft instead of being retried every run.
    Targets that did get the post are kept in ``posted_to`` so a later
    publish skips them.
    """

    def __init__(
        self,
        articles: ArticleStore,
        settings_store: SettingsStore,
        publisher: WebhookPublisher,
        interval: float = 300.0,
    ):
        self._articles = articles
        self._settings = settings_store
        self._publisher = publisher
        self._interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self, now: datetime | None = None) -> CheckSummary:
        now = now or utcnow()
        due = self._articles.due_scheduled(now)
        summary = CheckSummary()
        if not due:
            logger.debug("No scheduled posts due at %s", now.isoformat())
            return summary

        logger.info("Found %d scheduled posts to publish", len(due))
        for article in due:
            self._handle(article, summary)
        logger.info(
            "Scheduled check done: %d posted, %d dropped, %d failed",
            len(summary.posted), len(summary.dropped), len(summary.failed),
        )
        return summary

    def _handle(self, article: Article, summary: CheckSummary) -> None:
        settings = self._settings.get(article.user_id) or DEFAULT_SETTINGS
        targets = settings.webhook_targets(article.platforms)
        if not targets:
            logger.warning(
                "User %s has no webhook configured; dropping schedule for article %s",
                article.user_id, article.id,
            )
            self._unschedule(article)
            summary.dropped.append(article.id)
            return

        pending = {name: url for name, url in targets.items() if name not in article.posted_to}
        delivery = self._publisher.post_all(pending, article.title, article.content, article.image_url)
        posted_to = article.posted_to + delivery.posted
        if delivery.errors:
            logger.error("Error posting article %s: %s", article.id, delivery.describe_errors())
            self._articles.update(
                article.id, status=ArticleStatus.DRAFT, scheduled_at=None, posted_to=posted_to
            )
            summary.failed.append(article.id)
            return

        self._articles.update(
            article.id,
            status=ArticleStatus.PUBLISHED,
            published_at=utcnow(),
            scheduled_at=None,
            posted_to=posted_to,
        )
        summary.posted.append(article.id)

    def _unschedule(self, article: Article) -> None:
        self._articles.update(article.id, status=ArticleStatus.DRAFT, scheduled_at=None)

    # -- periodic loop -------------------------------------------------------

    def run_forever(self) -> None:
        logger.info("Scheduled post checker running every %.0fs", self._interval)
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Scheduled post check failed")
            self._stop.wait(self._interval)

    def start_in_thread(self) -> threading.Thread:
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="cf-scheduler", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
