"""Article storage: Postgres or file-based fallback."""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from contentforge.articles.models import Article, ArticleStatus
from contentforge.config import get_settings
from contentforge.errors import StoreError
from contentforge.jobs.models import utcnow

logger = logging.getLogger(__name__)


class ArticleStore(Protocol):
    def create(self, article: Article) -> Article: ...
    def get(self, article_id: str) -> Article | None: ...
    def list_for_user(self, user_id: str, status: ArticleStatus | None = None) -> list[Article]: ...
    def list_for_job(self, job_id: str) -> list[Article]: ...
    def update(self, article_id: str, **fields: Any) -> Article | None: ...
    def delete(self, article_id: str) -> bool: ...
    def due_scheduled(self, now: datetime) -> list[Article]: ...


def new_article_id() -> str:
    return f"art_{uuid.uuid4().hex[:16]}"


def _apply(article: Article, fields: dict[str, Any]) -> Article:
    data = article.model_dump()
    data.update(fields)
    data["updated_at"] = utcnow()
    return Article.model_validate(data)


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

class PostgresArticleStore:
    """Persist articles in the cf_articles table."""

    def __init__(self, database_url: str):
        self._url = database_url
        self._lock = threading.Lock()
        self._conn = self._connect()

    def _connect(self):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres article store. pip install 'psycopg[binary]'"
            )
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS cf_articles (
                article_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                job_id TEXT,
                status TEXT NOT NULL,
                scheduled_at TIMESTAMPTZ,
                record JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_cf_articles_user
            ON cf_articles (user_id, status, created_at DESC)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_cf_articles_due
            ON cf_articles (status, scheduled_at)
        """)
        return conn

    def _query(self, sql: str, params: tuple) -> list[Article]:
        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except Exception as e:
            raise StoreError(f"Article query failed: {e}") from e
        return [self._row_to_article(r) for r in rows]

    def create(self, article: Article) -> Article:
        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO cf_articles
                    (article_id, user_id, job_id, status, scheduled_at, record, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s::jsonb, %s)
                    """,
                    (
                        article.id,
                        article.user_id,
                        article.job_id,
                        article.status.value,
                        article.scheduled_at,
                        json.dumps(article.to_record()),
                        article.created_at,
                    ),
                )
        except Exception as e:
            raise StoreError(f"Could not create article {article.id}: {e}") from e
        return article

    def get(self, article_id: str) -> Article | None:
        rows = self._query("SELECT record FROM cf_articles WHERE article_id = %s", (article_id,))
        return rows[0] if rows else None

    def list_for_user(self, user_id: str, status: ArticleStatus | None = None) -> list[Article]:
        if status is None:
            return self._query(
                "SELECT record FROM cf_articles WHERE user_id = %s ORDER BY created_at DESC",
                (user_id,),
            )
        return self._query(
            "SELECT record FROM cf_articles WHERE user_id = %s AND status = %s ORDER BY created_at DESC",
            (user_id, status.value),
        )

    def list_for_job(self, job_id: str) -> list[Article]:
        return self._query(
            "SELECT record FROM cf_articles WHERE job_id = %s ORDER BY created_at",
            (job_id,),
        )

    def update(self, article_id: str, **fields: Any) -> Article | None:
        try:
            with self._lock, self._conn.transaction():
                row = self._conn.execute(
                    "SELECT record FROM cf_articles WHERE article_id = %s FOR UPDATE", (article_id,)
                ).fetchone()
                if not row:
                    return None
                updated = _apply(self._row_to_article(row), fields)
                self._conn.execute(
                    """
                    UPDATE cf_articles SET status = %s, scheduled_at = %s, record = %s::jsonb
                    WHERE article_id = %s
                    """,
                    (
                        updated.status.value,
                        updated.scheduled_at,
                        json.dumps(updated.to_record()),
                        article_id,
                    ),
                )
        except ValueError:
            raise
        except Exception as e:
            raise StoreError(f"Could not update article {article_id}: {e}") from e
        return updated

    def delete(self, article_id: str) -> bool:
        try:
            with self._lock:
                cur = self._conn.execute("DELETE FROM cf_articles WHERE article_id = %s", (article_id,))
        except Exception as e:
            raise StoreError(f"Could not delete article {article_id}: {e}") from e
        return cur.rowcount > 0

    def due_scheduled(self, now: datetime) -> list[Article]:
        return self._query(
            """
            SELECT record FROM cf_articles
            WHERE status = 'scheduled' AND scheduled_at <= %s
            ORDER BY scheduled_at
            """,
            (now,),
        )

    def _row_to_article(self, row) -> Article:
        data = row[0] if isinstance(row[0], dict) else json.loads(row[0])
        return Article.from_record(data)


# ---------------------------------------------------------------------------
# File-based implementation
# ---------------------------------------------------------------------------

class FileArticleStore:
    """Persist articles as one JSON file each."""

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "articles"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, article_id: str) -> Path:
        return self._dir / f"{article_id}.json"

    def create(self, article: Article) -> Article:
        with self._lock:
            self._write(article)
        return article

    def get(self, article_id: str) -> Article | None:
        with self._lock:
            return self._read(self._path(article_id))

    def list_for_user(self, user_id: str, status: ArticleStatus | None = None) -> list[Article]:
        articles = [
            a for a in self._all()
            if a.user_id == user_id and (status is None or a.status == status)
        ]
        articles.sort(key=lambda a: a.created_at, reverse=True)
        return articles

    def list_for_job(self, job_id: str) -> list[Article]:
        articles = [a for a in self._all() if a.job_id == job_id]
        articles.sort(key=lambda a: a.created_at)
        return articles

    def update(self, article_id: str, **fields: Any) -> Article | None:
        with self._lock:
            article = self._read(self._path(article_id))
            if article is None:
                return None
            updated = _apply(article, fields)
            self._write(updated)
        return updated

    def delete(self, article_id: str) -> bool:
        with self._lock:
            path = self._path(article_id)
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                raise StoreError(f"Could not delete article {article_id}: {e}") from e
            return True

    def due_scheduled(self, now: datetime) -> list[Article]:
        due = [
            a for a in self._all()
            if a.status == ArticleStatus.SCHEDULED and a.scheduled_at is not None and a.scheduled_at <= now
        ]
        due.sort(key=lambda a: a.scheduled_at)
        return due

    def _all(self) -> list[Article]:
        with self._lock:
            return [a for p in self._dir.glob("art_*.json") if (a := self._read(p)) is not None]

    def _write(self, article: Article) -> None:
        path = self._path(article.id)
        tmp = path.with_suffix(".json.tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(article.to_record(), f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as e:
            raise StoreError(f"Could not write article {article.id}: {e}") from e

    def _read(self, path: Path) -> Article | None:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return Article.from_record(json.load(f))
        except (OSError, ValueError) as e:
            raise StoreError(f"Could not read article {path.stem}: {e}") from e


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_store: ArticleStore | None = None


def get_article_store() -> ArticleStore:
    """Return singleton article store (Postgres if configured, else file-based)."""
    global _store
    if _store is not None:
        return _store
    settings = get_settings()
    if settings.cf_database_url:
        try:
            _store = PostgresArticleStore(settings.cf_database_url)
            logger.info("Using Postgres article store")
        except Exception as e:
            logger.warning("Postgres article store failed (%s), falling back to file store", e)
            _store = FileArticleStore(settings.data_dir)
    else:
        _store = FileArticleStore(settings.data_dir)
    return _store
