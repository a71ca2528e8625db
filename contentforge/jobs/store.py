"""Generation job storage: Postgres (preferred) or file-based fallback.

Every write goes through ``update`` with an expected-status precondition
(compare-and-set), optionally pinned to the ``version`` the writer last saw.
A cancellation written by the owner and a progress update written by the
processor can never clobber each other. Terminal records are never modified
again.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Iterable, Protocol

from contentforge.config import get_settings
from contentforge.errors import InvalidStateError, StoreError
from contentforge.jobs.feed import JobFeed
from contentforge.jobs.models import GenerationJob, JobStatus, TERMINAL_STATUSES, utcnow

logger = logging.getLogger(__name__)


class JobStore(Protocol):
    feed: JobFeed

    def create(self, job: GenerationJob) -> GenerationJob: ...
    def get(self, job_id: str) -> GenerationJob | None: ...
    def list_for_user(self, user_id: str, limit: int = 20) -> list[GenerationJob]: ...
    def list_by_status(self, statuses: Iterable[JobStatus]) -> list[GenerationJob]: ...
    def update(
        self,
        job_id: str,
        expected: Iterable[JobStatus],
        expected_version: int | None = None,
        **fields: Any,
    ) -> GenerationJob | None: ...


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


def _apply(
    job: GenerationJob,
    expected: Iterable[JobStatus],
    expected_version: int | None,
    fields: dict[str, Any],
) -> GenerationJob | None:
    """Return the updated record, or None when a precondition fails."""
    expected = set(expected)
    if job.status not in expected or job.status in TERMINAL_STATUSES:
        return None
    if expected_version is not None and job.version != expected_version:
        return None
    if "progress" in fields and fields["progress"] < job.progress:
        raise InvalidStateError(
            f"Job {job.id}: progress cannot go back from {job.progress} to {fields['progress']}"
        )
    data = job.model_dump()
    data.update(fields)
    data["version"] = job.version + 1
    data["updated_at"] = utcnow()
    return GenerationJob.model_validate(data)


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

class PostgresJobStore:
    """Persist jobs in Postgres as JSONB documents. Survives restarts."""

    def __init__(self, database_url: str, feed: JobFeed | None = None):
        self._url = database_url
        self._lock = threading.Lock()
        self._conn = self._connect()
        self.feed = feed or JobFeed()

    def _connect(self):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres job store. pip install 'psycopg[binary]'"
            )
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS cf_generation_jobs (
                job_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                status TEXT NOT NULL,
                record JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_cf_generation_jobs_user
            ON cf_generation_jobs (user_id, created_at DESC)
        """)
        return conn

    def create(self, job: GenerationJob) -> GenerationJob:
        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO cf_generation_jobs (job_id, user_id, status, record, created_at)
                    VALUES (%s, %s, %s, %s::jsonb, %s)
                    """,
                    (job.id, job.user_id, job.status.value, json.dumps(job.to_record()), job.created_at),
                )
        except Exception as e:
            raise StoreError(f"Could not create job {job.id}: {e}") from e
        self.feed.publish(job)
        return job

    def get(self, job_id: str) -> GenerationJob | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT record FROM cf_generation_jobs WHERE job_id = %s", (job_id,)
                ).fetchone()
        except Exception as e:
            raise StoreError(f"Could not read job {job_id}: {e}") from e
        return self._row_to_job(row) if row else None

    def list_for_user(self, user_id: str, limit: int = 20) -> list[GenerationJob]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT record FROM cf_generation_jobs WHERE user_id = %s
                    ORDER BY created_at DESC LIMIT %s
                    """,
                    (user_id, limit),
                ).fetchall()
        except Exception as e:
            raise StoreError(f"Could not list jobs for {user_id}: {e}") from e
        return [self._row_to_job(r) for r in rows]

    def list_by_status(self, statuses: Iterable[JobStatus]) -> list[GenerationJob]:
        values = [s.value for s in statuses]
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT record FROM cf_generation_jobs WHERE status = ANY(%s) ORDER BY created_at",
                    (values,),
                ).fetchall()
        except Exception as e:
            raise StoreError(f"Could not list jobs by status: {e}") from e
        return [self._row_to_job(r) for r in rows]

    def update(
        self,
        job_id: str,
        expected: Iterable[JobStatus],
        expected_version: int | None = None,
        **fields: Any,
    ) -> GenerationJob | None:
        try:
            with self._lock, self._conn.transaction():
                row = self._conn.execute(
                    "SELECT record FROM cf_generation_jobs WHERE job_id = %s FOR UPDATE", (job_id,)
                ).fetchone()
                if not row:
                    return None
                updated = _apply(self._row_to_job(row), expected, expected_version, fields)
                if updated is None:
                    return None
                self._conn.execute(
                    "UPDATE cf_generation_jobs SET status = %s, record = %s::jsonb WHERE job_id = %s",
                    (updated.status.value, json.dumps(updated.to_record()), job_id),
                )
        except InvalidStateError:
            raise
        except Exception as e:
            raise StoreError(f"Could not update job {job_id}: {e}") from e
        self.feed.publish(updated)
        return updated

    def _row_to_job(self, row) -> GenerationJob:
        data = row[0] if isinstance(row[0], dict) else json.loads(row[0])
        return GenerationJob.from_record(data)


# ---------------------------------------------------------------------------
# File-based implementation (fallback when no Postgres)
# ---------------------------------------------------------------------------

class FileJobStore:
    """Persist jobs as JSON files. Safe for threads within one process."""

    def __init__(self, data_dir: Path, feed: JobFeed | None = None):
        self._dir = Path(data_dir) / "jobs"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self.feed = feed or JobFeed()

    def _job_path(self, job_id: str) -> Path:
        return self._dir / f"{job_id}.json"

    def create(self, job: GenerationJob) -> GenerationJob:
        with self._lock:
            if self._job_path(job.id).exists():
                raise StoreError(f"Job already exists: {job.id}")
            self._write_job(job)
        self.feed.publish(job)
        return job

    def get(self, job_id: str) -> GenerationJob | None:
        with self._lock:
            return self._read_job(job_id)

    def list_for_user(self, user_id: str, limit: int = 20) -> list[GenerationJob]:
        jobs = [j for j in self._all() if j.user_id == user_id]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def list_by_status(self, statuses: Iterable[JobStatus]) -> list[GenerationJob]:
        wanted = set(statuses)
        jobs = [j for j in self._all() if j.status in wanted]
        jobs.sort(key=lambda j: j.created_at)
        return jobs

    def update(
        self,
        job_id: str,
        expected: Iterable[JobStatus],
        expected_version: int | None = None,
        **fields: Any,
    ) -> GenerationJob | None:
        with self._lock:
            job = self._read_job(job_id)
            if job is None:
                return None
            updated = _apply(job, expected, expected_version, fields)
            if updated is None:
                return None
            self._write_job(updated)
        self.feed.publish(updated)
        return updated

    def _all(self) -> list[GenerationJob]:
        with self._lock:
            return [
                job
                for path in self._dir.glob("job_*.json")
                if (job := self._read_job(path.stem)) is not None
            ]

    def _write_job(self, job: GenerationJob) -> None:
        path = self._job_path(job.id)
        tmp = path.with_suffix(".json.tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(job.to_record(), f, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            raise StoreError(f"Could not write job {job.id}: {e}") from e

    def _read_job(self, job_id: str) -> GenerationJob | None:
        path = self._job_path(job_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return GenerationJob.from_record(data)
        except (OSError, ValueError) as e:
            raise StoreError(f"Could not read job {job_id}: {e}") from e


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_store: JobStore | None = None


def get_job_store() -> JobStore:
    """Return singleton job store (Postgres if configured, else file-based)."""
    global _store
    if _store is not None:
        return _store
    settings = get_settings()
    if settings.cf_database_url:
        try:
            _store = PostgresJobStore(settings.cf_database_url)
            logger.info("Using Postgres job store")
        except Exception as e:
            logger.warning("Postgres job store failed (%s), falling back to file store", e)
            _store = FileJobStore(settings.data_dir)
    else:
        _store = FileJobStore(settings.data_dir)
        logger.info("Using file-based job store (CF_DATA_DIR/jobs)")
    return _store
