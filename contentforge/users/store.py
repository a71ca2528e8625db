"""Per-owner settings storage: Postgres or file-based fallback."""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from pathlib import Path
from typing import Protocol

from contentforge.config import get_settings
from contentforge.errors import StoreError
from contentforge.users.models import UserSettings

logger = logging.getLogger(__name__)


class SettingsStore(Protocol):
    def get(self, user_id: str) -> UserSettings | None: ...
    def save(self, user_id: str, settings: UserSettings) -> None: ...


class PostgresSettingsStore:
    """Persist settings in cf_user_settings, one row per owner."""

    def __init__(self, database_url: str):
        self._url = database_url
        self._lock = threading.Lock()
        self._conn = self._connect()

    def _connect(self):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres settings store. pip install 'psycopg[binary]'"
            )
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS cf_user_settings (
                user_id TEXT PRIMARY KEY,
                settings JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        return conn

    def get(self, user_id: str) -> UserSettings | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT settings FROM cf_user_settings WHERE user_id = %s", (user_id,)
                ).fetchone()
        except Exception as e:
            raise StoreError(f"Could not read settings for {user_id}: {e}") from e
        if not row:
            return None
        data = row[0] if isinstance(row[0], dict) else json.loads(row[0])
        return UserSettings.model_validate(data)

    def save(self, user_id: str, settings: UserSettings) -> None:
        payload = json.dumps(settings.model_dump(mode="json", by_alias=True))
        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO cf_user_settings (user_id, settings, updated_at)
                    VALUES (%s, %s::jsonb, NOW())
                    ON CONFLICT (user_id) DO UPDATE SET settings = EXCLUDED.settings, updated_at = NOW()
                    """,
                    (user_id, payload),
                )
        except Exception as e:
            raise StoreError(f"Could not save settings for {user_id}: {e}") from e


class FileSettingsStore:
    """Persist settings as one JSON file per owner."""

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "settings"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, user_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", user_id)
        return self._dir / f"{safe}.json"

    def get(self, user_id: str) -> UserSettings | None:
        path = self._path(user_id)
        with self._lock:
            if not path.exists():
                return None
            try:
                with open(path, "r", encoding="utf-8") as f:
                    return UserSettings.model_validate(json.load(f))
            except (OSError, ValueError) as e:
                raise StoreError(f"Could not read settings for {user_id}: {e}") from e

    def save(self, user_id: str, settings: UserSettings) -> None:
        path = self._path(user_id)
        tmp = path.with_suffix(".json.tmp")
        with self._lock:
            try:
                with open(tmp, "w", encoding="utf-8") as f:
                    json.dump(settings.model_dump(mode="json", by_alias=True), f, indent=2)
                os.replace(tmp, path)
            except OSError as e:
                raise StoreError(f"Could not save settings for {user_id}: {e}") from e


_store: SettingsStore | None = None


def get_settings_store() -> SettingsStore:
    """Return singleton settings store (Postgres if configured, else file-based)."""
    global _store
    if _store is not None:
        return _store
    settings = get_settings()
    if settings.cf_database_url:
        try:
            _store = PostgresSettingsStore(settings.cf_database_url)
        except Exception as e:
            logger.warning("Postgres settings store failed (%s), falling back to file store", e)
            _store = FileSettingsStore(settings.data_dir)
    else:
        _store = FileSettingsStore(settings.data_dir)
    return _store
