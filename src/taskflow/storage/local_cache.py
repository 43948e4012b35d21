# src/taskflow/storage/local_cache.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "taskflow_"


class LocalCache:
    """
    Durable on-device key/value store (SQLite).

    Contract:
    - get/set/remove/keys are synchronous
    - every key is namespaced under `prefix`, so the table can hold unrelated rows
    - values are stored as JSON text
    - nothing ever raises: faults are logged, `get` returns the caller default,
      `set`/`remove` become no-ops and `keys` returns []

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "cache.sqlite3", *, prefix: str = DEFAULT_PREFIX) -> None:
        self._db_path = Path(db_path)
        self._prefix = prefix
        self._ready = False
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._ensure_schema()
            self._ready = True
        except Exception:
            logger.warning("LocalCache unavailable db=%s; running without persistence", self._db_path, exc_info=True)
            return
        logger.info("LocalCache ready db=%s keys=%s", self._db_path, len(self.keys()))

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def available(self) -> bool:
        return self._ready

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    def _full_key(self, key: str) -> str:
        return self._prefix + key

    # ---- public API ----

    def get(self, key: str, default: Any = None) -> Any:
        if not self._ready:
            return default
        try:
            conn = self._get_conn()
            try:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (self._full_key(key),)).fetchone()
            finally:
                conn.close()
            if row is None:
                return default
            return json.loads(row[0])
        except Exception:
            logger.debug("LocalCache.get failed key=%s; using default", key, exc_info=True)
            return default

    def set(self, key: str, value: Any) -> None:
        if not self._ready:
            return
        try:
            payload = json.dumps(value, ensure_ascii=False)
            conn = self._get_conn()
            try:
                conn.execute(
                    """
                    INSERT INTO kv(key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    (self._full_key(key), payload, time.time()),
                )
                conn.commit()
            finally:
                conn.close()
        except Exception:
            logger.debug("LocalCache.set failed key=%s", key, exc_info=True)

    def remove(self, key: str) -> None:
        if not self._ready:
            return
        try:
            conn = self._get_conn()
            try:
                conn.execute("DELETE FROM kv WHERE key = ?", (self._full_key(key),))
                conn.commit()
            finally:
                conn.close()
        except Exception:
            logger.debug("LocalCache.remove failed key=%s", key, exc_info=True)

    def keys(self) -> list[str]:
        if not self._ready:
            return []
        try:
            conn = self._get_conn()
            try:
                rows = conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
            finally:
                conn.close()
        except Exception:
            logger.debug("LocalCache.keys failed", exc_info=True)
            return []
        n = len(self._prefix)
        return [k[n:] for (k,) in rows if isinstance(k, str) and k.startswith(self._prefix)]
