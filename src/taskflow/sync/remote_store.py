# src/taskflow/sync/remote_store.py

"""
Remote store adapter.

Wraps an account-scoped RemoteTable (see core/ports.py) with the policy the rest
of the app relies on:
- writes are best-effort: failures are logged and discarded, never retried
- fetch_remote() is the read path; success overwrites the local cache, failure
  returns None so callers keep what they hold (fetch_all() falls back to the
  cached list instead)
- a subscription turns every pushed change into a full re-fetch and reopens
  the feed with backoff when it drops

When no table is configured (or there is no account) the adapter degrades to
local-only mode: writes are no-ops and fetch_all() reads the cache.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from ..core.ports import KeyValueCache, RemoteTable, Row
from ..tasks.task_models import Task, TaskValidationError

logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"

TasksCallback = Callable[[list[Task]], Awaitable[None] | None]


class RemoteStoreError(RuntimeError):
    """Remote store unreachable or request rejected."""


# ---- row mapping ----

_ROW_TO_PAYLOAD = {
    "id": "id",
    "title": "title",
    "description": "description",
    "due_date": "dueDate",
    "priority": "priority",
    "category": "category",
    "recurrence": "recurrence",
    "completed": "completed",
    "completed_at": "completedAt",
    "created_at": "createdAt",
}


def to_row(task: Task, account_id: str) -> Row:
    return {
        "id": task.id,
        "user_id": account_id,
        "title": task.title,
        "description": task.description or "",
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "priority": task.priority.value,
        "category": task.category.value,
        "recurrence": task.recurrence.value,
        "completed": bool(task.completed),
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
        "created_at": task.created_at.isoformat(),
    }


def from_row(row: Row) -> Task:
    return Task.from_dict({camel: row.get(snake) for snake, camel in _ROW_TO_PAYLOAD.items()})


def _rows_to_tasks(rows: Iterable[Row]) -> list[Task]:
    tasks: list[Task] = []
    for row in rows:
        try:
            tasks.append(from_row(row))
        except TaskValidationError as e:
            logger.warning("Skipping invalid remote row id=%r: %s", row.get("id"), e)
    return tasks


class Subscription:
    """
    Handle for a standing change feed. Calling it tears the feed down.

    Safe to call any number of times, including when nothing was opened.
    """

    def __init__(self, runner: asyncio.Task[None] | None = None) -> None:
        self._runner = runner

    @property
    def active(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def __call__(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None and not runner.done():
            runner.cancel()


class RemoteStoreAdapter:
    def __init__(
        self,
        table: RemoteTable | None,
        cache: KeyValueCache,
        *,
        reconnect_min_seconds: float = 1.0,
        reconnect_max_seconds: float = 30.0,
    ) -> None:
        self._table = table
        self._cache = cache
        self._reconnect_min_s = max(0.0, float(reconnect_min_seconds))
        self._reconnect_max_s = max(self._reconnect_min_s, float(reconnect_max_seconds))

    @property
    def configured(self) -> bool:
        return self._table is not None

    def _enabled(self, account_id: str | None) -> bool:
        return self._table is not None and bool(account_id)

    # ---- cache side ----

    def cached_tasks(self) -> list[Task]:
        raw = self._cache.get(TASKS_KEY, [])
        if not isinstance(raw, list):
            return []
        tasks: list[Task] = []
        for item in raw:
            try:
                tasks.append(Task.from_dict(item))
            except TaskValidationError as e:
                logger.warning("Skipping invalid cached task: %s", e)
        return tasks

    def write_cache(self, tasks: Iterable[Task]) -> None:
        self._cache.set(TASKS_KEY, [t.to_dict() for t in tasks])

    # ---- reads ----

    async def fetch_remote(self, account_id: str | None) -> list[Task] | None:
        """
        Remote snapshot for the account, newest first (also written to the cache).

        None when there is nothing authoritative to return: local-only mode,
        no account, or the fetch failed. The cache is left untouched then.
        """
        if not self._enabled(account_id):
            return None
        assert self._table is not None and account_id

        try:
            rows = await self._table.select_rows(account_id)
        except Exception as e:
            logger.warning("Remote fetch failed account=%s: %r", account_id, e)
            return None

        tasks = _rows_to_tasks(rows or [])
        self.write_cache(tasks)
        logger.debug("fetch_all account=%s tasks=%d", account_id, len(tasks))
        return tasks

    async def fetch_all(self, account_id: str | None) -> list[Task]:
        """All tasks for the account, newest first; cached list on any failure."""
        tasks = await self.fetch_remote(account_id)
        return self.cached_tasks() if tasks is None else tasks

    async def fetch_ids(self, account_id: str) -> set[str]:
        """Ids of the account's remote rows. Raises RemoteStoreError."""
        if not self._enabled(account_id):
            raise RemoteStoreError("Remote store is not configured")
        assert self._table is not None
        try:
            rows = await self._table.select_rows(account_id, columns="id")
        except RemoteStoreError:
            raise
        except Exception as e:
            raise RemoteStoreError(f"fetch_ids failed: {e!r}") from e
        return {str(r["id"]) for r in rows or [] if r.get("id")}

    # ---- writes ----

    async def insert(self, task: Task, account_id: str | None) -> None:
        if not self._enabled(account_id):
            return
        assert self._table is not None and account_id
        try:
            await self._table.insert_rows([to_row(task, account_id)])
        except Exception as e:
            logger.warning("Remote insert failed task_id=%s: %r", task.id, e)

    async def insert_many(self, tasks: Iterable[Task], account_id: str) -> None:
        """Bulk insert. Raises RemoteStoreError (used by migration)."""
        if not self._enabled(account_id):
            raise RemoteStoreError("Remote store is not configured")
        assert self._table is not None
        rows = [to_row(t, account_id) for t in tasks]
        if not rows:
            return
        try:
            await self._table.insert_rows(rows)
        except RemoteStoreError:
            raise
        except Exception as e:
            raise RemoteStoreError(f"insert_many failed: {e!r}") from e

    async def update(self, task: Task, account_id: str | None) -> None:
        if not self._enabled(account_id):
            return
        assert self._table is not None and account_id
        try:
            await self._table.update_row(task.id, account_id, to_row(task, account_id))
        except Exception as e:
            logger.warning("Remote update failed task_id=%s: %r", task.id, e)

    async def delete(self, task_id: str, account_id: str | None) -> None:
        if not self._enabled(account_id):
            return
        assert self._table is not None and account_id
        try:
            await self._table.delete_row(task_id, account_id)
        except Exception as e:
            logger.warning("Remote delete failed task_id=%s: %r", task_id, e)

    # ---- push ----

    def subscribe(self, account_id: str | None, on_change: TasksCallback) -> Subscription:
        """
        Open the account's change feed. Each event -> fetch_all -> on_change(tasks).

        Must be called from a running event loop when the store is configured.
        """
        if not self._enabled(account_id):
            return Subscription()
        assert account_id
        runner = asyncio.get_running_loop().create_task(
            self._listen(account_id, on_change),
            name=f"taskflow-changes-{account_id}",
        )
        return Subscription(runner)

    async def _deliver(self, account_id: str, on_change: TasksCallback) -> None:
        tasks = await self.fetch_remote(account_id)
        if tasks is None:
            return
        result: Any = on_change(tasks)
        if inspect.isawaitable(result):
            await result

    async def _listen(self, account_id: str, on_change: TasksCallback) -> None:
        """
        Standing feed: reopened with capped exponential backoff whenever it
        ends or fails. Only cancellation stops it.

        After every reopen one snapshot is delivered, covering the events
        missed while disconnected.
        """
        assert self._table is not None
        delay = self._reconnect_min_s
        reconnecting = False
        try:
            while True:
                try:
                    if reconnecting:
                        await self._deliver(account_id, on_change)
                    logger.info("Change feed opened account=%s", account_id)
                    async for event in self._table.changes(account_id):
                        delay = self._reconnect_min_s
                        logger.debug("Change event %s id=%s", event.type, event.record_id)
                        await self._deliver(account_id, on_change)
                    logger.warning("Change feed ended account=%s; reconnecting in %.1fs", account_id, delay)
                except Exception as e:
                    logger.warning("Change feed failed account=%s: %r; reconnecting in %.1fs", account_id, e, delay)

                reconnecting = True
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._reconnect_max_s)
        except asyncio.CancelledError:
            logger.info("Change feed closed account=%s", account_id)
            raise

    async def aclose(self) -> None:
        if self._table is not None:
            await self._table.aclose()
