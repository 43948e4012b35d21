# src/taskflow/sync/coordinator.py

from __future__ import annotations

"""
Sync coordinator.

Owns the in-memory task list and decides, per operation, whether a write stays
local or is mirrored to the remote store.

Rules:
- every mutation replaces the whole list (tuple of frozen Tasks) and persists
  it to the local cache before the first await, so readers never see a partial
  update and local state is always at least as fresh as the mirrored copy
- remote writes are best-effort (see RemoteStoreAdapter)
- identity transitions drive migration -> initial fetch -> subscription, in
  that order, so a push-triggered fetch cannot overwrite local-only tasks that
  were not yet copied to the account

To stop push handling, clear the identity (or call close()).
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime

from ..core.identity import Identity
from ..core.ports import IdentityProvider
from ..tasks.recurrence import materialize_next
from ..tasks.task_models import Task, TaskDraft, TaskValidationError, generate_id, utc_now
from .remote_store import RemoteStoreAdapter, RemoteStoreError, Subscription

logger = logging.getLogger(__name__)

DEFAULT_UNDO_WINDOW_SECONDS = 3.5

TasksListener = Callable[[list[Task]], None]


class PendingDeletion:
    """
    Undo window for one deleted task.

    The deletion is already applied (locally and remotely). undo() before the
    timer fires restores the exact record; after that the deletion is final.
    """

    def __init__(self, coordinator: SyncCoordinator, task: Task, window_seconds: float) -> None:
        self._coordinator = coordinator
        self._task = task
        self._final = False
        self._restored = False
        self._timer = asyncio.get_running_loop().call_later(max(0.0, window_seconds), self._expire)

    @property
    def task(self) -> Task:
        return self._task

    @property
    def open(self) -> bool:
        return not self._final and not self._restored

    @property
    def restored(self) -> bool:
        return self._restored

    def _expire(self) -> None:
        if self.open:
            self._final = True
            logger.debug("Deletion finalized task_id=%s", self._task.id)

    def finalize(self) -> None:
        """Close the window early (e.g. the notification was dismissed)."""
        self._timer.cancel()
        self._expire()

    async def undo(self) -> bool:
        if not self.open:
            return False
        self._timer.cancel()
        self._restored = True
        await self._coordinator.restore(self._task)
        logger.info("Deletion undone task_id=%s", self._task.id)
        return True


class SyncCoordinator:
    def __init__(
        self,
        remote: RemoteStoreAdapter,
        *,
        undo_window_seconds: float = DEFAULT_UNDO_WINDOW_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._remote = remote
        self._undo_window_s = float(undo_window_seconds)
        self._clock = clock

        self._tasks: tuple[Task, ...] = tuple(remote.cached_tasks())
        self._account_id: str | None = None
        self._subscription: Subscription = Subscription()
        self._listeners: list[TasksListener] = []
        self._pending: list[PendingDeletion] = []
        self._unbind: Callable[[], None] | None = None

        logger.info("SyncCoordinator ready tasks=%d remote=%s", len(self._tasks), remote.configured)

    # ---- state ----

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def account_id(self) -> str | None:
        return self._account_id

    @property
    def subscribed(self) -> bool:
        return self._subscription.active

    def get(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def on_tasks_changed(self, callback: TasksListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _replace(self, tasks: Iterable[Task]) -> None:
        """Swap in a new list and persist it. Synchronous by contract."""
        self._tasks = tuple(tasks)
        self._remote.write_cache(self._tasks)
        snapshot = list(self._tasks)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("tasks listener failed")

    # ---- mutations ----

    async def add(self, draft: TaskDraft) -> Task:
        if not draft.title or not draft.title.strip():
            raise TaskValidationError("Title is required")

        task = Task(
            id=generate_id(),
            title=draft.title.strip(),
            created_at=self._clock(),
            description=draft.description,
            due_date=draft.due_date,
            priority=draft.priority,
            category=draft.category,
            recurrence=draft.recurrence,
            completed=False,
            completed_at=None,
        )
        self._replace((task, *self._tasks))
        logger.debug("Task added id=%s", task.id)

        await self._remote.insert(task, self._account_id)
        return task

    async def edit(self, draft: TaskDraft) -> Task | None:
        if not draft.id:
            raise TaskValidationError("Edit needs a task id")
        if not draft.title or not draft.title.strip():
            raise TaskValidationError("Title is required")

        current = self.get(draft.id)
        if current is None:
            logger.debug("Edit ignored, unknown task id=%s", draft.id)
            return None

        updated = replace(
            current,
            title=draft.title.strip(),
            description=draft.description,
            due_date=draft.due_date,
            priority=draft.priority,
            category=draft.category,
            recurrence=draft.recurrence,
        )
        self._replace(updated if t.id == updated.id else t for t in self._tasks)

        await self._remote.update(updated, self._account_id)
        return updated

    async def toggle(self, task_id: str) -> Task | None:
        current = self.get(task_id)
        if current is None:
            return None

        now = self._clock()
        completed = not current.completed
        toggled = replace(current, completed=completed, completed_at=now if completed else None)

        sibling = materialize_next(current, now=now) if completed else None
        if sibling is not None and self._has_open_occurrence(sibling):
            # complete -> reopen -> complete: the next cycle already exists
            logger.debug("Next occurrence of %s already open, not creating another", task_id)
            sibling = None

        updated = [toggled if t.id == task_id else t for t in self._tasks]
        if sibling is not None:
            updated.insert(0, sibling)
            logger.info("Recurring task %s -> next occurrence %s due=%s", task_id, sibling.id, sibling.due_date)
        self._replace(updated)

        await self._remote.update(toggled, self._account_id)
        if sibling is not None:
            await self._remote.insert(sibling, self._account_id)
        return toggled

    def _has_open_occurrence(self, occurrence: Task) -> bool:
        return any(
            not t.completed
            and t.title == occurrence.title
            and t.recurrence is occurrence.recurrence
            and t.due_date == occurrence.due_date
            for t in self._tasks
        )

    async def delete(self, task_id: str) -> PendingDeletion | None:
        current = self.get(task_id)
        if current is None:
            return None

        self._replace(t for t in self._tasks if t.id != task_id)
        pending = PendingDeletion(self, current, self._undo_window_s)
        self._pending = [p for p in self._pending if p.open]
        self._pending.append(pending)

        await self._remote.delete(task_id, self._account_id)
        return pending

    async def restore(self, task: Task) -> None:
        """Put back an exact record (same id/created_at), locally and remotely."""
        self._replace((task, *(t for t in self._tasks if t.id != task.id)))
        await self._remote.insert(task, self._account_id)

    async def refresh(self) -> list[Task]:
        """
        Manual re-sync. Local-only mode or a failed fetch keeps the in-memory
        list, which is never older than the cache.
        """
        account_id = self._account_id
        tasks = await self._remote.fetch_remote(account_id)
        if tasks is not None and account_id == self._account_id:
            self._replace(tasks)
        return self.tasks

    # ---- identity ----

    def bind(self, identity: IdentityProvider) -> Callable[[], None]:
        """Follow an identity provider's transitions."""
        if self._unbind is not None:
            self._unbind()

        async def _on_change(new: Identity | None) -> None:
            await self.set_identity(new.account_id if new else None)

        self._unbind = identity.on_identity_change(_on_change)
        return self._unbind

    async def set_identity(self, account_id: str | None) -> None:
        account_id = account_id or None
        if account_id == self._account_id:
            return
        if self._account_id is not None:
            await self.on_identity_cleared()
        if account_id is not None:
            await self.on_identity_established(account_id)

    async def on_identity_established(self, account_id: str) -> None:
        logger.info("Identity established account=%s", account_id)
        self._account_id = account_id

        # (a) copy local-only tasks into the account
        await self.migrate(account_id)

        # (b) remote becomes authoritative; on failure keep the current list
        tasks = await self._remote.fetch_remote(account_id)
        if self._account_id != account_id:
            logger.info("Identity changed during initial fetch; dropping result account=%s", account_id)
            return
        if tasks is not None:
            self._replace(tasks)

        # (c) push channel
        self._subscription()
        self._subscription = self._remote.subscribe(account_id, self._on_remote_change)

    async def on_identity_cleared(self) -> None:
        logger.info("Identity cleared account=%s", self._account_id)
        self._subscription()
        self._subscription = Subscription()
        self._account_id = None

    def _on_remote_change(self, tasks: list[Task]) -> None:
        self._replace(tasks)

    async def migrate(self, account_id: str) -> int:
        """
        Insert cached tasks whose id is not yet in the account.

        The remote id set is fetched fresh on every call, so running it again
        inserts nothing. Failures are absorbed; the cache stays the safety net.
        """
        if not self._remote.configured:
            return 0
        local = self._remote.cached_tasks()
        if not local:
            return 0
        try:
            existing = await self._remote.fetch_ids(account_id)
            missing = [t for t in local if t.id not in existing]
            if missing:
                await self._remote.insert_many(missing, account_id)
        except RemoteStoreError as e:
            logger.warning("Migration failed account=%s: %s", account_id, e)
            return 0
        logger.info("Migration account=%s local=%d inserted=%d", account_id, len(local), len(missing))
        return len(missing)

    async def close(self) -> None:
        if self._unbind is not None:
            self._unbind()
            self._unbind = None
        for pending in self._pending:
            pending.finalize()
        self._pending = []
        await self.set_identity(None)
