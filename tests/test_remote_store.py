# tests/test_remote_store.py

from __future__ import annotations

import asyncio
from datetime import date, timedelta

import pytest

from taskflow.storage.local_cache import LocalCache
from taskflow.sync.remote_store import (
    TASKS_KEY,
    RemoteStoreAdapter,
    RemoteStoreError,
    Subscription,
    from_row,
    to_row,
)
from taskflow.tasks.task_models import Category, Priority, Recurrence

from .fakes import BASE_TS, FakeRemoteTable, make_task, settle

ACCOUNT = "user-1"


def test_row_mapping_round_trip() -> None:
    task = make_task(
        "Pay rent",
        due_date=date(2025, 3, 31),
        priority=Priority.HIGH,
        category=Category.OTHER,
        recurrence=Recurrence.MONTHLY,
        completed=True,
        description="landlord",
    )
    row = to_row(task, ACCOUNT)

    assert row["user_id"] == ACCOUNT
    assert row["due_date"] == "2025-03-31"
    assert row["completed_at"] == task.completed_at.isoformat()
    assert row["created_at"] == task.created_at.isoformat()
    assert set(row) == {
        "id",
        "user_id",
        "title",
        "description",
        "due_date",
        "priority",
        "category",
        "recurrence",
        "completed",
        "completed_at",
        "created_at",
    }
    assert from_row(row) == task


def test_from_row_tolerates_null_columns() -> None:
    task = from_row(
        {
            "id": "a",
            "title": "t",
            "description": None,
            "due_date": None,
            "priority": None,
            "category": None,
            "recurrence": None,
            "completed": False,
            "completed_at": None,
            "created_at": "2025-03-01T09:00:00+00:00",
        }
    )
    assert task.description == ""
    assert task.priority is Priority.MEDIUM
    assert task.recurrence is Recurrence.NONE


@pytest.mark.asyncio
async def test_fetch_all_overwrites_cache_newest_first(remote: RemoteStoreAdapter, table: FakeRemoteTable) -> None:
    old = make_task("old", created_at=BASE_TS)
    new = make_task("new", created_at=BASE_TS + timedelta(hours=1))
    foreign = make_task("other account")
    table.rows = {
        old.id: to_row(old, ACCOUNT),
        new.id: to_row(new, ACCOUNT),
        foreign.id: to_row(foreign, "user-2"),
    }
    remote.write_cache([make_task("stale")])

    tasks = await remote.fetch_all(ACCOUNT)

    assert [t.title for t in tasks] == ["new", "old"]
    assert [t.title for t in remote.cached_tasks()] == ["new", "old"]


@pytest.mark.asyncio
async def test_fetch_all_failure_returns_cached_list(remote: RemoteStoreAdapter, table: FakeRemoteTable, cache: LocalCache) -> None:
    cached = [make_task("a"), make_task("b")]
    remote.write_cache(cached)
    before = cache.get(TASKS_KEY)
    table.fail_reads = True

    tasks = await remote.fetch_all(ACCOUNT)

    assert tasks == cached
    assert cache.get(TASKS_KEY) == before


@pytest.mark.asyncio
async def test_fetch_all_skips_invalid_rows(remote: RemoteStoreAdapter, table: FakeRemoteTable) -> None:
    good = make_task("good")
    bad = to_row(make_task("bad"), ACCOUNT)
    bad["priority"] = "urgent"
    table.rows = {good.id: to_row(good, ACCOUNT), bad["id"]: bad}

    tasks = await remote.fetch_all(ACCOUNT)

    assert [t.title for t in tasks] == ["good"]


@pytest.mark.asyncio
async def test_local_only_mode(cache: LocalCache) -> None:
    remote = RemoteStoreAdapter(None, cache)
    task = make_task("local")
    remote.write_cache([task])

    assert remote.configured is False
    assert await remote.fetch_all(ACCOUNT) == [task]
    await remote.insert(task, ACCOUNT)
    await remote.update(task, ACCOUNT)
    await remote.delete(task.id, ACCOUNT)
    with pytest.raises(RemoteStoreError):
        await remote.fetch_ids(ACCOUNT)

    sub = remote.subscribe(ACCOUNT, lambda tasks: None)
    assert sub.active is False
    sub()
    sub()


@pytest.mark.asyncio
async def test_writes_without_account_are_no_ops(remote: RemoteStoreAdapter, table: FakeRemoteTable) -> None:
    task = make_task("x")
    await remote.insert(task, None)
    await remote.update(task, None)
    await remote.delete(task.id, None)
    assert table.insert_calls == [] and table.update_calls == [] and table.delete_calls == []


@pytest.mark.asyncio
async def test_write_failures_are_swallowed(remote: RemoteStoreAdapter, table: FakeRemoteTable) -> None:
    task = make_task("x")
    remote.write_cache([task])
    table.fail_writes = True

    await remote.insert(task, ACCOUNT)
    await remote.update(task, ACCOUNT)
    await remote.delete(task.id, ACCOUNT)

    assert remote.cached_tasks() == [task]
    assert table.rows == {}


@pytest.mark.asyncio
async def test_insert_update_delete_reach_table(remote: RemoteStoreAdapter, table: FakeRemoteTable) -> None:
    task = make_task("x")
    await remote.insert(task, ACCOUNT)
    assert table.rows[task.id]["title"] == "x"

    await remote.update(make_task("renamed", id=task.id), ACCOUNT)
    assert table.rows[task.id]["title"] == "renamed"

    await remote.delete(task.id, ACCOUNT)
    assert table.rows == {}


@pytest.mark.asyncio
async def test_fetch_ids_and_insert_many_raise(remote: RemoteStoreAdapter, table: FakeRemoteTable) -> None:
    task = make_task("x")
    await remote.insert_many([task], ACCOUNT)
    assert await remote.fetch_ids(ACCOUNT) == {task.id}

    with pytest.raises(RemoteStoreError):
        await remote.insert_many([task], ACCOUNT)

    table.fail_reads = True
    with pytest.raises(RemoteStoreError):
        await remote.fetch_ids(ACCOUNT)


@pytest.mark.asyncio
async def test_subscription_refetches_on_every_change(remote: RemoteStoreAdapter, table: FakeRemoteTable) -> None:
    received: list[list[str]] = []
    sub = remote.subscribe(ACCOUNT, lambda tasks: received.append([t.title for t in tasks]))
    await settle()
    assert sub.active is True
    assert table.open_feeds == 1

    task = make_task("from another device")
    table.rows[task.id] = to_row(task, ACCOUNT)
    table.push("INSERT", task.id)
    await settle()

    assert received == [["from another device"]]
    assert [t.title for t in remote.cached_tasks()] == ["from another device"]

    sub()
    await settle()
    assert sub.active is False
    assert table.open_feeds == 0

    table.push("DELETE", task.id)
    await settle()
    assert len(received) == 1

    sub()


@pytest.mark.asyncio
async def test_subscription_accepts_async_callback(remote: RemoteStoreAdapter, table: FakeRemoteTable) -> None:
    calls = []

    async def on_change(tasks) -> None:
        calls.append(len(tasks))

    sub = remote.subscribe(ACCOUNT, on_change)
    await settle()
    table.push()
    await settle()
    sub()

    assert calls == [0]


def test_empty_subscription_is_idempotent() -> None:
    sub = Subscription()
    assert sub.active is False
    sub()
    sub()


@pytest.mark.asyncio
async def test_fetch_remote_signals_failure_without_touching_cache(remote: RemoteStoreAdapter, table: FakeRemoteTable) -> None:
    remote.write_cache([make_task("cached")])

    assert await remote.fetch_remote(None) is None
    table.fail_reads = True
    assert await remote.fetch_remote(ACCOUNT) is None
    assert [t.title for t in remote.cached_tasks()] == ["cached"]

    table.fail_reads = False
    assert await remote.fetch_remote(ACCOUNT) == []
    assert remote.cached_tasks() == []


@pytest.mark.asyncio
async def test_subscription_reopens_dropped_feed_and_resyncs(cache: LocalCache, table: FakeRemoteTable) -> None:
    remote = RemoteStoreAdapter(table, cache, reconnect_min_seconds=0.01, reconnect_max_seconds=0.02)
    missed = make_task("changed while disconnected")
    table.rows[missed.id] = to_row(missed, ACCOUNT)
    table.feed_failures = 2
    received: list[list[str]] = []

    sub = remote.subscribe(ACCOUNT, lambda tasks: received.append([t.title for t in tasks]))
    await asyncio.sleep(0.1)

    assert sub.active is True
    assert table.feeds_opened == 3
    assert table.open_feeds == 1
    # One snapshot after each reopen.
    assert received == [["changed while disconnected"]] * 2

    table.push()
    await settle()
    assert len(received) == 3

    sub()
    await settle()
    assert table.open_feeds == 0
