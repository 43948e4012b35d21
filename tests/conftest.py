# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskflow.core.identity import IdentityService
from taskflow.core.state import AppState
from taskflow.storage.local_cache import LocalCache
from taskflow.storage.preferences import Preferences
from taskflow.sync.coordinator import SyncCoordinator
from taskflow.sync.remote_store import RemoteStoreAdapter

from .fakes import FakeClock, FakeRemoteTable


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI commands.

    A SimpleNamespace instead of the real config keeps tests isolated from the
    environment / .env.
    """
    return SimpleNamespace(
        app_name="taskflow-test",
        data_dir=tmp_path,
        cache_db_path=tmp_path / "cache.sqlite3",
        cache_prefix="taskflow_",
        remote_configured=False,
        undo_window_seconds=0.05,
        list_limit=50,
    )


@pytest.fixture()
def cache(settings: SimpleNamespace) -> LocalCache:
    return LocalCache(settings.cache_db_path, prefix=settings.cache_prefix)


@pytest.fixture()
def table() -> FakeRemoteTable:
    return FakeRemoteTable()


@pytest.fixture()
def remote(table: FakeRemoteTable, cache: LocalCache) -> RemoteStoreAdapter:
    return RemoteStoreAdapter(table, cache)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def coordinator(remote: RemoteStoreAdapter, settings: SimpleNamespace, clock: FakeClock) -> SyncCoordinator:
    return SyncCoordinator(remote, undo_window_seconds=settings.undo_window_seconds, clock=clock)


@pytest.fixture()
def state(settings: SimpleNamespace, cache: LocalCache) -> AppState:
    """
    AppState in local-only mode (no remote table, identity not configured).

    The real SQLite cache is kept: its behaviour is part of what the command
    tests exercise.
    """
    remote = RemoteStoreAdapter(None, cache)
    return AppState(
        settings=settings,
        cache=cache,
        preferences=Preferences(cache),
        identity=IdentityService(cache=cache),
        remote=remote,
        coordinator=SyncCoordinator(remote, undo_window_seconds=settings.undo_window_seconds),
    )
