# src/taskflow/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires cache, identity, remote transport and coordinator into AppState.
"""

from __future__ import annotations

import contextlib
import logging

from ..config import get_settings
from ..core.identity import IdentityService
from ..core.ports import RemoteTable
from ..core.state import AppState
from ..storage.local_cache import LocalCache
from ..storage.preferences import Preferences
from ..sync.coordinator import SyncCoordinator
from ..sync.postgrest import PostgrestTable
from ..sync.remote_store import RemoteStoreAdapter

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    with contextlib.suppress(Exception):
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        settings.cache_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Must run inside an event loop (the HTTP clients bind to it lazily, the
    coordinator arms undo timers on it). If settings is None, falls back to
    get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    cache = LocalCache(settings.cache_db_path, prefix=settings.cache_prefix)

    remote_configured = bool(getattr(settings, "remote_configured", False))
    identity = IdentityService(
        base_url=settings.remote_url if remote_configured else None,
        api_key=settings.remote_anon_key if remote_configured else None,
        cache=cache,
        timeout_seconds=settings.request_timeout_seconds,
    )

    table: RemoteTable | None = None
    if remote_configured:
        table = PostgrestTable(
            base_url=settings.remote_url,
            api_key=settings.remote_anon_key,
            table=settings.remote_table,
            token_source=identity.access_token,
            timeout_seconds=settings.request_timeout_seconds,
            heartbeat_seconds=settings.realtime_heartbeat_seconds,
        )
    else:
        logger.info("Remote store not configured; running in local-only mode.")

    remote = RemoteStoreAdapter(table, cache)
    coordinator = SyncCoordinator(remote, undo_window_seconds=settings.undo_window_seconds)

    return AppState(
        settings=settings,
        cache=cache,
        preferences=Preferences(cache),
        identity=identity,
        remote=remote,
        coordinator=coordinator,
    )


async def start_sync(state: AppState) -> None:
    """Follow identity transitions and pick up a persisted session."""
    state.coordinator.bind(state.identity)
    try:
        await state.identity.restore()
    except Exception:
        logger.exception("Session restore failed.")


async def shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.coordinator.close()
    except Exception:
        logger.exception("Coordinator close failed.")

    try:
        await state.remote.aclose()
    except Exception:
        logger.debug("Remote transport close failed.", exc_info=True)

    try:
        await state.identity.aclose()
    except Exception:
        logger.debug("Identity client close failed.", exc_info=True)
