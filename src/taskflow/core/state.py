# src/taskflow/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..storage.local_cache import LocalCache
from ..storage.preferences import Preferences
from ..sync.coordinator import PendingDeletion, SyncCoordinator
from ..sync.remote_store import RemoteStoreAdapter
from .identity import IdentityService


@dataclass
class AppState:
    # Settings (or a test namespace with the same attributes).
    settings: Any

    cache: LocalCache
    preferences: Preferences
    identity: IdentityService
    remote: RemoteStoreAdapter
    coordinator: SyncCoordinator

    # Most recent deletion, for /undo.
    last_deletion: PendingDeletion | None = None
