# src/taskflow/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the sync core.

The coordinator and adapter depend on Protocols instead of concrete
implementations, so the SQLite cache, the PostgREST transport and the auth
service can be swapped for in-memory fakes in tests.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .identity import AuthResult, Identity

Row = dict[str, Any]
# Flat snake_case task row as stored remotely (see sync/remote_store.py).


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One row-level change pushed by the remote store (no field diff)."""

    type: str  # INSERT | UPDATE | DELETE
    table: str
    record_id: str | None = None


class KeyValueCache(Protocol):
    """Local durable key/value store. Implementations must never raise."""

    def get(self, key: str, default: Any = None) -> Any: ...
    def set(self, key: str, value: Any) -> None: ...
    def remove(self, key: str) -> None: ...
    def keys(self) -> list[str]: ...


class RemoteTable(Protocol):
    """
    Account-scoped remote task table. Every method raises on failure;
    absorbing errors is the adapter's job.
    """

    async def select_rows(self, account_id: str, *, columns: str = "*") -> list[Row]: ...
    async def insert_rows(self, rows: list[Row]) -> None: ...
    async def update_row(self, task_id: str, account_id: str, row: Row) -> None: ...
    async def delete_row(self, task_id: str, account_id: str) -> None: ...
    def changes(self, account_id: str) -> AsyncIterator[ChangeEvent]: ...
    async def aclose(self) -> None: ...


IdentityListener = Callable[["Identity | None"], Awaitable[None] | None]


class IdentityProvider(Protocol):
    def current_identity(self) -> Identity | None: ...
    def on_identity_change(self, callback: IdentityListener) -> Callable[[], None]: ...
    async def sign_up(self, email: str, password: str) -> AuthResult: ...
    async def sign_in(self, email: str, password: str) -> AuthResult: ...
    async def sign_out(self) -> AuthResult: ...
