# src/taskflow/sync/postgrest.py

"""
PostgREST / Supabase transport for the remote task table.

REST:     {base_url}/rest/v1/{table}   (httpx.AsyncClient)
Realtime: {base_url}/realtime/v1/websocket  (Phoenix v1 JSON over websockets)

Every request carries the project api key plus a bearer token: the signed-in
user's access token when there is one (row-level security), else the api key.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx
import websockets

from ..core.ports import ChangeEvent, Row
from .remote_store import RemoteStoreError

logger = logging.getLogger(__name__)

CHANNEL_TOPIC = "realtime:tasks-realtime"
REALTIME_VSN = "1.0.0"
HEARTBEAT_TASK_NAME = "taskflow-realtime-heartbeat"

TokenSource = Callable[[], str | None]


def realtime_url(base_url: str, api_key: str) -> str:
    parts = urlsplit(base_url.rstrip("/"))
    scheme = "wss" if parts.scheme == "https" else "ws"
    query = urlencode({"apikey": api_key, "vsn": REALTIME_VSN})
    return urlunsplit((scheme, parts.netloc, parts.path + "/realtime/v1/websocket", query, ""))


def join_message(*, table: str, account_id: str, access_token: str | None, ref: str, schema: str = "public") -> dict[str, Any]:
    payload: dict[str, Any] = {
        "config": {
            "broadcast": {"ack": False, "self": False},
            "presence": {"key": ""},
            "postgres_changes": [
                {
                    "event": "*",
                    "schema": schema,
                    "table": table,
                    "filter": f"user_id=eq.{account_id}",
                }
            ],
            "private": False,
        }
    }
    if access_token:
        payload["access_token"] = access_token
    return {"topic": CHANNEL_TOPIC, "event": "phx_join", "payload": payload, "ref": ref, "join_ref": ref}


def heartbeat_message(ref: str) -> dict[str, Any]:
    return {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": ref}


def parse_change(message: dict[str, Any]) -> ChangeEvent | None:
    """
    Turn a realtime frame into a ChangeEvent.

    Returns None for frames that are not row changes (replies, presence, system).
    Raises RemoteStoreError when the channel join was rejected.
    """
    event = message.get("event")
    payload = message.get("payload") or {}

    if event == "phx_reply" and message.get("topic") == CHANNEL_TOPIC:
        if payload.get("status") == "error":
            raise RemoteStoreError(f"Realtime join rejected: {payload.get('response')!r}")
        return None

    if event == "phx_error":
        raise RemoteStoreError("Realtime channel error")

    if event != "postgres_changes":
        return None

    data = payload.get("data") or {}
    record = data.get("record") or data.get("old_record") or {}
    record_id = record.get("id")
    return ChangeEvent(
        type=str(data.get("type") or "UNKNOWN").upper(),
        table=str(data.get("table") or ""),
        record_id=str(record_id) if record_id is not None else None,
    )


class PostgrestTable:
    """RemoteTable implementation over PostgREST + Supabase Realtime."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        table: str = "tasks",
        token_source: TokenSource | None = None,
        timeout_seconds: float = 10.0,
        heartbeat_seconds: float = 25.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url.strip() or not api_key.strip():
            raise ValueError("PostgrestTable needs base_url and api_key")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._table = table
        self._token_source = token_source
        self._heartbeat_s = max(1.0, float(heartbeat_seconds))
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    @property
    def rest_url(self) -> str:
        return f"{self._base_url}/rest/v1/{self._table}"

    def _token(self) -> str | None:
        if self._token_source is None:
            return None
        try:
            return self._token_source()
        except Exception:
            logger.debug("token_source failed", exc_info=True)
            return None

    def _headers(self, *, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._token() or self._api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(self, method: str, *, params: dict[str, str], json_body: Any = None, prefer: str | None = None) -> httpx.Response:
        try:
            resp = await self._client.request(
                method,
                self.rest_url,
                params=params,
                json=json_body,
                headers=self._headers(prefer=prefer),
            )
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as e:
            raise RemoteStoreError(
                f"{method} {self._table} -> HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"{method} {self._table} failed: {e!r}") from e

    # ---- RemoteTable ----

    async def select_rows(self, account_id: str, *, columns: str = "*") -> list[Row]:
        resp = await self._request(
            "GET",
            params={
                "select": columns,
                "user_id": f"eq.{account_id}",
                "order": "created_at.desc",
            },
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteStoreError("select returned invalid JSON") from e
        if not isinstance(data, list):
            raise RemoteStoreError(f"select returned {type(data).__name__}, expected list")
        return [r for r in data if isinstance(r, dict)]

    async def insert_rows(self, rows: list[Row]) -> None:
        if not rows:
            return
        await self._request("POST", params={}, json_body=rows, prefer="return=minimal")

    async def update_row(self, task_id: str, account_id: str, row: Row) -> None:
        await self._request(
            "PATCH",
            params={"id": f"eq.{task_id}", "user_id": f"eq.{account_id}"},
            json_body=row,
            prefer="return=minimal",
        )

    async def delete_row(self, task_id: str, account_id: str) -> None:
        await self._request(
            "DELETE",
            params={"id": f"eq.{task_id}", "user_id": f"eq.{account_id}"},
            prefer="return=minimal",
        )

    async def changes(self, account_id: str) -> AsyncIterator[ChangeEvent]:
        """
        Standing change feed for the account's rows.

        Ends (raises) when the socket closes or the join is rejected; cancel the
        consuming task to tear it down.
        """
        refs = itertools.count(1)
        url = realtime_url(self._base_url, self._api_key)

        async with websockets.connect(url) as ws:
            join = join_message(
                table=self._table,
                account_id=account_id,
                access_token=self._token(),
                ref=str(next(refs)),
            )
            await ws.send(json.dumps(join))
            logger.debug("Realtime join sent table=%s account=%s", self._table, account_id)

            async def _heartbeat() -> None:
                while True:
                    await asyncio.sleep(self._heartbeat_s)
                    await ws.send(json.dumps(heartbeat_message(str(next(refs)))))

            beat = asyncio.create_task(_heartbeat(), name=HEARTBEAT_TASK_NAME)
            try:
                async for raw in ws:
                    try:
                        message = json.loads(raw)
                    except ValueError:
                        logger.debug("Ignoring non-JSON realtime frame")
                        continue
                    if not isinstance(message, dict):
                        continue
                    event = parse_change(message)
                    if event is not None:
                        yield event
            finally:
                beat.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await beat

        raise RemoteStoreError("Realtime connection closed")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
