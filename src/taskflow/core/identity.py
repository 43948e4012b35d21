# src/taskflow/core/identity.py

"""
Identity service (Supabase GoTrue over httpx).

Produces the authenticated identity the sync core reacts to. The session is
kept in the local cache under "session" so a restart can reuse it without a
new sign-in; restore() refreshes the token when the server is reachable.

Access tokens expire. While signed in, a timer refreshes the session
`refresh_margin_seconds` before `expires_at`; a rejected refresh signs out,
an unreachable server is retried later.

Not configured -> every auth call returns "Remote sync is not configured" and
the identity stays absent (local-only mode).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from .ports import IdentityListener, KeyValueCache

logger = logging.getLogger(__name__)

SESSION_KEY = "session"
NOT_CONFIGURED = "Remote sync is not configured"

DEFAULT_REFRESH_MARGIN_SECONDS = 60.0
REFRESH_RETRY_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class Identity:
    account_id: str
    email: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    # Unix time the access token expires at (None: unknown, never refreshed on a timer).
    expires_at: float | None = None


@dataclass(frozen=True, slots=True)
class AuthResult:
    identity: Identity | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _expires_at(data: dict[str, Any]) -> float | None:
    raw = data.get("expires_at")
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    raw = data.get("expires_in")
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return time.time() + float(raw)
    return None


def _identity_from_session(data: Any) -> Identity | None:
    if not isinstance(data, dict):
        return None
    user = data.get("user") or {}
    account_id = user.get("id") if isinstance(user, dict) else None
    access_token = data.get("access_token")
    if not account_id or not access_token:
        return None
    return Identity(
        account_id=str(account_id),
        email=user.get("email"),
        access_token=str(access_token),
        refresh_token=data.get("refresh_token"),
        expires_at=_expires_at(data),
    )


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"


class IdentityService:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        cache: KeyValueCache | None = None,
        timeout_seconds: float = 10.0,
        refresh_margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._api_key = api_key or ""
        self._cache = cache
        self._refresh_margin_s = max(0.0, float(refresh_margin_seconds))
        self._identity: Identity | None = None
        self._listeners: list[IdentityListener] = []
        self._refresh_timer: asyncio.TimerHandle | None = None
        self._refresh_task: asyncio.Task[Identity | None] | None = None
        self._client: httpx.AsyncClient | None = None
        self._owns_client = False
        if self.configured:
            self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
            self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self._base_url and self._api_key)

    @property
    def refresh_scheduled(self) -> bool:
        return self._refresh_timer is not None

    def current_identity(self) -> Identity | None:
        return self._identity

    def access_token(self) -> str | None:
        return self._identity.access_token if self._identity else None

    def on_identity_change(self, callback: IdentityListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    async def _set_identity(self, identity: Identity | None) -> None:
        previous = self._identity
        self._identity = identity

        if self._cache is not None:
            if identity is None:
                self._cache.remove(SESSION_KEY)
            else:
                self._cache.set(SESSION_KEY, asdict(identity))

        self._schedule_refresh()

        if (previous and previous.account_id) == (identity and identity.account_id):
            return
        logger.info("Identity changed: %s -> %s", previous and previous.account_id, identity and identity.account_id)
        for listener in list(self._listeners):
            try:
                result = listener(identity)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Identity listener failed")

    # ---- token refresh ----

    def _cancel_refresh(self) -> None:
        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
            self._refresh_timer = None

    def _schedule_refresh(self, delay: float | None = None) -> None:
        """(Re)arm the refresh timer for the current identity. Needs a running loop."""
        self._cancel_refresh()
        identity = self._identity
        if identity is None or not identity.refresh_token or not self.configured:
            return
        if delay is None:
            if identity.expires_at is None:
                return
            delay = identity.expires_at - time.time() - self._refresh_margin_s
        delay = max(0.0, delay)
        self._refresh_timer = asyncio.get_running_loop().call_later(delay, self._on_refresh_due)
        logger.debug("Session refresh scheduled in %.0fs", delay)

    def _on_refresh_due(self) -> None:
        self._refresh_timer = None
        self._refresh_task = asyncio.get_running_loop().create_task(self.refresh())

    async def _exchange_refresh_token(self, refresh_token: str) -> tuple[Identity | None, bool]:
        """
        POST token?grant_type=refresh_token.

        Returns (identity, rejected):
        - (Identity, False): new session
        - (None, True): server refused the refresh token
        - (None, False): unreachable or unusable reply
        """
        try:
            resp = await self._post(
                "token?grant_type=refresh_token",
                json_body={"refresh_token": refresh_token},
            )
        except httpx.HTTPError as e:
            logger.info("Session refresh unreachable: %r", e)
            return None, False
        if resp.is_error:
            logger.info("Session refresh rejected (%s)", _error_message(resp))
            return None, True
        try:
            return _identity_from_session(resp.json()), False
        except ValueError:
            return None, False

    async def refresh(self) -> Identity | None:
        """Refresh the current session now. Rejected -> signed out."""
        current = self._identity
        if current is None or not current.refresh_token or not self.configured:
            return current

        refreshed, rejected = await self._exchange_refresh_token(current.refresh_token)
        if self._identity is not current:
            # signed out / in again while the request was in flight
            return self._identity
        if rejected:
            await self._set_identity(None)
            return None
        if refreshed is None:
            self._schedule_refresh(REFRESH_RETRY_SECONDS)
            return current
        await self._set_identity(refreshed)
        return refreshed

    # ---- auth calls ----

    async def _post(self, path: str, *, json_body: Any = None, bearer: str | None = None) -> httpx.Response:
        assert self._client is not None
        headers = {"apikey": self._api_key, "Content-Type": "application/json"}
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return await self._client.post(f"{self._base_url}/auth/v1/{path}", json=json_body, headers=headers)

    async def _session_call(self, path: str, body: dict[str, Any]) -> AuthResult:
        if not self.configured:
            return AuthResult(error=NOT_CONFIGURED)
        try:
            resp = await self._post(path, json_body=body)
        except httpx.HTTPError as e:
            logger.warning("Auth request %s failed: %r", path.split("?")[0], e)
            return AuthResult(error="Could not reach the sign-in server")
        if resp.is_error:
            return AuthResult(error=_error_message(resp))
        try:
            data = resp.json()
        except ValueError:
            return AuthResult(error="Sign-in server returned an invalid response")

        identity = _identity_from_session(data)
        if identity is None:
            # sign-up with e-mail confirmation returns the user without a session
            return AuthResult()
        await self._set_identity(identity)
        return AuthResult(identity=identity)

    async def sign_up(self, email: str, password: str) -> AuthResult:
        return await self._session_call("signup", {"email": email, "password": password})

    async def sign_in(self, email: str, password: str) -> AuthResult:
        return await self._session_call("token?grant_type=password", {"email": email, "password": password})

    async def sign_out(self) -> AuthResult:
        if not self.configured:
            return AuthResult(error=NOT_CONFIGURED)
        token = self.access_token()
        if token:
            try:
                resp = await self._post("logout", bearer=token)
                if resp.is_error:
                    logger.info("Server-side logout returned HTTP %s", resp.status_code)
            except httpx.HTTPError as e:
                logger.info("Server-side logout failed: %r", e)
        # Local sign-out always succeeds.
        await self._set_identity(None)
        return AuthResult()

    async def restore(self) -> Identity | None:
        """
        Reload the persisted session (best-effort).

        Refresh rejected -> session dropped.
        Server unreachable -> keep the cached identity (offline start) and
        retry the refresh later.
        """
        if not self.configured or self._cache is None:
            return None
        raw = self._cache.get(SESSION_KEY)
        if not isinstance(raw, dict) or not raw.get("account_id"):
            return None
        try:
            cached = Identity(**raw)
        except TypeError:
            logger.warning("Discarding malformed cached session")
            self._cache.remove(SESSION_KEY)
            return None

        unreachable = False
        if cached.refresh_token:
            refreshed, rejected = await self._exchange_refresh_token(cached.refresh_token)
            if rejected:
                logger.info("Cached session no longer valid; signing out")
                await self._set_identity(None)
                return None
            if refreshed is not None:
                cached = refreshed
            else:
                unreachable = True

        await self._set_identity(cached)
        if unreachable:
            self._schedule_refresh(REFRESH_RETRY_SECONDS)
        return cached

    async def aclose(self) -> None:
        self._cancel_refresh()
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
