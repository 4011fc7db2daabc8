"""Bearer-credential acquisition with a TTL-bounded, single-flight cache."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import httpx

from ..errors import CredentialError

logger = logging.getLogger(__name__)

IAM_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"
DEFAULT_TOKEN_TTL_SECONDS = 3600.0


@dataclass(slots=True, frozen=True)
class IssuedToken:
    access_token: str
    expires_in: float


class TokenIssuer(Protocol):
    async def issue(self, api_key: str) -> IssuedToken: ...


class IAMTokenIssuer:
    """Exchanges an API key for an IAM access token."""

    def __init__(
        self,
        iam_url: str,
        *,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._iam_url = iam_url
        self._timeout = timeout_seconds
        self._transport = transport

    async def issue(self, api_key: str) -> IssuedToken:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as session:
            try:
                response = await session.post(
                    self._iam_url,
                    data={"grant_type": IAM_GRANT_TYPE, "apikey": api_key},
                    headers={"Accept": "application/json"},
                )
            except httpx.HTTPError as exc:
                raise CredentialError(f"IAM token request failed: {exc}") from exc

        if response.status_code >= 400:
            raise CredentialError(
                f"IAM token error: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise CredentialError("IAM token response was not valid JSON") from exc

        token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise CredentialError("IAM token response did not include an access_token")
        try:
            ttl = float(data.get("expires_in") or DEFAULT_TOKEN_TTL_SECONDS)
        except (TypeError, ValueError):
            ttl = DEFAULT_TOKEN_TTL_SECONDS
        return IssuedToken(access_token=token, expires_in=ttl)


@dataclass(slots=True)
class _CachedToken:
    token: str
    expires_at: float


class CredentialCache:
    """Memoises a bearer token until it is close to expiry.

    Callers that find the cache stale share one in-flight refresh, so a burst
    of requests against an expired cache issues exactly one token request.
    The pending refresh is a ``concurrent.futures.Future`` guarded by a
    thread lock, so requests running on different threads and event loops
    (``generate_sync`` from worker threads) wait on the same refresh. A failed
    refresh propagates to every waiter and leaves the cache empty for the
    next caller to retry.
    """

    def __init__(
        self,
        issuer: TokenIssuer,
        api_key: str,
        *,
        refresh_margin_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._issuer = issuer
        self._api_key = api_key
        self._refresh_margin = refresh_margin_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: _CachedToken | None = None
        self._pending: concurrent.futures.Future[str] | None = None
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def expires_at(self) -> float | None:
        cached = self._cached
        return cached.expires_at if cached is not None else None

    def _fresh_token(self) -> str | None:
        cached = self._cached
        if cached is not None and self._clock() < cached.expires_at - self._refresh_margin:
            return cached.token
        return None

    def is_fresh(self) -> bool:
        return self._fresh_token() is not None

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    async def get_token(self) -> str:
        with self._lock:
            token = self._fresh_token()
            if token is not None:
                return token
            pending = self._pending
            owner = pending is None
            if pending is None:
                pending = concurrent.futures.Future()
                self._pending = pending

        if owner:
            self._refresh_task = asyncio.ensure_future(self._refresh(pending))
        # shield keeps a cancelled waiter from cancelling the shared future
        return await asyncio.shield(asyncio.wrap_future(pending))

    async def _refresh(self, pending: concurrent.futures.Future[str]) -> None:
        logger.debug("Refreshing bearer credential")
        try:
            issued = await self._issuer.issue(self._api_key)
        except asyncio.CancelledError:
            self._settle(pending, error=CredentialError("Credential refresh was cancelled"))
            raise
        except Exception as exc:
            self._settle(pending, error=exc)
            return

        cached = _CachedToken(
            token=issued.access_token,
            expires_at=self._clock() + float(issued.expires_in),
        )
        self._settle(pending, cached=cached)
        logger.info("Bearer credential refreshed (ttl=%.0fs)", issued.expires_in)

    def _settle(
        self,
        pending: concurrent.futures.Future[str],
        *,
        cached: _CachedToken | None = None,
        error: BaseException | None = None,
    ) -> None:
        with self._lock:
            if cached is not None:
                self._cached = cached
            if self._pending is pending:
                self._pending = None
        if pending.done():
            return
        if error is not None:
            pending.set_exception(error)
        else:
            assert cached is not None
            pending.set_result(cached.token)


_shared_lock = threading.Lock()
_shared_caches: dict[tuple[str, str], CredentialCache] = {}


def shared_credential_cache(
    iam_url: str,
    api_key: str,
    *,
    issuer_factory: Callable[[str], TokenIssuer] = IAMTokenIssuer,
) -> CredentialCache:
    """Return the process-wide cache for ``(iam_url, api_key)``, creating it lazily."""

    key = (iam_url, api_key)
    with _shared_lock:
        cache = _shared_caches.get(key)
        if cache is None:
            cache = CredentialCache(issuer_factory(iam_url), api_key)
            _shared_caches[key] = cache
        return cache


def reset_shared_credential_caches() -> None:
    with _shared_lock:
        _shared_caches.clear()


__all__ = [
    "CredentialCache",
    "IAMTokenIssuer",
    "IssuedToken",
    "TokenIssuer",
    "reset_shared_credential_caches",
    "shared_credential_cache",
]
