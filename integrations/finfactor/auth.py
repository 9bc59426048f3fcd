"""Auth helpers for the Finfactor AA API.

The provider issues a bearer token from ``POST {prefix}/user-login`` with a
``{userId, password}`` body. Where the token sits in the response varies
between deployments, so :func:`extract_token` checks every known location.

The token lives in a :class:`TokenSession` owned by the provider instance (no
module-level cache). Concurrent callers that find the session empty share a
single in-flight login.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

import httpx

from common.secrets import get_secret
from aa_observability.metrics import aa_auth_logins_total

from . import API_PREFIX, BASE_URL, LOGIN_PATH
from .errors import AuthenticationError, TransportError

_LOG = logging.getLogger(__name__)

__all__ = [
    "TokenProvider",
    "TokenSession",
    "StaticTokenProvider",
    "LoginTokenProvider",
    "extract_token",
]

# checked in order
_TOKEN_PATHS: tuple[tuple[str, ...], ...] = (
    ("token",),
    ("data", "token"),
    ("data", "data", "token"),
    ("accessToken",),
    ("data", "accessToken"),
)


def extract_token(payload: Any) -> Optional[str]:
    """Return the bearer token from a login response body, or None."""
    if isinstance(payload, str):
        return payload.strip() or None
    for path in _TOKEN_PATHS:
        node: Any = payload
        for key in path:
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(key)
        if isinstance(node, str) and node:
            return node
    return None


@runtime_checkable
class TokenProvider(Protocol):
    """Return a valid bearer token string."""

    async def token(self) -> str:  # noqa: D401 – imperative form
        ...

    async def invalidate(self, stale: Optional[str] = None) -> None:
        """Drop the cached token (only if it still equals *stale*, when given)."""


class TokenSession:
    """Cached bearer token guarded by a single-flight login.

    ``invalidate(stale)`` only clears the cache while it still holds *stale*,
    so a burst of 401s caused by the same expired token triggers exactly one
    re-login: the first caller into :meth:`get_or_login` performs it and the
    others wait on the lock and reuse the result.
    """

    def __init__(self) -> None:
        self._token: Optional[str] = None
        self._lock = asyncio.Lock()
        self.logins = 0

    @property
    def token(self) -> Optional[str]:
        return self._token

    def invalidate(self, stale: Optional[str] = None) -> bool:
        if self._token is None:
            return False
        if stale is not None and stale != self._token:
            # someone already replaced it
            return False
        self._token = None
        return True

    async def get_or_login(self, login: Callable[[], Awaitable[str]]) -> str:
        if self._token:
            return self._token
        async with self._lock:
            if self._token:
                return self._token
            token = await login()
            self._token = token
            self.logins += 1
            return token


class StaticTokenProvider:
    """Fixed token from secrets (``FINFACTOR_STATIC_BEARER``); for local use and tests."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token or get_secret("FINFACTOR_STATIC_BEARER", "disabled")

    async def token(self) -> str:  # type: ignore[override]
        return self._token

    async def invalidate(self, stale: Optional[str] = None) -> None:  # type: ignore[override]
        return None


class LoginTokenProvider:
    """Obtains tokens via the provider's user-login endpoint."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_prefix: str = API_PREFIX,
        user_id: Optional[str] = None,
        password: Optional[str] = None,
        session: Optional[TokenSession] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._login_url = f"{(base_url or BASE_URL).rstrip('/')}{api_prefix}{LOGIN_PATH}"
        self._user_id = user_id or get_secret("FINFACTOR_USER_ID")
        self._password = password or get_secret("FINFACTOR_PASSWORD")
        self.session = session or TokenSession()
        self._transport = transport
        self._timeout = timeout

    async def token(self) -> str:  # type: ignore[override]
        return await self.session.get_or_login(self._login)

    async def invalidate(self, stale: Optional[str] = None) -> None:  # type: ignore[override]
        if self.session.invalidate(stale):
            _LOG.info("bearer token invalidated; next call re-authenticates")

    async def _login(self) -> str:
        if not self._user_id or not self._password:
            aa_auth_logins_total.labels("missing_credentials").inc()
            raise AuthenticationError(LOGIN_PATH, "FINFACTOR_USER_ID/FINFACTOR_PASSWORD not configured")

        body = {"userId": self._user_id, "password": self._password}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._login_url, json=body)
        except httpx.TimeoutException as exc:
            aa_auth_logins_total.labels("error").inc()
            raise TransportError(LOGIN_PATH, f"login timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            aa_auth_logins_total.labels("error").inc()
            raise TransportError(LOGIN_PATH, f"login request failed: {exc}") from exc

        if not resp.is_success:
            aa_auth_logins_total.labels("rejected").inc()
            raise AuthenticationError(
                LOGIN_PATH,
                f"login failed with HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text[:500],
            )

        try:
            payload: Any = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = resp.text
        token = extract_token(payload)
        if not token:
            aa_auth_logins_total.labels("no_token").inc()
            # keys only: the body may carry credentials echoes
            shape = sorted(payload) if isinstance(payload, dict) else type(payload).__name__
            raise AuthenticationError(LOGIN_PATH, f"no token found in login response (shape={shape})")

        aa_auth_logins_total.labels("ok").inc()
        _LOG.debug("issued AA bearer token for user=%s", self._user_id)
        return token
