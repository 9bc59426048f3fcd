"""HTTP client for the Finfactor Account Aggregator API.

Uses `httpx.AsyncClient` with:
* Base URL and API prefix from env vars (see `integrations.finfactor`)
* Bearer-token injection via a `TokenProvider` whose session is owned by the
  provider instance, never by this module
* Prometheus counter + histogram (labels: endpoint, status)

There is no retry loop here. A 401/403 invalidates the cached token and
raises :class:`AuthExpired`; whether to retry is the caller's decision.

Network access is *never* used in CI; tests pass a `MockTransport`.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional

import httpx

from aa_observability.metrics import aa_http_latency_seconds, aa_http_requests_total

from . import API_PREFIX, BASE_URL
from .auth import LoginTokenProvider, TokenProvider
from .errors import AuthExpired, TransportError

__all__ = ["AAClient", "decode_body"]

_LOG = logging.getLogger(__name__)


def decode_body(endpoint: str, text: str) -> Any:
    """Decode a 2xx response body.

    Bodies that are not JSON are wrapped as
    ``{"success": True, "message": text, "data": text}`` so callers always
    receive a JSON value.
    """
    if not text or not text.strip():
        raise TransportError(endpoint, "empty response body")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        _LOG.debug("non-JSON 2xx body from %s wrapped as message", endpoint)
        return {"success": True, "message": text, "data": text}


class AAClient:
    """Authenticated POST calls against the AA API.

    One instance is shared by every concurrent plan in a batch; the underlying
    ``httpx.AsyncClient`` and token session are safe for concurrent use.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_prefix: str = API_PREFIX,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        base_url = (base_url or BASE_URL).rstrip("/")
        self.token_provider = token_provider or LoginTokenProvider(
            base_url=base_url, api_prefix=api_prefix, transport=transport
        )
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=f"{base_url}{api_prefix}",
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "AAClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def authenticate(self) -> str:
        """Return a bearer token, logging in first if the session is empty."""
        return await self.token_provider.token()

    async def call(self, endpoint: str, body: Dict[str, Any]) -> Any:
        """POST *body* to *endpoint* (relative to the API prefix).

        Returns the decoded JSON value. Raises :class:`AuthExpired` on 401/403
        after invalidating the token that was used, and
        :class:`TransportError` on timeouts, network errors, non-2xx statuses
        and empty bodies.
        """
        if "uniqueIdentifier" not in body:
            raise ValueError("request body must carry uniqueIdentifier")

        token = await self.authenticate()
        headers = {"Authorization": f"Bearer {token}"}

        start = time.perf_counter()
        try:
            resp = await self._client.post(endpoint, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            aa_http_requests_total.labels(endpoint, "timeout").inc()
            raise TransportError(endpoint, f"timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            aa_http_requests_total.labels(endpoint, "error").inc()
            raise TransportError(endpoint, f"request failed: {exc}") from exc
        finally:
            aa_http_latency_seconds.labels(endpoint).observe(time.perf_counter() - start)

        aa_http_requests_total.labels(endpoint, str(resp.status_code)).inc()
        _LOG.debug("POST %s -> %s", endpoint, resp.status_code, extra={"endpoint": endpoint})

        if resp.status_code in (401, 403):
            await self.token_provider.invalidate(token)
            raise AuthExpired(endpoint, resp.status_code)
        if not resp.is_success:
            raise TransportError(
                endpoint,
                f"HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text[:2000],
            )
        return decode_body(endpoint, resp.text)
