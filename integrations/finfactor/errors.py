"""Typed errors raised by the AA client."""
from __future__ import annotations

from typing import Optional

__all__ = ["AAClientError", "TransportError", "AuthExpired", "AuthenticationError"]


class AAClientError(Exception):
    """Base class for every AA client failure."""

    def __init__(self, endpoint: str, message: str):
        self.endpoint = endpoint
        super().__init__(f"{endpoint}: {message}")


class TransportError(AAClientError):
    """Network failure, timeout, or a non-2xx status that is not an auth expiry."""

    def __init__(
        self,
        endpoint: str,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(endpoint, message)


class AuthExpired(AAClientError):
    """The provider rejected the bearer token (401/403).

    The cached token has already been invalidated when this is raised; the
    caller decides whether to retry.
    """

    def __init__(self, endpoint: str, status_code: int):
        self.status_code = status_code
        super().__init__(endpoint, f"authentication expired (HTTP {status_code})")


class AuthenticationError(TransportError):
    """Login itself failed or returned no recognisable token."""
