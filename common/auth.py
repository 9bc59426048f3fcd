from typing import Any, Dict

import jwt
from fastapi import Header, HTTPException, status

from .secrets import get_secret


def _forbidden() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def require_token(authorization: str | None = Header(None)) -> Dict[str, Any] | None:
    """Guard for the ops API: accept a static API token or an HS256 JWT."""

    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized"
        )
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise _forbidden()

    # JWTs have three dot-separated segments
    if token.count(".") == 2:
        secret = get_secret("JWT_SECRET")
        if not secret:
            raise _forbidden()
        try:
            payload = jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.PyJWTError as exc:
            raise _forbidden() from exc
        return payload

    tokens: Dict[str, str] = get_secret("API_TOKENS", {}) or {}
    for operator, expected in tokens.items():
        if token == expected:
            return {"sub": operator}
    raise _forbidden()
