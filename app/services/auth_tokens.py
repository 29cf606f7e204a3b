from __future__ import annotations

from datetime import datetime, timedelta

import jwt

from app.core.errors import UnauthenticatedError

DEFAULT_TOKEN_TTL = timedelta(days=7)


def issue_access_token(
    *,
    user_id: str,
    secret: str,
    algorithm: str,
    now_utc: datetime,
    ttl: timedelta = DEFAULT_TOKEN_TTL,
) -> str:
    payload = {"sub": user_id, "iat": now_utc, "exp": now_utc + ttl}
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_user_id(token: str, *, secret: str, algorithm: str) -> str:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as exc:
        raise UnauthenticatedError("Invalid or expired token.") from exc

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise UnauthenticatedError("Invalid or expired token.")
    return user_id


def extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise UnauthenticatedError
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthenticatedError
    return token.strip()
