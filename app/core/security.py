from __future__ import annotations

from typing import Any

from jose import JWTError, jwt

from app.core.settings import settings


def decode_session_token(token: str) -> dict[str, Any]:
    """Verify a session token and return its claims.

    The ``sub`` claim carries the user identifier: a primary key, an identity
    provider subject (``auth0|...``) or a custom account id.
    """
    options = {"verify_aud": settings.session_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.session_secret,
            algorithms=[settings.session_algorithm],
            audience=settings.session_audience,
            options=options,
        )
    except JWTError as exc:
        raise ValueError("Invalid session token") from exc
