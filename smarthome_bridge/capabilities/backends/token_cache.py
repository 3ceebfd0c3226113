"""
Admin session token cache for the gateway.

Holds one upstream token and its expiry. Concurrent callers that find the
token missing or stale share a single login.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import jwt

logger = logging.getLogger("bridge.backends.token_cache")

LoginFn = Callable[[], Awaitable[str]]


def token_expiry(token: str, fallback_ttl: float, now: float) -> float:
    """
    Expiry of an upstream token as a unix timestamp.

    Reads the `exp` claim without verifying the signature (the token is
    not ours to verify). Falls back to now + fallback_ttl.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return now + fallback_ttl

    exp = claims.get("exp")
    if isinstance(exp, (int, float)):
        return float(exp)
    return now + fallback_ttl


class AdminTokenCache:
    """Lazily refreshed admin token with a single-flight refresh guard."""

    def __init__(
        self,
        login: LoginFn,
        ttl_fallback: float = 3600,
        refresh_margin: float = 60,
        clock: Callable[[], float] = time.time,
    ):
        self._login = login
        self._ttl_fallback = ttl_fallback
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._refresh_lock = asyncio.Lock()

    @property
    def expires_at(self) -> float:
        return self._expires_at

    def _is_fresh(self) -> bool:
        return (
            self._token is not None
            and self._clock() < self._expires_at - self._refresh_margin
        )

    async def get_token(self) -> str:
        """Return a valid token, logging in if needed."""
        if self._is_fresh():
            return self._token  # type: ignore[return-value]

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            if self._is_fresh():
                return self._token  # type: ignore[return-value]

            token = await self._login()
            self._token = token
            self._expires_at = token_expiry(token, self._ttl_fallback, self._clock())
            logger.info(
                "Refreshed gateway admin token (valid for %ds)",
                int(self._expires_at - self._clock()),
            )
            return token

    def invalidate(self) -> None:
        """Drop the cached token so the next caller logs in again."""
        if self._token is not None:
            logger.info("Invalidating gateway admin token")
        self._token = None
        self._expires_at = 0.0
