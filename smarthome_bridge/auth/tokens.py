"""
Signed credentials issued by the bridge.

All tokens are HS256 JWTs tagged with a `type` claim so one kind can never
be replayed as another:

- session: backend user sessions for the device management API
- auth_code: short-lived OAuth authorization codes
- access_token / refresh_token: credentials handed to the assistant platform
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

import jwt

from ..config import AuthConfig, settings

logger = logging.getLogger("bridge.auth.tokens")

ASSISTANT_SCOPE = "smart_home"


class TokenType(str, Enum):
    SESSION = "session"
    AUTH_CODE = "auth_code"
    ACCESS = "access_token"
    REFRESH = "refresh_token"


class TokenError(Exception):
    """A token is malformed, expired, badly signed or of the wrong type."""


class TokenService:
    """Issues and verifies the bridge's JWTs."""

    def __init__(self, config: Optional[AuthConfig] = None):
        self.config = config or settings.auth

    def _encode(self, claims: dict[str, Any], ttl_seconds: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "iat": now,
            "exp": now + timedelta(seconds=ttl_seconds),
        }
        return jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)

    def decode(self, token: str, expected_type: TokenType) -> dict[str, Any]:
        """
        Verify a token and return its claims.

        Raises:
            TokenError: if the token is invalid, expired or not of expected_type
        """
        try:
            claims = jwt.decode(
                token,
                self.config.jwt_secret,
                algorithms=[self.config.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenError(f"{expected_type.value} expired") from e
        except jwt.PyJWTError as e:
            raise TokenError(f"invalid {expected_type.value}: {e}") from e

        if claims.get("type") != expected_type.value:
            raise TokenError(f"expected {expected_type.value}, got {claims.get('type')!r}")
        return claims

    # Session tokens

    def issue_session_token(self, user_id: int, backend_user_id: str, username: str) -> str:
        return self._encode(
            {
                "userId": user_id,
                "backendUserId": backend_user_id,
                "username": username,
                "type": TokenType.SESSION.value,
            },
            self.config.session_token_ttl,
        )

    def verify_session_token(self, token: str) -> dict[str, Any]:
        return self.decode(token, TokenType.SESSION)

    # OAuth

    def issue_auth_code(self, user_id: int, client_id: str, redirect_uri: str) -> str:
        return self._encode(
            {
                "userId": user_id,
                "clientId": client_id,
                "redirectUri": redirect_uri,
                "type": TokenType.AUTH_CODE.value,
            },
            self.config.auth_code_ttl,
        )

    def verify_auth_code(self, code: str) -> dict[str, Any]:
        return self.decode(code, TokenType.AUTH_CODE)

    def issue_access_token(self, user_id: int, agent_user_id: str) -> str:
        return self._encode(
            {
                "userId": user_id,
                "agentUserId": agent_user_id,
                "scope": ASSISTANT_SCOPE,
                "type": TokenType.ACCESS.value,
            },
            self.config.access_token_ttl,
        )

    def verify_access_token(self, token: str) -> dict[str, Any]:
        return self.decode(token, TokenType.ACCESS)

    def issue_refresh_token(self, user_id: int, agent_user_id: str) -> str:
        return self._encode(
            {
                "userId": user_id,
                "agentUserId": agent_user_id,
                "type": TokenType.REFRESH.value,
            },
            self.config.refresh_token_ttl,
        )

    def verify_refresh_token(self, token: str) -> dict[str, Any]:
        return self.decode(token, TokenType.REFRESH)

    def subject_from_bearer(self, authorization: Optional[str]) -> Optional[str]:
        """
        Resolve an Authorization header to the assistant subject identifier.

        Returns None for a missing header, a non-Bearer scheme, or a token
        that is not a valid access token carrying agentUserId.
        """
        if not authorization or not authorization.startswith("Bearer "):
            return None
        token = authorization[len("Bearer "):].strip()
        if not token:
            return None

        try:
            claims = self.verify_access_token(token)
        except TokenError as e:
            logger.warning("Rejected bearer token: %s", e)
            return None

        subject = claims.get("agentUserId")
        return subject if isinstance(subject, str) and subject else None


_token_service: Optional[TokenService] = None


def get_token_service() -> TokenService:
    """Get the global token service."""
    global _token_service
    if _token_service is None:
        _token_service = TokenService()
    return _token_service
