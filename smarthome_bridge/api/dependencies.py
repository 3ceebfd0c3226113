"""
FastAPI dependencies for service injection.

Routes never reach for globals directly; every collaborator comes through
one of these providers so tests can swap it via dependency_overrides.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ..auth.tokens import TokenError, TokenService, get_token_service
from ..capabilities.backends import Gateway, ThingsBoardGateway, get_gateway
from ..config import OAuthConfig, settings
from ..fulfillment import IntentDispatcher, Registry, RepositoryRegistry
from ..storage.models import User
from ..storage.repositories import (
    AccountLinkRepository,
    AuditLogRepository,
    DeviceRepository,
    UserRepository,
    get_account_link_repo,
    get_audit_repo,
    get_device_repo,
    get_user_repo,
)

logger = logging.getLogger("bridge.api.dependencies")


def get_tokens() -> TokenService:
    return get_token_service()


def get_gateway_client() -> ThingsBoardGateway:
    return get_gateway()


def get_users() -> UserRepository:
    return get_user_repo()


def get_devices() -> DeviceRepository:
    return get_device_repo()


def get_account_links() -> AccountLinkRepository:
    return get_account_link_repo()


def get_audit() -> AuditLogRepository:
    return get_audit_repo()


def get_registry(
    devices: DeviceRepository = Depends(get_devices),
    links: AccountLinkRepository = Depends(get_account_links),
) -> Registry:
    return RepositoryRegistry(devices=devices, links=links)


def get_dispatcher(
    registry: Registry = Depends(get_registry),
    gateway: Gateway = Depends(get_gateway_client),
    tokens: TokenService = Depends(get_tokens),
) -> IntentDispatcher:
    return IntentDispatcher(registry=registry, gateway=gateway, tokens=tokens)


async def get_current_user(
    authorization: Optional[str] = Header(None),
    tokens: TokenService = Depends(get_tokens),
    users: UserRepository = Depends(get_users),
) -> User:
    """
    FastAPI dependency resolving the session token to a backend user.

    Raises:
        HTTPException: 401 if the token is missing, invalid or its user is gone
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
        )

    try:
        claims = tokens.verify_session_token(authorization[len("Bearer "):].strip())
    except TokenError as e:
        logger.warning("Invalid session token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user = await users.get_by_id(claims.get("userId"))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User no longer exists",
        )
    return user


def get_oauth_config() -> OAuthConfig:
    return settings.oauth
