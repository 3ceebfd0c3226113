"""
Backend user accounts: registration, login and profile.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from ..auth.passwords import hash_password, verify_password
from ..auth.tokens import TokenService
from ..capabilities.backends import GatewayAuthError, GatewayError, ThingsBoardGateway
from ..storage.exceptions import DuplicateRecordError
from ..storage.models import User
from ..storage.repositories import AuditLogRepository, UserRepository
from .dependencies import get_audit, get_current_user, get_gateway_client, get_tokens, get_users

logger = logging.getLogger("bridge.api.users")

router = APIRouter(prefix="/auth", tags=["Auth"])


# --- Request/Response Models ---


class RegisterRequest(BaseModel):
    """New backend user."""
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=3)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6)
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ThingsBoardLinkRequest(BaseModel):
    """Credentials of an existing ThingsBoard account."""
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1, alias="thingsboardUsername")
    password: str = Field(..., min_length=1, alias="thingsboardPassword")


def _session_response(user: User, token: str) -> dict:
    return {
        "success": True,
        "token": token,
        "user": {
            "backendUserId": str(user.backend_user_id),
            "username": user.username,
            "email": user.email,
        },
    }


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# --- Endpoints ---


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    users: UserRepository = Depends(get_users),
    gateway: ThingsBoardGateway = Depends(get_gateway_client),
    tokens: TokenService = Depends(get_tokens),
    audit: AuditLogRepository = Depends(get_audit),
):
    """
    Register a backend user.

    A matching ThingsBoard user is created on a best-effort basis; the
    backend account is created even if that fails.
    """
    if await users.get_by_username(body.username) is not None:
        raise HTTPException(status.HTTP_409_CONFLICT, "Username is already taken")

    gateway_user_id = None
    gateway_customer_id = None
    try:
        tb_user = await gateway.create_user(
            body.email,
            body.first_name or body.username,
            body.last_name or "User",
        )
        gateway_user_id = (tb_user.get("id") or {}).get("id")
        gateway_customer_id = (tb_user.get("customerId") or {}).get("id")
    except GatewayError as e:
        logger.warning("Failed to create ThingsBoard user for %s: %s", body.email, e)

    try:
        user = await users.create(
            username=body.username,
            password_hash=hash_password(body.password),
            email=body.email,
            gateway_user_id=gateway_user_id,
            gateway_customer_id=gateway_customer_id,
        )
    except DuplicateRecordError:
        raise HTTPException(status.HTTP_409_CONFLICT, "Username is already taken")

    token = tokens.issue_session_token(user.id, str(user.backend_user_id), user.username)

    await audit.record(
        action="user_registered",
        resource_type="user",
        user_id=user.id,
        resource_id=str(user.backend_user_id),
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    logger.info("Registered user %s", user.username)

    return _session_response(user, token)


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    users: UserRepository = Depends(get_users),
    tokens: TokenService = Depends(get_tokens),
    audit: AuditLogRepository = Depends(get_audit),
):
    """Exchange username and password for a session token."""
    user = await users.get_by_username(body.username)
    if user is None or not verify_password(body.password, user.password_hash):
        logger.warning("Login failed for %s", body.username)
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid username or password")

    token = tokens.issue_session_token(user.id, str(user.backend_user_id), user.username)

    await audit.record(
        action="user_login",
        resource_type="user",
        user_id=user.id,
        resource_id=str(user.backend_user_id),
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    logger.info("User %s logged in", user.username)

    return _session_response(user, token)


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    """Profile of the authenticated user."""
    return {"success": True, "user": user.to_dict()}


@router.post("/thingsboard/link")
async def link_thingsboard(
    body: ThingsBoardLinkRequest,
    request: Request,
    user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_users),
    gateway: ThingsBoardGateway = Depends(get_gateway_client),
    audit: AuditLogRepository = Depends(get_audit),
):
    """
    Bind the caller to an existing ThingsBoard account.

    Recovers the customer mapping for users whose ThingsBoard account was
    not created at registration, so their devices get assigned to it.
    """
    try:
        await gateway.authenticate(body.username, body.password)
    except GatewayAuthError as e:
        if e.status_code is not None and 400 <= e.status_code < 500:
            logger.warning("ThingsBoard link rejected for user %s", user.id)
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid ThingsBoard credentials")
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, f"ThingsBoard login failed: {e}")

    try:
        tb_user = await gateway.get_user_by_email(body.username)
    except GatewayError as e:
        logger.error("ThingsBoard user lookup for %s failed: %s", body.username, e)
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, f"ThingsBoard user lookup failed: {e}")

    gateway_user_id = ((tb_user or {}).get("id") or {}).get("id")
    if not gateway_user_id:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, "Could not retrieve ThingsBoard user info")
    gateway_customer_id = (tb_user.get("customerId") or {}).get("id")

    await users.update_gateway_mapping(user.id, gateway_user_id, gateway_customer_id)

    await audit.record(
        action="thingsboard_link",
        resource_type="user",
        user_id=user.id,
        resource_id=str(user.backend_user_id),
        details={"thingsboardUsername": body.username},
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    logger.info("User %s linked to ThingsBoard user %s", user.id, gateway_user_id)

    return {"success": True, "message": "ThingsBoard account linked successfully"}
