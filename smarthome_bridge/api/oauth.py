"""
OAuth 2.0 account linking for the assistant platform.

Authorization code flow:
1. GET  /oauth/authorize         -> login form
2. POST /oauth/authorize/submit  -> redirect URL carrying a signed code
3. POST /oauth/token             -> access + refresh tokens, account link stored
"""

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field, ValidationError

from ..auth.passwords import verify_password
from ..auth.tokens import TokenError, TokenService
from ..config import OAuthConfig
from ..storage.repositories import AccountLinkRepository, AuditLogRepository, UserRepository
from .dependencies import get_account_links, get_audit, get_oauth_config, get_tokens, get_users

logger = logging.getLogger("bridge.api.oauth")

router = APIRouter(prefix="/oauth", tags=["OAuth"])


class AuthorizeSubmit(BaseModel):
    """Login form submission."""
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    redirect_uri: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)


def _oauth_error(status_code: int, error: str, description: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "error_description": description},
    )


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _redirect_with(redirect_uri: str, **params: str) -> str:
    separator = "&" if "?" in redirect_uri else "?"
    return f"{redirect_uri}{separator}{urlencode(params)}"


_LOGIN_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>Smart Home Authorization</title>
  <style>
    body {{ font-family: Arial, sans-serif; max-width: 400px; margin: 50px auto; padding: 20px; }}
    form {{ display: flex; flex-direction: column; gap: 10px; }}
    input {{ padding: 10px; border: 1px solid #ddd; border-radius: 4px; }}
    button {{ padding: 10px; background: #4285f4; color: white; border: none; border-radius: 4px; }}
    .error {{ color: red; font-size: 14px; }}
  </style>
</head>
<body>
  <h2>Smart Home Authorization</h2>
  <p>Your voice assistant wants to access your smart home devices.</p>
  <form id="loginForm">
    <input type="text" name="username" placeholder="Username" required />
    <input type="password" name="password" placeholder="Password" required />
    <button type="submit">Authorize</button>
    <div id="error" class="error"></div>
  </form>
  <script>
    const linkParams = {params};
    document.getElementById('loginForm').addEventListener('submit', async (e) => {{
      e.preventDefault();
      const formData = new FormData(e.target);
      try {{
        const response = await fetch('/oauth/authorize/submit', {{
          method: 'POST',
          headers: {{ 'Content-Type': 'application/json' }},
          body: JSON.stringify({{
            username: formData.get('username'),
            password: formData.get('password'),
            ...linkParams
          }})
        }});
        const data = await response.json();
        if (data.success) {{
          window.location.href = data.redirectUrl;
        }} else {{
          document.getElementById('error').textContent = data.message || 'Authorization failed';
        }}
      }} catch (error) {{
        document.getElementById('error').textContent = 'Network error';
      }}
    }});
  </script>
</body>
</html>
"""


def render_login_page(client_id: str, redirect_uri: str, state: str) -> str:
    params = json.dumps(
        {"client_id": client_id, "redirect_uri": redirect_uri, "state": state}
    ).replace("<", "\\u003c")
    return _LOGIN_PAGE.format(params=params)


@router.get("/authorize")
async def authorize(
    client_id: Optional[str] = None,
    redirect_uri: Optional[str] = None,
    state: Optional[str] = None,
    response_type: Optional[str] = None,
    oauth: OAuthConfig = Depends(get_oauth_config),
):
    """Authorization endpoint the assistant platform sends the user to."""
    if not client_id or not redirect_uri or not state:
        return _oauth_error(400, "invalid_request", "Missing required parameters")

    if response_type != "code":
        return _oauth_error(
            400,
            "unsupported_response_type",
            "Only authorization code flow is supported",
        )

    if not oauth.client_id or client_id != oauth.client_id:
        logger.warning("Invalid OAuth client_id: %s", client_id)
        return _oauth_error(401, "unauthorized_client", "Invalid client_id")

    return HTMLResponse(render_login_page(client_id, redirect_uri, state))


@router.post("/authorize/submit")
async def authorize_submit(
    request: Request,
    oauth: OAuthConfig = Depends(get_oauth_config),
    tokens: TokenService = Depends(get_tokens),
    users: UserRepository = Depends(get_users),
    audit: AuditLogRepository = Depends(get_audit),
):
    """Verify the user's credentials and hand back a code-bearing redirect."""
    try:
        form = AuthorizeSubmit.model_validate(await request.json())
    except (ValueError, ValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid request parameters"},
        )

    if not oauth.client_id or form.client_id != oauth.client_id:
        return JSONResponse(
            status_code=401,
            content={"success": False, "message": "Invalid client_id"},
        )

    user = await users.get_by_username(form.username)
    if user is None or not verify_password(form.password, user.password_hash):
        logger.warning("OAuth login failed for %s", form.username)
        return JSONResponse(
            status_code=401,
            content={"success": False, "message": "Invalid username or password"},
        )

    code = tokens.issue_auth_code(user.id, form.client_id, form.redirect_uri)

    await audit.record(
        action="oauth_authorize",
        resource_type="oauth",
        user_id=user.id,
        details={"client_id": form.client_id, "redirect_uri": form.redirect_uri},
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    logger.info("OAuth authorization granted to user %s", user.id)

    return {
        "success": True,
        "redirectUrl": _redirect_with(form.redirect_uri, code=code, state=form.state),
    }


async def _token_params(request: Request) -> dict[str, Any]:
    """Token requests arrive form-encoded per RFC 6749, JSON is also accepted."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.post("/token")
async def token(
    request: Request,
    oauth: OAuthConfig = Depends(get_oauth_config),
    tokens: TokenService = Depends(get_tokens),
    links: AccountLinkRepository = Depends(get_account_links),
):
    """Token endpoint: authorization_code and refresh_token grants."""
    params = await _token_params(request)

    if (
        not oauth.client_id
        or params.get("client_id") != oauth.client_id
        or params.get("client_secret") != oauth.client_secret
    ):
        logger.warning("Invalid OAuth client credentials")
        return _oauth_error(401, "invalid_client", "Invalid client credentials")

    grant_type = params.get("grant_type")
    access_ttl = tokens.config.access_token_ttl

    if grant_type == "authorization_code":
        code = params.get("code")
        redirect_uri = params.get("redirect_uri")
        if not code or not redirect_uri:
            return _oauth_error(400, "invalid_request", "Missing code or redirect_uri")

        try:
            grant = tokens.verify_auth_code(code)
        except TokenError as e:
            logger.warning("Rejected authorization code: %s", e)
            return _oauth_error(400, "invalid_grant", "Invalid or expired authorization code")

        if grant.get("redirectUri") != redirect_uri:
            return _oauth_error(400, "invalid_grant", "Redirect URI mismatch")
        if grant.get("clientId") != params.get("client_id"):
            return _oauth_error(400, "invalid_grant", "Client mismatch")

        user_id = grant["userId"]
        agent_user_id = f"agent_{user_id}_{int(time.time() * 1000)}"
        access_token = tokens.issue_access_token(user_id, agent_user_id)
        refresh_token = tokens.issue_refresh_token(user_id, agent_user_id)

        await links.upsert(
            user_id=user_id,
            agent_user_id=agent_user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=datetime.now(timezone.utc) + timedelta(seconds=access_ttl),
        )
        logger.info("Token exchange for %s (user %s)", agent_user_id, user_id)

        return {
            "token_type": "Bearer",
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expires_in": access_ttl,
        }

    if grant_type == "refresh_token":
        refresh_token = params.get("refresh_token")
        if not refresh_token:
            return _oauth_error(400, "invalid_request", "Missing refresh_token")

        try:
            grant = tokens.verify_refresh_token(refresh_token)
        except TokenError as e:
            logger.warning("Rejected refresh token: %s", e)
            return _oauth_error(400, "invalid_grant", "Invalid or expired refresh token")

        user_id = grant["userId"]
        agent_user_id = grant["agentUserId"]
        access_token = tokens.issue_access_token(user_id, agent_user_id)

        await links.upsert(
            user_id=user_id,
            agent_user_id=agent_user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=datetime.now(timezone.utc) + timedelta(seconds=access_ttl),
        )
        logger.info("Token refresh for %s", agent_user_id)

        return {
            "token_type": "Bearer",
            "access_token": access_token,
            "expires_in": access_ttl,
        }

    return _oauth_error(
        400,
        "unsupported_grant_type",
        "Only authorization_code and refresh_token are supported",
    )
