"""
Authentication routes for the Google login and callback handling.

This module implements the OAuth 2.0 authorization code flow with Google
and hands out a stateless session JWT once the identity is verified.
"""

import html
import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from ..config import Settings
from ..models import CurrentUserResponse
from .google import IdentityVerificationError, build_authorization_url, verify_identity
from .session import InvalidAssertion, get_current_user, issue_session_token

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/google"
STATE_SESSION_KEY = "oauth_state"


# =============================================================================
# Router Setup
# =============================================================================

def build_auth_router(settings: Settings) -> APIRouter:
    """
    Create the authentication router.

    The callback path is configurable, so the router is assembled from the
    settings rather than declared at import time.
    """
    auth_router = APIRouter(tags=["authentication"])

    auth_router.add_api_route(
        LOGIN_PATH,
        login,
        methods=["GET"],
        response_class=RedirectResponse,
        name="google_login",
    )
    auth_router.add_api_route(
        settings.GOOGLE_CALLBACK_PATH,
        callback,
        methods=["GET"],
        response_class=HTMLResponse,
        name="google_callback",
    )
    auth_router.add_api_route(
        "/auth/me",
        me,
        methods=["GET"],
        response_model=CurrentUserResponse,
        name="current_user",
    )

    return auth_router


def _redirect_uri(request: Request, settings: Settings) -> str:
    base_url = settings.public_base_url or str(request.base_url).rstrip("/")
    return f"{base_url}{settings.GOOGLE_CALLBACK_PATH}"


# =============================================================================
# Login Endpoint
# =============================================================================

async def login(request: Request) -> RedirectResponse:
    """
    Start the login flow by redirecting to Google's consent screen.

    A random state value is kept in the signed session cookie and checked
    on the callback.
    """
    settings: Settings = request.app.state.settings

    state = secrets.token_urlsafe(32)
    request.session[STATE_SESSION_KEY] = state

    authorization_url = build_authorization_url(
        settings,
        redirect_uri=_redirect_uri(request, settings),
        state=state,
    )

    return RedirectResponse(url=authorization_url, status_code=302)


# =============================================================================
# Callback Endpoint
# =============================================================================

async def callback(
    request: Request,
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: Optional[str] = Query(None, description="State parameter for CSRF protection"),
    error: Optional[str] = Query(None, description="Error code if authentication failed"),
    error_description: Optional[str] = Query(None, description="Error description"),
) -> HTMLResponse:
    """
    Handle the OAuth callback from Google.

    This endpoint:
    1. Validates the state parameter against the session cookie
    2. Exchanges the authorization code and fetches the profile
    3. Issues a session JWT for the verified identity
    4. Returns an HTML page showing the token
    """
    settings: Settings = request.app.state.settings

    # Handle authentication errors reported by Google
    if error:
        return _render_error_page(
            title="Authentication Failed",
            message=f"Unable to authenticate: {error_description or error}",
        )

    if not code or not state:
        return _render_error_page(
            title="Invalid Request",
            message="Missing required parameters (code or state)",
        )

    expected_state = request.session.pop(STATE_SESSION_KEY, None)
    if not expected_state or not secrets.compare_digest(state.encode(), expected_state.encode()):
        logger.warning("OAuth state mismatch on callback")
        return _render_error_page(
            title="Security Error",
            message="Invalid state parameter. This may be a CSRF attack or expired session.",
        )

    try:
        assertion = await verify_identity(
            request.app.state.http_client,
            settings,
            code=code,
            redirect_uri=_redirect_uri(request, settings),
        )
    except IdentityVerificationError as e:
        return _render_error_page(
            title="Identity Verification Failed",
            message=str(e),
            status_code=502,
        )

    try:
        token = issue_session_token(
            assertion,
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )
    except InvalidAssertion as e:
        logger.warning(
            "Refusing to issue session token",
            extra={"user_id": assertion.subject_id, "reason": str(e)},
        )
        return _render_error_page(
            title="Email Not Found",
            message="Unable to retrieve an email address from your account.",
            show_retry=False,
        )

    logger.info("Issued session token", extra={"user_id": assertion.subject_id})

    return _render_success_page(token=token, user_name=assertion.display_name)


# =============================================================================
# Current User Endpoint
# =============================================================================

async def me(user: Dict[str, Any] = Depends(get_current_user)) -> CurrentUserResponse:
    """Return the identity carried by a valid bearer token."""
    return CurrentUserResponse(
        id=user["id"],
        name=user.get("name", ""),
        email=user["email"],
        issued_at=user["iat"],
        expires_at=user["exp"],
    )


# =============================================================================
# HTML Response Templates
# =============================================================================

def _render_success_page(token: str, user_name: str) -> HTMLResponse:
    """
    Render the success page with the session token for manual copy.
    """
    greeting = f"Welcome, {html.escape(user_name)}. " if user_name else ""

    html_content = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <title>Authorization Successful</title>
    </head>
    <body>
        <div style="font-family: sans-serif; padding: 50px; text-align: center;">
            <h1 style="color: #003973;">Authorization Successful!</h1>
            <p>{greeting}Google verified your identity. Here is your <strong>Stateless JWT:</strong></p>
            <textarea id="token" style="width: 100%; height: 150px; padding: 10px; background: #f4f4f4; border-radius: 8px; border: 1px solid #ddd;" readonly>{html.escape(token)}</textarea>
            <p style="color: #666; font-size: 0.8rem; margin-top: 20px;">This token expires in one hour and can be used to access protected data without checking a database.</p>
            <a href="/" style="text-decoration: none; color: #003973; font-weight: bold;">&larr; Back to Home</a>
        </div>
    </body>
    </html>
    """

    return HTMLResponse(content=html_content, status_code=200)


def _render_error_page(
    title: str,
    message: str,
    show_retry: bool = True,
    status_code: int = 400,
) -> HTMLResponse:
    """
    Render error page for authentication failures.

    Args:
        title: Error title
        message: Error message (no secrets)
        show_retry: Whether to link back to the login route
        status_code: HTTP status code
    """
    retry_link = (
        f'<a href="{LOGIN_PATH}" style="color: #003973; font-weight: bold;">Try Again</a>'
        if show_retry else ""
    )

    html_content = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <title>{html.escape(title)}</title>
    </head>
    <body>
        <div style="font-family: sans-serif; padding: 50px; text-align: center;">
            <h1 style="color: #b91c1c;">{html.escape(title)}</h1>
            <p>{html.escape(message)}</p>
            {retry_link}
        </div>
    </body>
    </html>
    """

    return HTMLResponse(content=html_content, status_code=status_code)
