"""
Google OAuth 2.0 client.

This module handles:
- Building the Google authorization URL for the login redirect
- Exchanging an authorization code for provider tokens
- Fetching the user's profile and reducing it to an IdentityAssertion

Provider access and refresh tokens never leave this module.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from ..config import Settings
from ..models import IdentityAssertion

logger = logging.getLogger(__name__)

AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
USERINFO_ENDPOINT = "https://openidconnect.googleapis.com/v1/userinfo"

SCOPES = "openid profile email"
REQUEST_TIMEOUT = 10.0


class IdentityVerificationError(Exception):
    """The provider handshake did not produce a usable profile."""
    pass


# =============================================================================
# Authorization Redirect
# =============================================================================

def build_authorization_url(settings: Settings, redirect_uri: str, state: str) -> str:
    """
    Build the Google consent screen URL.

    Args:
        settings: Application settings (client id)
        redirect_uri: Absolute callback URL registered with Google
        state: Opaque anti-CSRF value echoed back on the callback

    Returns:
        Authorization URL to redirect the browser to
    """
    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "scope": SCOPES,
        "state": state,
        "access_type": "online",
        "include_granted_scopes": "true",
    }
    return f"{AUTHORIZATION_ENDPOINT}?{urlencode(params)}"


# =============================================================================
# Code Exchange and Profile
# =============================================================================

async def exchange_code_for_tokens(
    client: httpx.AsyncClient,
    settings: Settings,
    code: str,
    redirect_uri: str,
) -> Dict[str, Any]:
    """
    Exchange an authorization code for provider tokens.

    Raises:
        IdentityVerificationError: If Google rejects the code or the reply
            carries no access token
        httpx.HTTPError: On network failure
    """
    payload = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "client_secret": settings.GOOGLE_CLIENT_SECRET,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
    }

    response = await client.post(
        TOKEN_ENDPOINT,
        data=payload,
        headers={"Accept": "application/json"},
        timeout=REQUEST_TIMEOUT,
    )

    if not response.is_success:
        error_msg = _error_message(response) or "Token exchange failed"
        logger.warning(
            "Google token exchange rejected",
            extra={"status_code": response.status_code, "error": error_msg},
        )
        raise IdentityVerificationError(f"Token exchange failed: {error_msg}")

    token_data = response.json()
    if not isinstance(token_data, dict):
        raise IdentityVerificationError("Malformed provider response")
    if not token_data.get("access_token"):
        raise IdentityVerificationError("Token response missing access_token")

    return token_data


async def fetch_profile(client: httpx.AsyncClient, access_token: str) -> Dict[str, Any]:
    """
    Fetch the OpenID Connect userinfo document for an access token.

    Raises:
        IdentityVerificationError: If the userinfo endpoint refuses the token
        httpx.HTTPError: On network failure
    """
    response = await client.get(
        USERINFO_ENDPOINT,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=REQUEST_TIMEOUT,
    )

    if not response.is_success:
        error_msg = _error_message(response) or f"HTTP {response.status_code}"
        raise IdentityVerificationError(f"Profile request failed: {error_msg}")

    profile = response.json()
    if not isinstance(profile, dict):
        raise IdentityVerificationError("Malformed provider response")

    return profile


def profile_to_assertion(profile: Dict[str, Any]) -> IdentityAssertion:
    """
    Reduce a provider profile to an IdentityAssertion.

    Accepts both the OIDC userinfo shape (``sub``, ``name``, ``email``) and
    the normalized profile shape (``id``, ``displayName``, ``emails`` as a
    list of ``{"value": ...}`` objects). Emails keep the provider's order.

    Raises:
        IdentityVerificationError: If the profile has no subject identifier
    """
    subject_id = profile.get("sub") or profile.get("id")
    if not subject_id:
        raise IdentityVerificationError("Profile is missing a subject identifier")

    return IdentityAssertion(
        subject_id=str(subject_id),
        display_name=_display_name(profile),
        emails=_emails(profile),
    )


async def verify_identity(
    client: httpx.AsyncClient,
    settings: Settings,
    code: str,
    redirect_uri: str,
) -> IdentityAssertion:
    """
    Complete the provider handshake for an authorization code.

    Returns:
        IdentityAssertion for the signed-in account

    Raises:
        IdentityVerificationError: On any provider or network failure
    """
    try:
        token_data = await exchange_code_for_tokens(client, settings, code, redirect_uri)
        profile = await fetch_profile(client, token_data["access_token"])
    except httpx.HTTPError as e:
        logger.error(f"Unable to reach Google: {e}")
        raise IdentityVerificationError(
            f"Unable to communicate with authentication service: {e}"
        ) from e
    except ValueError as e:
        # Non-JSON body from the provider
        raise IdentityVerificationError(f"Malformed provider response: {e}") from e

    return profile_to_assertion(profile)


# =============================================================================
# Helpers
# =============================================================================

def _display_name(profile: Dict[str, Any]) -> str:
    name = profile.get("name") or profile.get("displayName")
    if name:
        return str(name)

    parts = [profile.get("given_name"), profile.get("family_name")]
    return " ".join(str(p) for p in parts if p)


def _emails(profile: Dict[str, Any]) -> List[str]:
    emails: List[str] = []

    entries = profile.get("emails") or []
    if not isinstance(entries, list):
        entries = [entries]

    for entry in entries:
        value = entry.get("value") if isinstance(entry, dict) else entry
        if value:
            emails.append(str(value))

    email = profile.get("email")
    if email and email not in emails:
        emails.insert(0, str(email))

    return emails


def _error_message(response: httpx.Response) -> Optional[str]:
    if not response.headers.get("content-type", "").startswith("application/json"):
        return None
    try:
        error_data = response.json()
    except ValueError:
        return None
    if not isinstance(error_data, dict):
        return None
    return error_data.get("error_description") or error_data.get("error")
