"""
Google OAuth Client Tests

Tests the authorization URL, code exchange, profile fetch and the mapping
of provider profiles onto identity assertions.
"""

from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from login_gateway.auth.google import (
    AUTHORIZATION_ENDPOINT,
    TOKEN_ENDPOINT,
    USERINFO_ENDPOINT,
    IdentityVerificationError,
    build_authorization_url,
    exchange_code_for_tokens,
    fetch_profile,
    profile_to_assertion,
    verify_identity,
)


REDIRECT_URI = "http://testserver/auth/google/callback"


def token_reply(**overrides):
    body = {
        "access_token": "ya29.mock-access-token",
        "refresh_token": "1//mock-refresh-token",
        "expires_in": 3599,
        "token_type": "Bearer",
    }
    body.update(overrides)
    return httpx.Response(200, json=body)


def userinfo_reply(**overrides):
    body = {
        "sub": "g-123",
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "email_verified": True,
    }
    body.update(overrides)
    return httpx.Response(200, json=body)


# ============================================================================
# Authorization URL
# ============================================================================

def test_authorization_url(test_settings):
    url = build_authorization_url(test_settings, REDIRECT_URI, state="xyz")

    parsed = urlparse(url)
    params = parse_qs(parsed.query)

    assert url.startswith(AUTHORIZATION_ENDPOINT)
    assert params["client_id"] == [test_settings.GOOGLE_CLIENT_ID]
    assert params["redirect_uri"] == [REDIRECT_URI]
    assert params["response_type"] == ["code"]
    assert params["scope"] == ["openid profile email"]
    assert params["state"] == ["xyz"]
    assert "client_secret" not in params


# ============================================================================
# Token Exchange / Profile
# ============================================================================

class TestExchange:

    @pytest.mark.asyncio
    async def test_exchange_posts_code(self, test_settings, mock_http_client):
        mock_http_client.post.return_value = token_reply()

        token_data = await exchange_code_for_tokens(
            mock_http_client, test_settings, "auth-code", REDIRECT_URI
        )

        assert token_data["access_token"] == "ya29.mock-access-token"
        call_args = mock_http_client.post.call_args
        assert call_args[0][0] == TOKEN_ENDPOINT
        assert call_args.kwargs["data"]["code"] == "auth-code"
        assert call_args.kwargs["data"]["client_secret"] == "test-client-secret"
        assert call_args.kwargs["data"]["grant_type"] == "authorization_code"

    @pytest.mark.asyncio
    async def test_exchange_rejected(self, test_settings, mock_http_client):
        mock_http_client.post.return_value = httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Bad Request"}
        )

        with pytest.raises(IdentityVerificationError) as exc_info:
            await exchange_code_for_tokens(mock_http_client, test_settings, "bad", REDIRECT_URI)

        assert "Bad Request" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_exchange_without_access_token(self, test_settings, mock_http_client):
        mock_http_client.post.return_value = httpx.Response(200, json={"token_type": "Bearer"})

        with pytest.raises(IdentityVerificationError):
            await exchange_code_for_tokens(mock_http_client, test_settings, "code", REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_fetch_profile_sends_bearer(self, mock_http_client):
        mock_http_client.get.return_value = userinfo_reply()

        profile = await fetch_profile(mock_http_client, "ya29.token")

        assert profile["sub"] == "g-123"
        call_args = mock_http_client.get.call_args
        assert call_args[0][0] == USERINFO_ENDPOINT
        assert call_args.kwargs["headers"]["Authorization"] == "Bearer ya29.token"

    @pytest.mark.asyncio
    async def test_fetch_profile_unauthorized(self, mock_http_client):
        mock_http_client.get.return_value = httpx.Response(401, text="Unauthorized")

        with pytest.raises(IdentityVerificationError):
            await fetch_profile(mock_http_client, "expired")


# ============================================================================
# verify_identity
# ============================================================================

class TestVerifyIdentity:

    @pytest.mark.asyncio
    async def test_successful_handshake(self, test_settings, mock_http_client):
        mock_http_client.post.return_value = token_reply()
        mock_http_client.get.return_value = userinfo_reply()

        assertion = await verify_identity(mock_http_client, test_settings, "code", REDIRECT_URI)

        assert assertion.subject_id == "g-123"
        assert assertion.display_name == "Ada Lovelace"
        assert assertion.emails == ["ada@example.com"]

    @pytest.mark.asyncio
    async def test_provider_tokens_are_not_kept(self, test_settings, mock_http_client):
        mock_http_client.post.return_value = token_reply()
        mock_http_client.get.return_value = userinfo_reply()

        assertion = await verify_identity(mock_http_client, test_settings, "code", REDIRECT_URI)

        dumped = str(assertion.model_dump())
        assert "ya29" not in dumped
        assert "refresh" not in dumped

    @pytest.mark.asyncio
    async def test_network_error_wrapped(self, test_settings):
        client = AsyncMock()
        client.post.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(IdentityVerificationError) as exc_info:
            await verify_identity(client, test_settings, "code", REDIRECT_URI)

        assert "communicate" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_json_profile_wrapped(self, test_settings, mock_http_client):
        mock_http_client.post.return_value = token_reply()
        mock_http_client.get.return_value = httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(IdentityVerificationError):
            await verify_identity(mock_http_client, test_settings, "code", REDIRECT_URI)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["x"], "x", 42])
    async def test_token_reply_not_an_object(self, test_settings, mock_http_client, body):
        mock_http_client.post.return_value = httpx.Response(200, json=body)

        with pytest.raises(IdentityVerificationError) as exc_info:
            await verify_identity(mock_http_client, test_settings, "code", REDIRECT_URI)

        assert "Malformed provider response" in str(exc_info.value)
        mock_http_client.get.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [[1], "profile", 7])
    async def test_profile_reply_not_an_object(self, test_settings, mock_http_client, body):
        mock_http_client.post.return_value = token_reply()
        mock_http_client.get.return_value = httpx.Response(200, json=body)

        with pytest.raises(IdentityVerificationError) as exc_info:
            await verify_identity(mock_http_client, test_settings, "code", REDIRECT_URI)

        assert "Malformed provider response" in str(exc_info.value)


# ============================================================================
# Profile Mapping
# ============================================================================

class TestProfileMapping:

    def test_userinfo_shape(self):
        assertion = profile_to_assertion(
            {"sub": "1", "name": "Grace Hopper", "email": "grace@example.com"}
        )

        assert assertion.subject_id == "1"
        assert assertion.display_name == "Grace Hopper"
        assert assertion.emails == ["grace@example.com"]

    def test_normalized_profile_shape_keeps_order(self):
        assertion = profile_to_assertion({
            "id": "2",
            "displayName": "Alan Turing",
            "emails": [{"value": "alan@example.com", "verified": True}, {"value": "at@alt.com"}],
        })

        assert assertion.subject_id == "2"
        assert assertion.display_name == "Alan Turing"
        assert assertion.emails == ["alan@example.com", "at@alt.com"]

    def test_name_from_given_and_family(self):
        assertion = profile_to_assertion(
            {"sub": "3", "given_name": "Katherine", "family_name": "Johnson", "email": "kj@example.com"}
        )

        assert assertion.display_name == "Katherine Johnson"

    def test_missing_name_is_empty_string(self):
        assertion = profile_to_assertion({"sub": "4", "email": "x@example.com"})

        assert assertion.display_name == ""

    def test_missing_email_gives_empty_list(self):
        assertion = profile_to_assertion({"sub": "5", "name": "No Mail"})

        assert assertion.emails == []

    def test_single_string_emails_kept_whole(self):
        assertion = profile_to_assertion({"sub": "6", "emails": "ada@example.com"})

        assert assertion.emails == ["ada@example.com"]

    def test_single_object_emails_kept_whole(self):
        assertion = profile_to_assertion({"id": "7", "emails": {"value": "grace@example.com"}})

        assert assertion.emails == ["grace@example.com"]

    def test_missing_subject_rejected(self):
        with pytest.raises(IdentityVerificationError):
            profile_to_assertion({"name": "Ghost", "email": "ghost@example.com"})
