"""
JWT Session Token Module
========================

Issues and verifies the stateless session tokens handed out after a
successful Google login.

A session token is an HMAC-signed JWT carrying three claims taken from the
identity assertion (``id``, ``name``, ``email``) plus ``iat`` and ``exp``.
Tokens live for exactly one hour and are never stored, refreshed or revoked
server-side.

Issuing and verifying are pure functions of their arguments and the
supplied time; neither reads global configuration nor performs I/O.
"""

import base64
import binascii
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

import jwt
from jwt.exceptions import InvalidTokenError
from fastapi import Header, HTTPException, Request, status

from ..models import IdentityAssertion, TokenClaims

logger = logging.getLogger(__name__)

TOKEN_LIFETIME = timedelta(hours=1)
DEFAULT_ALGORITHM = "HS256"

Timestamp = Union[datetime, int, float]


# =============================================================================
# Exceptions
# =============================================================================

class SessionTokenError(Exception):
    """Base exception for session token errors"""
    pass


class InvalidAssertion(SessionTokenError):
    """The identity assertion cannot be turned into a token."""
    pass


class VerificationFailure(SessionTokenError):
    """
    A candidate token was rejected.

    Attributes:
        reason: Short machine-readable reason ("expired" or "invalid").
    """

    def __init__(self, message: str, reason: str = "invalid"):
        self.reason = reason
        super().__init__(message)


# =============================================================================
# Token Creation
# =============================================================================

def build_token_claims(assertion: IdentityAssertion) -> TokenClaims:
    """
    Map an identity assertion onto session token claims.

    The primary email is the first entry of ``assertion.emails``; there is
    no fallback when the list is empty.

    Raises:
        InvalidAssertion: If the subject id or the email list is empty.
    """
    if not assertion.subject_id or not assertion.subject_id.strip():
        raise InvalidAssertion("Identity assertion is missing a subject id")
    if not assertion.emails:
        raise InvalidAssertion("Identity assertion has no email address")

    primary_email = assertion.emails[0]
    if not primary_email:
        raise InvalidAssertion("Identity assertion has an empty primary email")

    return TokenClaims(
        id=assertion.subject_id,
        name=assertion.display_name,
        email=primary_email,
    )


def issue_session_token(
    assertion: IdentityAssertion,
    signing_secret: str,
    now: Optional[Timestamp] = None,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    """
    Create a signed session token for a verified identity.

    Args:
        assertion: Profile returned by the identity provider
        signing_secret: HMAC secret; must not be empty
        now: Issuance time (datetime or POSIX seconds), defaults to current UTC time
        algorithm: HMAC algorithm name

    Returns:
        Encoded JWT string

    Raises:
        InvalidAssertion: If the assertion lacks a subject id or email
        SessionTokenError: If the signing secret is empty

    Example:
        >>> assertion = IdentityAssertion(
        ...     subject_id="g-123",
        ...     display_name="Ada Lovelace",
        ...     emails=["ada@example.com"],
        ... )
        >>> token = issue_session_token(assertion, "s3cret", now=1000)
    """
    claims = build_token_claims(assertion)
    _require_secret(signing_secret)

    issued_at = _to_timestamp(now)
    payload: Dict[str, Any] = claims.model_dump()
    payload.update({
        "iat": issued_at,
        "exp": issued_at + int(TOKEN_LIFETIME.total_seconds()),
    })

    return jwt.encode(payload, signing_secret, algorithm=algorithm)


# =============================================================================
# Token Verification
# =============================================================================

def decode_session_token(
    token: str,
    signing_secret: str,
    now: Optional[Timestamp] = None,
    algorithm: str = DEFAULT_ALGORITHM,
) -> Dict[str, Any]:
    """
    Verify a session token and return its full payload.

    The payload includes ``iat`` and ``exp`` in addition to the identity
    claims. Expiry is checked against ``now`` with no leeway: a token is
    valid while ``now < exp``.

    Raises:
        VerificationFailure: If the token is malformed, tampered with,
            signed with another secret or algorithm, or expired
        SessionTokenError: If the signing secret is empty
    """
    _require_secret(signing_secret)

    if not token:
        raise VerificationFailure("No token provided")

    _require_canonical_encoding(token)

    try:
        payload = jwt.decode(
            token,
            signing_secret,
            algorithms=[algorithm],
            options={
                "verify_signature": True,
                # Expiry is checked below against the caller's clock
                "verify_exp": False,
                "verify_iat": False,
                "require": ["exp", "iat", "id", "email"],
            },
        )
    except InvalidTokenError as e:
        raise VerificationFailure(f"Invalid token: {e}") from e

    expires_at = payload.get("exp")
    if not isinstance(expires_at, int):
        raise VerificationFailure("Token expiration is not an integer timestamp")

    if _to_timestamp(now) >= expires_at:
        raise VerificationFailure("Token has expired", reason="expired")

    return payload


def verify_session_token(
    token: str,
    signing_secret: str,
    now: Optional[Timestamp] = None,
    algorithm: str = DEFAULT_ALGORITHM,
) -> TokenClaims:
    """
    Verify a session token and recover its identity claims.

    Returns:
        TokenClaims carried by the token

    Raises:
        VerificationFailure: If the token is not acceptable (see decode_session_token)
    """
    payload = decode_session_token(token, signing_secret, now=now, algorithm=algorithm)

    try:
        return TokenClaims(
            id=payload["id"],
            name=payload.get("name", ""),
            email=payload["email"],
        )
    except (KeyError, ValueError) as e:
        raise VerificationFailure(f"Token claims are malformed: {e}") from e


# =============================================================================
# Helper Functions
# =============================================================================

def extract_token_from_header(authorization: Optional[str]) -> str:
    """
    Extract Bearer token from Authorization header.

    Raises:
        HTTPException: If header is missing or not in 'Bearer <token>' form
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format. Expected: 'Bearer <token>'",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return parts[1]


def _require_secret(signing_secret: Optional[str]) -> None:
    if not signing_secret:
        raise SessionTokenError("Signing secret is not configured")


def _require_canonical_encoding(token: str) -> None:
    """
    Reject tokens whose segments are not canonical base64url.

    The decoder tolerates stray characters and non-zero padding bits, so two
    different strings can decode to the same bytes.
    """
    segments = token.split(".")
    if len(segments) != 3:
        raise VerificationFailure("Token must have three segments")

    for segment in segments:
        padded = segment + "=" * (-len(segment) % 4)
        try:
            raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        except (binascii.Error, ValueError) as e:
            raise VerificationFailure("Token segment is not valid base64url") from e
        if base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=") != segment:
            raise VerificationFailure("Token segment is not canonically encoded")


def _to_timestamp(now: Optional[Timestamp]) -> int:
    """Convert a datetime or POSIX time to whole seconds since the epoch."""
    if now is None:
        now = datetime.now(timezone.utc)
    if isinstance(now, datetime):
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return int(now.timestamp())
    return int(now)


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Dict[str, Any]:
    """
    FastAPI dependency to extract and verify the session token of a request.

    Usage in routes:
        @router.get("/me")
        async def me(user: dict = Depends(get_current_user)):
            return {"email": user["email"]}

    Returns:
        Decoded token payload (claims plus iat/exp)

    Raises:
        HTTPException: 401 if the token is missing or rejected
    """
    settings = request.app.state.settings
    token = extract_token_from_header(authorization)

    try:
        payload = decode_session_token(
            token,
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )
    except VerificationFailure as e:
        logger.warning(
            "Session token rejected",
            extra={"reason": e.reason, "path": request.url.path},
        )
        detail = "Token has expired" if e.reason == "expired" else "Invalid token"
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug("Session token verified", extra={"user_id": payload.get("id")})
    return payload


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Creation
    "build_token_claims",
    "issue_session_token",

    # Verification
    "decode_session_token",
    "verify_session_token",

    # Helpers
    "extract_token_from_header",
    "TOKEN_LIFETIME",

    # Dependencies
    "get_current_user",

    # Exceptions
    "SessionTokenError",
    "InvalidAssertion",
    "VerificationFailure",
]
