"""
Authentication Package

This package handles the Google login flow and the session tokens issued
after it.

Modules:
- routes: HTTP endpoints (/auth/google, the callback, /auth/me)
- google: Google OAuth client (authorization URL, code exchange, profile)
- session: Session JWT issuance and verification

The authentication flow:
1. Browser opens /auth/google and is redirected to Google
2. User signs in with Google
3. Google redirects back to the callback with an authorization code
4. The gateway exchanges the code, reads the profile and issues a session JWT
5. Client presents the JWT as a bearer token until it expires
"""

from .routes import build_auth_router

__all__ = [
    "build_auth_router",
]
