"""
Data Models Module

Pydantic models shared by the token issuer, the Google client and the
HTTP routes.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Identity Models
# ============================================================================

class IdentityAssertion(BaseModel):
    """Verified profile handed over by the identity provider after login."""
    model_config = ConfigDict(frozen=True)

    subject_id: str = Field(..., description="Opaque unique identifier of the external account")
    display_name: str = Field(..., description="Human-readable name, may be empty but must be present")
    emails: List[str] = Field(default_factory=list, description="Email addresses in provider order")


class TokenClaims(BaseModel):
    """Claims carried inside a session token."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Subject identifier copied from the assertion")
    name: str = Field(default="", description="Display name copied from the assertion")
    email: str = Field(..., description="Primary email address")


# ============================================================================
# Response Models
# ============================================================================

class CurrentUserResponse(BaseModel):
    """Response model for the token introspection endpoint."""
    id: str = Field(..., description="Subject identifier")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Primary email address")
    issued_at: int = Field(..., description="Issuance time (seconds since epoch)")
    expires_at: int = Field(..., description="Expiration time (seconds since epoch)")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
