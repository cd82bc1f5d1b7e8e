"""
Configuration module for the Login Gateway.

This module uses Pydantic Settings to load and validate environment variables
for Google OAuth, session JWT signing, and the HTTP server.

Environment variables are loaded from .env file or system environment.
The resulting Settings object is frozen: it is built once at startup and
passed explicitly to the parts of the application that need it.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationMissing(Exception):
    """
    Raised when required configuration is absent or invalid at startup.

    Attributes:
        missing: Names of the environment variables that failed validation.
    """

    def __init__(self, missing: List[str], message: Optional[str] = None):
        self.missing = missing
        super().__init__(
            message or f"Missing or invalid configuration: {', '.join(missing)}"
        )


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All configuration for Google OAuth, session JWT signing and the
    HTTP listener is defined here.
    """

    # =========================================================================
    # Google OAuth Configuration
    # =========================================================================

    GOOGLE_CLIENT_ID: str = Field(
        ...,
        description="OAuth client ID issued by the Google Cloud console",
        min_length=1,
    )

    GOOGLE_CLIENT_SECRET: str = Field(
        ...,
        description="OAuth client secret issued by the Google Cloud console",
        min_length=1,
    )

    GOOGLE_CALLBACK_PATH: str = Field(
        default="/auth/google/callback",
        description="Path Google redirects back to after consent",
    )

    PUBLIC_BASE_URL: Optional[str] = Field(
        None,
        description="Externally visible base URL (e.g., https://login.example.com); "
        "derived from the request when unset",
    )

    # =========================================================================
    # Session JWT Configuration
    # =========================================================================

    JWT_SECRET: str = Field(
        ...,
        description="Secret key for signing session JWTs (must be cryptographically secure)",
        min_length=32,
    )

    JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm (HS256, HS384 or HS512)",
    )

    STATE_COOKIE_SECRET: Optional[str] = Field(
        None,
        description="Secret for the signed OAuth state cookie (defaults to JWT_SECRET)",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the server",
    )

    PORT: int = Field(
        default=3000,
        description="Port to bind the server",
        ge=1,
        le=65535,
    )

    STATIC_DIR: str = Field(
        default="public",
        description="Directory of static files served at /",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def state_cookie_secret(self) -> str:
        """Secret used to sign the OAuth state cookie."""
        return self.STATE_COOKIE_SECRET or self.JWT_SECRET

    @property
    def public_base_url(self) -> Optional[str]:
        """PUBLIC_BASE_URL without a trailing slash, or None."""
        if not self.PUBLIC_BASE_URL:
            return None
        return self.PUBLIC_BASE_URL.rstrip("/")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "JWT_SECRET")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject values made only of whitespace."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("GOOGLE_CALLBACK_PATH")
    @classmethod
    def validate_callback_path(cls, v: str) -> str:
        """
        Validate the callback path is an absolute URL path.

        Raises:
            ValueError: If the path does not start with '/'
        """
        if not v.startswith("/"):
            raise ValueError(f"Callback path must start with '/', got: {v}")
        return v

    @field_validator("JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate JWT algorithm is one of the supported HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


# =============================================================================
# Loading
# =============================================================================

def load_settings(**overrides) -> Settings:
    """
    Build a Settings instance, translating validation failures.

    Keyword overrides take precedence over the environment, which is
    convenient in tests.

    Returns:
        Validated, frozen Settings.

    Raises:
        ConfigurationMissing: If a required variable is absent or invalid.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        missing = sorted({
            str(error["loc"][0]) for error in e.errors() if error.get("loc")
        })
        raise ConfigurationMissing(missing) from e


@lru_cache()
def get_settings() -> Settings:
    """
    Get or create the process-wide Settings instance.

    Cached so the environment is read only once during the application
    lifecycle.

    Raises:
        ConfigurationMissing: If required environment variables are missing.
    """
    return load_settings()
