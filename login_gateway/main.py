"""
FastAPI Login Gateway Application Factory
=========================================

Entry point for the service that signs users in with Google and hands out
stateless session JWTs.

Routes:
    - /auth/google              : Redirect to Google's consent screen
    - GOOGLE_CALLBACK_PATH      : OAuth callback, renders the session token
    - /auth/me                  : Claims of a bearer token
    - /health                   : Health check endpoint
    - /                         : Static files from STATIC_DIR

Environment Variables Required:
    - GOOGLE_CLIENT_ID: OAuth client ID
    - GOOGLE_CLIENT_SECRET: OAuth client secret
    - JWT_SECRET: Secret for signing session JWTs

Running the Service:
    Development:
        login-gateway
        python -m login_gateway

    With uvicorn directly:
        uvicorn --factory login_gateway.main:create_app --reload --port 3000

    With custom log level:
        LOG_LEVEL=DEBUG login-gateway
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from . import __version__
from .auth import build_auth_router
from .config import ConfigurationMissing, Settings, get_settings
from .models import HealthResponse

logger = logging.getLogger("login_gateway.main")

SERVICE_NAME = "login-gateway"
STATE_COOKIE_NAME = "login_gateway_state"
STATE_COOKIE_MAX_AGE = 600


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Create the shared httpx client used to talk to Google
          (unless one was injected beforehand)

    Shutdown:
        - Close the httpx client if it was created here
    """
    settings: Settings = app.state.settings

    owns_client = app.state.http_client is None
    if owns_client:
        app.state.http_client = httpx.AsyncClient()

    logger.info(
        "Starting login gateway",
        extra={
            "callback_path": settings.GOOGLE_CALLBACK_PATH,
            "jwt_algorithm": settings.JWT_ALGORITHM,
        }
    )

    yield

    logger.info("Shutting down login gateway")

    if owns_client:
        await app.state.http_client.aclose()
        app.state.http_client = None


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Signed session cookie for the OAuth state
        - Authentication routes
        - Health check and static files
        - Exception handlers

    Args:
        settings: Explicit settings; loaded from the environment when omitted

    Raises:
        ConfigurationMissing: If settings are loaded and required values are absent
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Login Gateway",
        description="Google sign-in that issues stateless session JWTs",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.http_client = None

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.state_cookie_secret,
        session_cookie=STATE_COOKIE_NAME,
        max_age=STATE_COOKIE_MAX_AGE,
        same_site="lax",
    )

    app.include_router(build_auth_router(settings))

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="ok", service=SERVICE_NAME, version=__version__)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None
            }
        )

    # Mounted last: a mount at "/" matches every path
    static_dir = Path(settings.STATIC_DIR)
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    else:
        logger.debug(f"Static directory {static_dir} not found, not serving static files")

    return app


def main() -> None:
    """
    Process entry point.

    Loads configuration and serves the application with uvicorn. Exits with
    status 1 when required configuration is missing.
    """
    try:
        settings = get_settings()
    except ConfigurationMissing as e:
        setup_logging()
        logger.error(
            f"Refusing to start: {e}. Check your environment or .env file.",
            extra={"missing": e.missing}
        )
        sys.exit(1)

    setup_logging(settings.LOG_LEVEL)

    logger.info(f"Server is live at http://{settings.HOST}:{settings.PORT}")

    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
