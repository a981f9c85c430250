"""
Invoice Manager API - Main Application

Proxies HubSpot companies, deals and invoices for the invoice manager card
and runs the bad-debt actions against them.

SECURITY FEATURES:
- Conditional API docs (disabled in production by default)
- Logging never includes tokens, authorization codes or OAuth state values
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from invoice_manager import __version__
from invoice_manager.api.router import api_router
from invoice_manager.config import settings
from invoice_manager.core.sentry import init_sentry
from invoice_manager.database import init_db
from invoice_manager.exceptions import CRMException, create_exception_handlers
from invoice_manager.middleware.correlation import CorrelationIdMiddleware, CorrelationLogFilter
from invoice_manager.schemas.auth import HealthResponse
from invoice_manager.services.hubspot_oauth import close_oauth_manager
# Import models to register them with SQLAlchemy metadata before init_db()
from invoice_manager.models import HubSpotOAuthToken  # noqa: F401


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationLogFilter())
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] [portal=%(portal_id)s] %(message)s"
    ))
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        handlers=[handler],
    )
    # SECURITY: httpx logs request URLs at INFO; the token-info URL embeds the access token
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Invoice Manager API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    init_sentry()
    if not settings.hubspot_oauth_configured:
        logger.warning("HUBSPOT_CLIENT_ID/HUBSPOT_CLIENT_SECRET not set - OAuth flow disabled")
    if settings.TOKEN_STORE_BACKEND == "database":
        # No fallback: startup fails if the token table cannot be created
        await init_db()
        logger.info("Database initialized successfully")
    yield
    logger.info("Shutting down Invoice Manager API...")
    await close_oauth_manager()


# SECURITY: Conditionally enable docs based on settings
docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="Invoice Manager API",
    description="HubSpot invoice manager: company overview and bad-debt actions",
    version=__version__,
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

# CORS middleware
allowed_origins = [settings.FRONTEND_URL]
if not settings.is_production:
    allowed_origins.extend([
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",  # HubSpot UI extension local dev
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(CRMException, handlers["crm"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

app.include_router(api_router)


@app.get("/health")
async def health_check() -> HealthResponse:
    """Health check endpoint. Reports configuration only; makes no HubSpot calls."""
    return HealthResponse(
        ok=True,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        environment=settings.ENVIRONMENT,
        oauth_configured=settings.hubspot_oauth_configured,
        private_app_token_configured=bool(settings.HS_PRIVATE_APP_TOKEN),
        token_store=settings.TOKEN_STORE_BACKEND,
    )


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "invoice_manager.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
