"""
Property Maintenance Intake - Main Application
================================================

Multi-tenant maintenance ticketing for property managers. Tenants text a
property's number, and the request is triaged into a ticket.

Modules:
- Intake: Twilio webhook, routing, tenant resolution, ticket creation
- Triage: Keyword and vision classification of requests
- Maintenance: Properties, tenants and tickets
- Organisations: Accounts, numbers, invites and access requests

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and business rules
- Infrastructure: Database, Twilio, LLM
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

# Configuration and Core
from src.config import settings
from src.core import ApplicationException, ConfigurationException

# Infrastructure
from src.infrastructure.database import close_database, create_tables, get_engine, init_database
from src.infrastructure.telephony import TwilioTelephonyClient

# Module services
from src.intake.infrastructure import TwilioSignatureVerifier
from src.shared.infrastructure.media import ProxyMediaStore
from src.shared.infrastructure.ratelimit import InMemoryRateLimiter
from src.triage.application import TriageService
from src.triage.infrastructure import HttpImageFetcher, LLMClientAdapter

# Module Routers
from src.intake.interfaces import intake_router
from src.maintenance.interfaces import maintenance_router
from src.organisations.interfaces import organisations_router
from src.triage.interfaces import triage_router

# Logging and API plumbing
from src.shared.infrastructure.logging import setup_logging, get_logger
from src.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
    request_validation_exception_handler,
)

logger = get_logger(__name__)


def build_telephony() -> Optional[TwilioTelephonyClient]:
    """Twilio client, or None when credentials are missing."""
    try:
        return TwilioTelephonyClient()
    except ConfigurationException as e:
        logger.warning(f"Telephony not available: {e.message}")
        return None


def build_triage_service(telephony: Optional[TwilioTelephonyClient]) -> TriageService:
    """Keyword triage always; vision triage when an LLM is configured."""
    llm = None
    if settings.openai_api_key or settings.mock_llm:
        try:
            llm = LLMClientAdapter(settings.openai_api_key)
        except ConfigurationException as e:
            logger.warning(f"Vision triage disabled: {e.message}")

    fetcher = HttpImageFetcher(twilio_auth=telephony.credentials if telephony else None)
    return TriageService(llm_client=llm, image_fetcher=fetcher)


def configure_state(app: FastAPI) -> None:
    """Attach the shared singletons read by request dependencies."""
    telephony = build_telephony()
    app.state.settings = settings
    app.state.telephony = telephony
    app.state.triage_service = build_triage_service(telephony)
    app.state.rate_limiter = InMemoryRateLimiter(
        limit=settings.webhook_rate_limit,
        window_seconds=settings.webhook_rate_window_seconds
    )
    app.state.media_store = ProxyMediaStore()
    app.state.signature_verifier = TwilioSignatureVerifier()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database
    3. Create database tables
    4. Build telephony, triage, rate limiter and media store

    SHUTDOWN:
    1. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Maintenance Intake", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Note: If database is not available, the server will start but
    # database-dependent endpoints will fail
    logger.info("Creating database tables")
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    configure_state(app)

    logger.info("Maintenance Intake started successfully", extra={
        "telephony": app.state.telephony is not None,
        "vision_triage": app.state.triage_service.vision_enabled
    })

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Maintenance Intake")
    await close_database()
    logger.info("Maintenance Intake shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Maintenance Intake API",
    description="""
    ## SMS-first Maintenance Ticketing for Property Managers

    Tenants text a property's number. Each message is routed to the right
    organisation and property, triaged, and filed as a ticket. The tenant
    gets a confirmation SMS with the ticket reference.

    ---

    ### 📥 Intake
    - `POST /api/webhooks/twilio` - Twilio messaging webhook (signed)
    - `GET /api/twilio/media` - Authenticated MMS media proxy

    ### 🤖 Triage
    - `POST /api/triage/analyze` - Preview keyword + vision classification

    ### 🏢 Maintenance
    - `/api/properties` - Properties, with tenant spreadsheet import
    - `/api/tenants` - Tenant search, edit and reassignment
    - `/api/tickets` - Ticket listing and status updates

    ### 👥 Organisations
    - `/api/orgs` - Organisations and memberships
    - `/api/orgs/{id}/twilio/*` - Number attach, purchase and routing
    - `/api/orgs/{id}/invites`, `/api/invites/accept` - Staff invites
    - `/api/orgs/{slug}/access-requests` - Requests to join

    ---

    ### 🔐 Identity
    Requests arrive through a gateway that sets `X-User-Id`, `X-User-Email`
    and `X-Org-Id` (active organisation). Roles come from memberships.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(intake_router)
app.include_router(triage_router)
app.include_router(maintenance_router)
app.include_router(organisations_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "database": "connected",
                        "telephony": "configured",
                        "vision": "available"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns service health status including:
    - Database connectivity
    - Twilio configuration
    - Vision triage availability
    """
    checks = {
        "database": "connected",
        "telephony": "configured" if getattr(request.app.state, "telephony", None) else "not_configured",
        "vision": "not_configured"
    }

    triage = getattr(request.app.state, "triage_service", None)
    if triage is not None and triage.vision_enabled:
        checks["vision"] = "available"

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = f"error: {type(e).__name__}"

    return {
        "status": "healthy" if checks["database"] == "connected" else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Maintenance Intake",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "intake": {"prefix": "/api/webhooks", "endpoints": ["POST /api/webhooks/twilio"]},
            "triage": {"prefix": "/api/triage", "endpoints": ["POST /api/triage/analyze"]},
            "maintenance": {"prefix": "/api", "resources": ["properties", "tenants", "tickets"]},
            "organisations": {"prefix": "/api/orgs", "resources": ["numbers", "invites", "access-requests"]}
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
