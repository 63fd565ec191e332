"""
Yarrow Triage API - Main Application

SECURITY FEATURES:
- Conditional API docs (disabled in production by default)
- Structured logging without sensitive data
- Production-hardened configuration
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from yarrow.api.v2.router import api_router
from yarrow.config import settings
from yarrow.database import init_db
from yarrow.exceptions import YarrowException, create_exception_handlers
from yarrow.middleware import CorrelationIdMiddleware, CorrelationLogFilter
from yarrow.services.ai_gateway import AIGateway
from yarrow.services.conversation_service import TurnLocks
from yarrow.services.escalation_webhook import EscalationWebhookService

# Configure secure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] [ticket=%(ticket_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(CorrelationLogFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Yarrow Triage API...")
    logger.info("Environment: %s", settings.ENVIRONMENT)
    # SECURITY: Don't log full database URL, just the driver
    if settings.DATABASE_URL:
        logger.info("Database driver: %s", settings.DATABASE_URL.split("://", 1)[0])
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # SECURITY: Don't log full exception details which may contain credentials
        logger.error("Database initialization failed: %s", type(e).__name__)
        logger.warning("App starting without database - some features may not work")

    app.state.ai_gateway = AIGateway()
    app.state.escalation_notifier = EscalationWebhookService()
    app.state.turn_locks = TurnLocks()
    if not app.state.ai_gateway.is_configured:
        logger.warning("OPENAI_API_KEY not set - every turn will use the fallback reply")
    yield
    # Shutdown
    logger.info("Shutting down Yarrow Triage API...")
    await app.state.escalation_notifier.drain()
    await app.state.ai_gateway.close()


# SECURITY: Conditionally enable docs based on settings
docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="Yarrow Triage API",
    description="Tenant maintenance ticket conversations with AI troubleshooting",
    version="2.0.0",
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

# CORS middleware
# SECURITY: Restrict origins to known frontend URLs
allowed_origins = [settings.FRONTEND_URL]

if not settings.is_production:
    allowed_origins.extend([
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",  # Alternative dev port
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

# RFC 7807 error responses
handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(YarrowException, handlers["yarrow"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

# Include routers
app.include_router(api_router, prefix="/api/v2")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "Yarrow Triage API",
        "version": "2.0.0",
        "health": "/health",
    }
    # Only include docs link if enabled
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    gateway = getattr(app.state, "ai_gateway", None)
    return {
        "status": "healthy",
        "version": "2.0.0",
        "environment": settings.ENVIRONMENT,
        "reasoning_configured": bool(gateway and gateway.is_configured),
        "escalation_webhook_configured": bool(settings.ESCALATION_WEBHOOK_URL),
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "yarrow.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
