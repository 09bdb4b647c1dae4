"""PeerAssist Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .context import build_context
from .errors import MarketplaceError
from .logging_config import get_logger, setup_logging
from .rate_limit import limiter
from .routes import auth_router, tasks_router, users_router

logger = get_logger("main")

# Seconds to let queued emails/view counters finish on shutdown
SHUTDOWN_DRAIN_SECONDS = 10.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings = get_settings()
    setup_logging(settings.log_level, settings.debug)
    if getattr(app.state, "context", None) is None:
        app.state.context = build_context(settings)
    logger.info(
        f"Starting PeerAssist Backend API (debug={settings.debug}, "
        f"storage={settings.storage_backend})"
    )
    yield
    # Shutdown
    await app.state.context.dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    logger.info("Shutting down PeerAssist Backend API")


app = FastAPI(
    title="PeerAssist Backend API",
    description="Peer task marketplace: post, apply, select and complete small jobs",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    """Render domain errors as ``{"detail": ...}`` with their status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing input is a 400."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(tasks_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "peerassist-backend",
        "version": "0.1.0",
        "status": "ok",
    }


@app.get("/health")
async def health(request: Request):
    """Detailed health check with a real store round-trip."""
    ctx = request.app.state.context
    store_status = "connected"
    try:
        await ctx.tasks.check_store()
    except MarketplaceError as e:
        store_status = f"error: {e.detail[:50]}"

    return {
        "status": "healthy" if store_status == "connected" else "degraded",
        "storage": ctx.settings.storage_backend,
        "database": store_status,
        "background_jobs": ctx.dispatcher.pending,
    }
