"""
FastAPI Application Entry Point.
Initializes the FastAPI app with logging, middleware, CORS, and routes.
"""
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from app.config import settings
from app.core.cache import cache
from app.core.database import AsyncSessionLocal, engine
from app.core.websocket import connection_manager

logger = logging.getLogger(__name__)


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging() -> None:
    """Apply LOG_LEVEL and LOG_FORMAT to the root logger."""
    handler = logging.StreamHandler()
    if settings.log_format == "json":
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

    logging.basicConfig(level=settings.log_level.upper(), handlers=[handler], force=True)


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    await cache.connect()
    logger.info(f"Started ({settings.environment}); ephemeral store: {cache.backend}, presence policy: {settings.presence_policy}")
    yield
    # Shutdown
    await cache.disconnect()
    await engine.dispose()


from app.api.v1 import messages, conversations, users, presence, typing_indicators

# Initialize FastAPI application
app = FastAPI(
    title="Chat Sync Server",
    description="Self-hosted chat synchronization service: conversations, messages, reactions, typing and presence",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Add rate limiter state and error handler
app.state.limiter = messages.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# CORS Middleware
# Socket.IO handles its own CORS via cors_allowed_origins
cors_origins = settings.get_allowed_origins_list()
logger.info(f"CORS allowed origins: {cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health Check Endpoints
@app.get("/health", tags=["Health"])
async def health_check():
    """Basic health check endpoint."""
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "environment": settings.environment,
        }
    )


@app.get("/health/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness check endpoint.
    Verifies database and ephemeral store connectivity.
    """
    checks = {
        "database": False,
        "ephemeral_store": False,
        "ephemeral_backend": cache.backend,
        "live_connections": len(connection_manager.connections),
    }

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            checks["database"] = True
    except Exception as e:
        logger.warning(f"Readiness: database check failed: {e}")

    try:
        checks["ephemeral_store"] = await cache.ping()
    except Exception as e:
        logger.warning(f"Readiness: ephemeral store check failed: {e}")

    all_healthy = checks["database"] and checks["ephemeral_store"]
    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={
            "status": "ready" if all_healthy else "not ready",
            "checks": checks,
        }
    )


# Include API routers
app.include_router(
    users.router,
    prefix="/api/v1/users",
    tags=["Users"]
)

app.include_router(
    conversations.router,
    prefix="/api/v1/conversations",
    tags=["Conversations"]
)

app.include_router(
    messages.router,
    prefix="/api/v1/messages",
    tags=["Messages"]
)

app.include_router(
    presence.router,
    prefix="/api/v1/presence",
    tags=["Presence"]
)

app.include_router(
    typing_indicators.router,
    prefix="/api/v1/typing",
    tags=["Typing"]
)

# Save reference to FastAPI app (for testing)
fastapi_app = app

# Socket.IO wraps the FastAPI app: /socket.io/* goes to live queries, everything else to FastAPI
app = connection_manager.get_asgi_app(fastapi_app)
