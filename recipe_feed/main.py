"""
Recipe Feed API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Initialise DB connection pool (TiDB) and create tables if not present
  3. Connect to Redis (feed partitions)
  4. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from recipe_feed.config import settings
from recipe_feed.database import close_db, init_db
from recipe_feed.errors import FeedError
from recipe_feed.telemetry import LOG_FORMAT, setup_tracing, instrument_app
from recipe_feed.clients.redis_client import close_redis, init_redis
from recipe_feed.routers import activities, feed, follows, users

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Recipe Feed API (env=%s)", settings.environment)

    await init_db()
    await init_redis()

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await close_redis()
    await close_db()


app = FastAPI(
    title="Recipe Feed API",
    description=(
        "Follow graph + fan-out-on-write activity feed for recipes, "
        "collections and menus."
    ),
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(FeedError)
async def feed_error_handler(request: Request, exc: FeedError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(follows.router, prefix="/follow", tags=["Follow"])
app.include_router(activities.router, prefix="/activities", tags=["Activities"])
app.include_router(feed.router, prefix="/feed", tags=["Feed"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
