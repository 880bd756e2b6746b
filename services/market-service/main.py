"""Main application entry point."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import redis
import httpx
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from config import REDIS_URL, API_VERSION, RATE_LIMIT_PER_MINUTE_IP, RATE_LIMIT_PER_MINUTE_USER
from database import init_db, engine
from errors import register_exception_handlers
from monitoring import init_profiling
from logging_config import setup_logging
from routers import (
    auth as auth_router,
    cart,
    categories,
    notifications,
    orders,
    products,
    profile,
    sub_categories
)
from redis_rate_limiter import RedisRateLimiter

# Setup structured logging
setup_logging()
logger = logging.getLogger(__name__)


# Sync client shared by the rate limiter, sessions and the cart cache
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info("Starting application...")

    init_db()

    RedisInstrumentor().instrument(redis_client=redis_client)
    app.state.redis_client = redis_client
    logger.info("Redis client initialized")

    # Shared client for the payment provider, email verifier, push and mail relays
    http_client = httpx.AsyncClient(timeout=30.0)
    HTTPXClientInstrumentor().instrument_client(http_client)
    app.state.http_client = http_client
    logger.info("HTTP client initialized")

    init_profiling()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    await http_client.aclose()
    redis_client.close()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Global Market Service",
    version=API_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    RedisRateLimiter,
    redis_client=redis_client,
    requests_per_minute_ip=RATE_LIMIT_PER_MINUTE_IP,
    requests_per_minute_user=RATE_LIMIT_PER_MINUTE_USER
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

FastAPIInstrumentor.instrument_app(app)
SQLAlchemyInstrumentor().instrument(engine=engine)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(auth_router.router)
app.include_router(profile.router)
app.include_router(categories.router)
app.include_router(sub_categories.router)
app.include_router(products.router)
app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(notifications.router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
