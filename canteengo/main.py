"""
CanteenGo — FastAPI application entrypoint
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from canteengo.core.config import get_settings
from canteengo.core.redis_client import close_redis
from canteengo.db.database import engine, Base
from canteengo.middleware.auth import JWTAuthMiddleware
from canteengo.middleware.idempotency import IdempotencyMiddleware
from canteengo.api import auth, canteens, health, orders, realtime, vendor
import canteengo.models  # noqa: F401  (registers tables on Base.metadata)

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables (Alembic handles migrations in production)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Shutdown
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="CanteenGo",
    description="Campus canteen ordering: pickup codes, vendor-driven order lifecycle, realtime order updates.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production via env var
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: Auth sets request.state.user before Idempotency scopes keys by it
app.add_middleware(IdempotencyMiddleware)
app.add_middleware(JWTAuthMiddleware)

# ── Prometheus Metrics ────────────────────────────────────────────────────────
if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(auth.router)
app.include_router(canteens.router)
app.include_router(canteens.menu_router)
app.include_router(orders.router)
app.include_router(vendor.router)
app.include_router(realtime.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}
