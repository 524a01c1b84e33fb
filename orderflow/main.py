"""
Orderflow: FastAPI application entry point.
Lifespan: create DB tables → verify connectivity.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderflow import __version__
from orderflow.auth import block_writes_during_maintenance
from orderflow.config import settings
from orderflow.database import check_db_connectivity, engine
from orderflow.errors import OrderflowError, Unavailable, ValidationError
from orderflow.models import Base
from orderflow.routers import (
    admin,
    coupons,
    dashboard,
    discounts,
    favorites,
    health,
    inventory,
    loyalty,
    notifications,
    orders,
    payment_methods,
    restaurants,
    reviews,
    search,
    users,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan handler.
    1. Create all tables (idempotent).
    2. Verify DB connectivity.
    """
    logger.info("Starting Orderflow (env=%s)", settings.app_env)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/verified.")

    if not await check_db_connectivity():
        logger.error("Database connectivity check FAILED at startup.")
    else:
        logger.info("Database connectivity verified.")

    yield

    logger.info("Shutting down Orderflow.")
    await engine.dispose()


app = FastAPI(
    title="Orderflow",
    description="Ordering, coupons, loyalty, inventory and reviews for a food-delivery platform.",
    version=__version__,
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(admin.router)

# Everything else refuses writes from non-admins during maintenance
_guarded = [Depends(block_writes_during_maintenance)]
for module in (
    users, restaurants, orders, coupons, discounts, loyalty, inventory, reviews,
    notifications, favorites, search, dashboard, payment_methods,
):
    app.include_router(module.router, dependencies=_guarded)


# ── Exception handlers ───────────────────────────────────────────────────────


@app.exception_handler(OrderflowError)
async def orderflow_error_handler(request: Request, exc: OrderflowError) -> JSONResponse:
    """Translate service errors into the {success: false, message} envelope."""
    content = {"success": False, "message": exc.message}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    if exc.status_code >= 500 and not isinstance(exc, Unavailable):
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url, exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation failures become 400 with one message per field."""
    errors = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"] if p != "body")
        errors.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a generic error for any unhandled exception."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error"},
    )
