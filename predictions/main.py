import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from predictions.config import Settings, get_settings
from predictions.errors import register_exception_handlers
from predictions.middlewares.body_limit import BodySizeLimitMiddleware
from predictions.middlewares.logging import JsonLoggingMiddleware
from predictions.middlewares.rate_limit import (
    FixedWindowRateLimiter,
    RateLimitMiddleware,
)
from predictions.middlewares.security_headers import SecurityHeadersMiddleware
from predictions.models import HealthResponse
from predictions.repositories.prediction import make_prediction_repository
from predictions.routers.prediction import make_prediction_router
from predictions.services.prediction import make_prediction_service

DEFAULT_DB = "predictions"

log = logging.getLogger("predictions")


# ------------------ App Factory ------------------
def create_app(
    settings: Settings,
    client_factory: Callable[..., AsyncIOMotorClient] = AsyncIOMotorClient,
) -> FastAPI:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ---------- STARTUP ----------
        client = client_factory(
            settings.MONGO_URI,
            serverSelectionTimeoutMS=settings.MONGO_TIMEOUT_MS,
            tz_aware=True,
        )
        try:
            await client.admin.command("ping")
        except PyMongoError as e:
            log.critical(f"MongoDB connection error: {e}")
            client.close()
            raise
        log.info("MongoDB connected")

        if settings.MONGO_DB:
            db = client[settings.MONGO_DB]
        else:
            db = client.get_default_database(default=DEFAULT_DB)
        app.state.mongo_client = client

        prediction_repo = make_prediction_repository(db[settings.MONGO_COLLECTION])
        await prediction_repo.ensure_indexes()
        prediction_service = make_prediction_service(
            prediction_repository=prediction_repo,
            admin_key=settings.admin_key,
        )
        if not prediction_service.delete_guarded:
            log.warning("ADMIN_KEY not set: DELETE /api/predictions is unguarded")

        app.include_router(make_prediction_router(prediction_service))

        try:
            yield
        finally:
            # ---------- SHUTDOWN ----------
            client.close()
            log.info("MongoDB connection closed")

    app = FastAPI(title="Predictions Service", lifespan=lifespan)
    register_exception_handlers(app)

    # Added innermost first; the last one wraps everything
    app.add_middleware(
        RateLimitMiddleware,
        limiter=FixedWindowRateLimiter(
            max_requests=settings.RATE_LIMIT_MAX,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        ),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "x-admin-key"],
    )
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.MAX_BODY_BYTES)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(JsonLoggingMiddleware)

    @app.get("/api/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(time=datetime.now(timezone.utc))

    return app


# ------------------ Uvicorn Runner ------------------
def run_uvicorn(app: FastAPI, settings: Settings):
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        lifespan="on",
    )


# ------------------ Main ------------------
def main():
    try:
        settings = get_settings()
    except ValidationError as e:
        logging.basicConfig(format="%(asctime)s [%(levelname)s] %(message)s")
        log.critical(f"Invalid configuration, MONGO_URI must be set: {e}")
        sys.exit(1)

    app = create_app(settings)
    log.info(f"Starting server on {settings.HOST}:{settings.PORT}")
    run_uvicorn(app, settings)


if __name__ == "__main__":
    main()
