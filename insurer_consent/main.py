from fastapi import FastAPI
from insurer_consent.core.config import settings
from insurer_consent.core.logging import setup_logging
from insurer_consent.api.routers import authorisations, consents_create, consents_get, consents_revoke, health
from insurer_consent.db.init_db import init_db
from insurer_consent.housekeeping.expiry import ExpirySweeper
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from insurer_consent.core.errors import (
    ConsentServiceError,
    consent_error_handler,
    http_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)
from insurer_consent.middleware.correlation import CorrelationMiddleware
from insurer_consent.middleware.idempotency import IdempotencyMiddleware, IdempotentReplay, idempotent_replay_handler
from insurer_consent.core.metrics import router as metrics_router, MetricsMiddleware
from insurer_consent.security.jwt import build_key_cache
from insurer_consent.utils.idempotency import build_idempotency_store


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, version="0.1.0")
    setup_logging()

    # Shared per-process collaborators; tests swap them on app.state
    app.state.idempotency_store = build_idempotency_store(settings)
    app.state.key_cache = build_key_cache()
    app.state.sweeper = None

    @app.on_event("startup")
    async def on_startup():
        if not settings.USE_ALEMBIC:
            init_db()
        if settings.EXPIRY_SWEEP_ENABLED:
            app.state.sweeper = ExpirySweeper(interval_seconds=settings.EXPIRY_SWEEP_SECONDS)
            await app.state.sweeper.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        if app.state.sweeper:
            await app.state.sweeper.stop()
            app.state.sweeper = None

    # Middleware: innermost first. Idempotency captures the route response,
    # correlation adds X-Request-ID, metrics times the whole request.
    app.add_middleware(IdempotencyMiddleware, cacheable_status_codes=settings.IDEMPOTENCY_CACHEABLE_STATUS_CODES)
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(MetricsMiddleware, exclude_routes=settings.METRICS_EXCLUDE_ROUTES)

    # Exception handlers (uniform error JSON)
    app.add_exception_handler(ConsentServiceError, consent_error_handler)
    app.add_exception_handler(IdempotentReplay, idempotent_replay_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(consents_create.router)
    app.include_router(consents_get.router)
    app.include_router(consents_revoke.router)
    app.include_router(authorisations.router)

    # Conditionally expose /metrics
    if settings.METRICS_ENABLED:
        app.include_router(metrics_router)

    # Root
    @app.get("/")
    def root():
        return {"service": settings.APP_NAME, "env": settings.APP_ENV}

    return app


app = create_app()
