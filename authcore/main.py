# authcore/main.py (async version)

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from authcore.adapters.configuration.config import Settings, settings as default_settings
from authcore.adapters.outbound.persistence.memory_store import MemoryStore
from authcore.runtime import AuthRuntime

# ─── UNIQUE LOGGING CONFIGURATION ─────────────────────────────────────────────────
level = logging.DEBUG if default_settings.DEBUG else getattr(logging, default_settings.LOG_LEVEL, logging.INFO)
logging.basicConfig(
    level=level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Async context manager to handle startup and shutdown events.
    """
    runtime: AuthRuntime = app.state.runtime
    logger.info("Application starting up...")

    if runtime.uses_database:
        from authcore.adapters.outbound.persistence.database import Base, get_engine
        from authcore.adapters.outbound.persistence import models  # noqa: F401  registers tables

        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    app.state.cleanup_task = asyncio.create_task(
        periodic_cleanup(runtime, runtime.settings.SESSION_CLEANUP_INTERVAL_SECONDS)
    )

    yield

    logger.info("Application shutting down...")
    app.state.cleanup_task.cancel()
    try:
        await app.state.cleanup_task
    except asyncio.CancelledError:
        pass
    await runtime.shutdown()


def create_app(settings: Optional[Settings] = None, store: Optional[MemoryStore] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use instead of the process-wide ones
        store: In-memory store to run against (forces the memory backend)
    """
    runtime = AuthRuntime(settings=settings, store=store)
    app_settings = runtime.settings

    app = FastAPI(
        title="AuthCore",
        description="Session and authentication core",
        version="1.0.0",
        debug=app_settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    # Middlewares (the last one added runs first)
    from authcore.shared.middleware import (
        AsyncExceptionMiddleware,
        AsyncRequestLoggingMiddleware,
        AsyncRateLimitingMiddleware,
        AsyncRoutingGuardMiddleware,
    )

    app.add_middleware(
        AsyncRoutingGuardMiddleware,
        validation_client=runtime.validation_client,
        policy=runtime.routing_policy,
        attempts=app_settings.SESSION_VALIDATION_ATTEMPTS,
        retry_delay_seconds=app_settings.SESSION_VALIDATION_RETRY_DELAY_MS / 1000,
        sign_in_path=app_settings.SIGN_IN_PATH,
    )
    app.add_middleware(
        AsyncRateLimitingMiddleware,
        limiter=runtime.rate_limiter,
        window_seconds=app_settings.RATE_LIMIT_WINDOW_SECONDS,
        validation_key=runtime.validation_key,
    )
    app.add_middleware(AsyncRequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AsyncExceptionMiddleware)

    # Routers
    from authcore.adapters.inbound.api.v1.router import api_router

    app.include_router(api_router, prefix="/api")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "message": "Validation failed",
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    @app.get("/", include_in_schema=False)
    async def redirect_to_docs():
        return RedirectResponse(url="/docs")

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"status": "ok", "store": "database" if runtime.uses_database else "memory"}

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        schema_doc = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )

        # Validation errors are answered with 400, not 422
        for schema in ("HTTPValidationError", "ValidationError"):
            schema_doc.get("components", {}).get("schemas", {}).pop(schema, None)

        for path in schema_doc.get("paths", {}).values():
            for op in path.values():
                op.get("responses", {}).pop("422", None)

        app.openapi_schema = schema_doc
        return schema_doc

    app.openapi = custom_openapi
    return app


# ── EXPIRED SESSION CLEANUP TASK ──────────────────────────────────────────────
async def cleanup_expired_sessions(runtime: AuthRuntime) -> int:
    """Deletes sessions whose access token has expired."""
    deleted = await runtime.lifecycle.purge_expired()
    logger.info(f"Cleaned up {deleted} expired sessions")
    return deleted


async def periodic_cleanup(runtime: AuthRuntime, interval_seconds: int):
    """Background task to periodically clean up expired sessions."""
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            await cleanup_expired_sessions(runtime)
        except asyncio.CancelledError:
            logger.info("Session cleanup task cancelled")
            break
        except Exception as e:
            logger.exception(f"Error in cleanup_expired_sessions: {e}")


app = create_app()
