import os
from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import structlog

from .config import settings
from .db import Base, engine
from .deps import get_store, uses_blob_storage
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  registers tables on Base.metadata
from .routes.reports import router as reports_router
from .routes.scans import router as scans_router
from .routes.sites import router as sites_router
from .services.errors import PatrolError
from .sheets.tables import ensure_all_tables

logger = structlog.get_logger(__name__)


async def patrol_error_handler(request: Request, exc: PatrolError):
    if exc.status_code >= 500:
        logger.warning("request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "retryable": exc.retryable},
    )


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(PatrolError, patrol_error_handler)

    # Routers
    app.include_router(scans_router)
    app.include_router(sites_router)
    app.include_router(reports_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # Photos and QR images written by the local storage provider
    if not uses_blob_storage():
        app.mount("/files/local", StaticFiles(directory=settings.local_storage_dir, check_dir=False), name="files")

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        logger.info("startup", store=settings.store_provider, storage=settings.storage_provider)
        if settings.store_provider == "sql":
            # Ensure local SQLite directory exists
            if settings.database_url.startswith("sqlite:///./"):
                os.makedirs("var", exist_ok=True)
            if settings.auto_create_db:
                Base.metadata.create_all(bind=engine)
        ensure_all_tables(get_store())

    return app


app = create_app()
