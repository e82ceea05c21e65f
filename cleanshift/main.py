import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .db import Base, engine
from .errors import ServiceError, StoreError
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  registers tables on Base.metadata
from .routes.assignments import router as assignments_router
from .routes.jobs import router as jobs_router
from .routes.me import router as me_router
from .routes.reports import router as reports_router
from .routes.sites import router as sites_router
from .routes.workers import router as workers_router


logger = structlog.get_logger(__name__)


def _sqlite_dir(url: str):
    # sqlite:///./var/dev.db -> ./var
    if not url.startswith("sqlite:///"):
        return None
    path = url[len("sqlite:///"):]
    if not path or path == ":memory:":
        return None
    return os.path.dirname(path) or None


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

    # Errors
    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, kind=exc.kind, detail=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(SQLAlchemyError)
    async def _store_error(request: Request, exc: SQLAlchemyError):
        logger.exception("store_error", path=request.url.path)
        err = StoreError("Database error")
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    # Routers
    app.include_router(me_router)
    app.include_router(jobs_router)
    app.include_router(reports_router)
    app.include_router(sites_router)
    app.include_router(workers_router)
    app.include_router(assignments_router)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        directory = _sqlite_dir(settings.database_url)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
            logger.info("tables_ready", tables=sorted(Base.metadata.tables))

    return app


app = create_app()
