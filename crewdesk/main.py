import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .db import Database
from .errors import ActionError, PersistenceError
from .logging import setup_logging, RequestIdMiddleware, structlog
from .schemas.common import fail, ok
from .services.activity import log_activity, SYSTEM_ACTOR
from .services.channels import ensure_system_channels
from .auth.router import router as auth_router
from .routes.users import router as users_router
from .routes.crews import router as crews_router
from .routes.channels import router as channels_router
from .routes.reports import router as reports_router
from .routes.activity import router as activity_router


logger = structlog.get_logger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid data."
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    msg = first.get("msg", "Invalid data.")
    return f"{field}: {msg}" if field else msg


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    setup_logging(settings.log_level)
    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.database = Database(settings.database_url)

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

    # Errors -> failure envelope
    @app.exception_handler(ActionError)
    async def _action_error(request: Request, exc: ActionError):
        if exc.status_code >= 500:
            logger.error("action_failed", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=fail(exc.message))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=fail(_validation_message(exc)))

    @app.exception_handler(SQLAlchemyError)
    async def _database_error(request: Request, exc: SQLAlchemyError):
        logger.error("database_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content=fail(PersistenceError.default_message))

    # Routers
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(crews_router)
    app.include_router(channels_router)
    app.include_router(reports_router)
    app.include_router(activity_router)

    @app.get("/healthz")
    def healthz():
        with app.state.database.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return ok({"status": "ok"})

    # Metrics
    if settings.metrics_enabled:
        Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        logger.info("startup", app=settings.app_name)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs(os.path.dirname(settings.database_url[len("sqlite:///"):]) or ".", exist_ok=True)
        if settings.auto_create_db:
            app.state.database.create_all()
            logger.info("tables_verified")
        db = app.state.database.session()
        try:
            ensure_system_channels(db)
            log_activity(db, "db-connection", SYSTEM_ACTOR)
        finally:
            db.close()

    @app.on_event("shutdown")
    def _shutdown():
        app.state.database.dispose()

    return app


app = create_app()
