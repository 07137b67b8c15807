"""UploadFlow - Main FastAPI Application

User-contributed uploads with a publish lifecycle, a content-addressed
attachment store and live/webhook notifications.

This module wires together:
- API routers (auth, uploads, live feed, observability)
- Middleware (request ID correlation, CORS)
- Exception handlers mapping AppError onto {"message", "code"}
- The inbound SMTP receiver, started on the API event loop when enabled
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .auth.router import router as auth_router
from .config import settings
from .database import get_db_session, init_db
from .dependencies import get_fanout, get_storage
from .errors import AppError
from .infrastructure.ingest.smtp_handler import UploadFlowSMTPHandler, start_smtp_server
from .notifications.router import router as notifications_router
from .observability.logging_config import configure_logging
from .observability.middleware import RequestIDMiddleware
from .observability.router import router as observability_router
from .uploads.router import router as uploads_router

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, start the SMTP receiver; on shutdown stop it and
    let pending notifications finish."""
    logger.info(f"UploadFlow API starting up (environment={settings.ENVIRONMENT})")
    init_db()

    smtp_server = None
    if settings.SMTP_ENABLED:
        handler = UploadFlowSMTPHandler(
            get_db_session,
            get_storage(),
            get_fanout(),
            accepted_recipients=settings.accepted_recipients,
        )
        smtp_server = await start_smtp_server(
            handler,
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            data_size_limit=settings.SMTP_MAX_SIZE,
        )

    yield

    logger.info("UploadFlow API shutting down...")
    if smtp_server is not None:
        smtp_server.close()
        await smtp_server.wait_closed()
    await get_fanout().drain()


app = FastAPI(
    title="UploadFlow API",
    description="Upload lifecycle, attachment store and notification fanout",
    version="0.1.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url=None,
    openapi_url="/openapi.json" if settings.ENVIRONMENT != "production" else None,
    lifespan=lifespan,
)


app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render classified failures as {"message", "code"} with their status."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(f"{request.method} {request.url.path} failed: {exc.kind.name}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def invalid_request_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = jsonable_errors(exc)
    logger.warning(f"{request.method} {request.url.path} rejected: {len(details)} invalid field(s)")
    body = {"error": "validation_error", "message": "invalid request", "details": details}
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "internal server error"},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unclassified: log the cause, never return it."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "internal server error"},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


app.include_router(observability_router)
app.include_router(auth_router)
app.include_router(notifications_router)
app.include_router(uploads_router)


def create_app() -> FastAPI:
    """Return the configured application.

    Used by the test suite; also usable as `uvicorn --factory uploadflow.main:create_app`.
    """
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "uploadflow.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
