"""
Warranty Portal - FastAPI Application

Main entry point for the portal API.

Architecture:
- Routers parse and validate HTTP input, then call one service
- Services own transactions and consult the access policy + lifecycle table
- Storage holds the bytes, the database holds the ledger
- Notifications are sent after commit and never fail a request
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import Settings, get_settings
from .database import Database
from .errors import PortalError
from .routers import (
    auth_router, jobs_router, files_router, sftp_router, invoices_router, users_router,
)
from .services import LocalFileStorage, build_transport

logger = logging.getLogger(__name__)


def _error_body(message) -> dict:
    return {"error": message}


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto status codes with an {"error": ...} body."""

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content=_error_body(_validation_message(exc)))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content=_error_body("Internal server error"))


def create_app(settings: Optional[Settings] = None, transport=None) -> FastAPI:
    """
    Build the API.

    settings defaults to the environment; transport defaults to SMTP when
    MAIL_SERVER is set, log-only otherwise.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the database and upload folders on startup, release on shutdown."""
        database = Database(settings.database_url)
        database.init_db()
        LocalFileStorage(settings.job_files_dir, settings.max_file_size).ensure_directories()

        app.state.database = database
        app.state.mail_transport = transport or build_transport(settings)
        logger.info(f"Warranty Portal API ready (db={settings.database_url}, uploads={settings.upload_dir})")
        try:
            yield
        finally:
            database.dispose()
            logger.info("Warranty Portal API stopped")

    app = FastAPI(
        lifespan=lifespan,
        title="Warranty Portal",
        description="""
    Warranty Portal - Mailer Production API

    Clients create campaigns, upload artwork and mail lists, and approve
    proofs. Staff move jobs through printing and invoicing.

    ## Workflow
    DRAFT → ASSETS_UPLOADED → PROOFING → APPROVED → PRINTING → INVOICED → COMPLETE
    """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.dependency_overrides[get_settings] = lambda: settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(jobs_router)
    app.include_router(files_router)
    app.include_router(sftp_router)
    app.include_router(invoices_router)
    app.include_router(users_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "timestamp": datetime.utcnow().isoformat()}

    return app


app = create_app()


# For running with: python -m warranty_portal.main
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
