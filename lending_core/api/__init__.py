"""
Lending API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .clients import router as clients_router
from .loans import router as loans_router
from .payments import router as payments_router
from .schemas import failure
from .. import __version__
from ..config import get_config
from ..exceptions import LendingError, InternalError
from ..logging_config import get_logger, log_action, setup_logging
from ..system import LendingSystem


logger = get_logger("lending.api")

INTERNAL_ERROR_MESSAGE = "Internal server error"


def _describe_validation_error(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(messages) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    """Translate the error taxonomy into the response envelope"""

    @app.exception_handler(LendingError)
    async def lending_error_handler(request: Request, exc: LendingError):
        if isinstance(exc, InternalError):
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
            return JSONResponse(status_code=exc.status_code, content=failure(INTERNAL_ERROR_MESSAGE))
        return JSONResponse(status_code=exc.status_code, content=failure(exc.message))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=failure(_describe_validation_error(exc)))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=failure(str(exc.detail)))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(status_code=500, content=failure(INTERNAL_ERROR_MESSAGE))


def create_app(system: Optional[LendingSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Components to serve; built from configuration when omitted
            and then closed on shutdown
    """
    owns_system = system is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_system:
            app.state.system.close()

    app = FastAPI(
        title="Lending Core API",
        description="Client registry, flat-rate installment loans and payment tracking",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.system = system or LendingSystem()

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(clients_router, prefix="/clients", tags=["Clients"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(payments_router, prefix="/payments", tags=["Payments"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "lending_core_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Lending Core API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "clients": "/clients",
                "loans": "/loans",
                "payments": "/payments"
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, reload: Optional[bool] = None):
    """Run the FastAPI server with settings from configuration"""
    config = get_config()
    setup_logging(level=config.log_level, log_file=config.log_file)

    host = host or config.api_host
    port = port or config.api_port
    reload = config.api_reload if reload is None else reload

    log_action(
        logger, "info", f"Starting lending API on {host}:{port}",
        action="server.start", extra={"storage_backend": config.storage_backend}
    )
    uvicorn.run(
        "lending_core.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=config.log_level.lower()
    )
