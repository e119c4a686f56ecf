"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vpsdeploy import __version__
from vpsdeploy.api.middleware import RequestLoggingMiddleware
from vpsdeploy.api.v1.router import router as v1_router
from vpsdeploy.config import settings
from vpsdeploy.core.exceptions import VpsDeployError
from vpsdeploy.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging()
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
    )

    yield

    # Shutdown
    logger.info("application.shutdown")


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {error.get('msg')}" if loc else str(error.get("msg")))
    return "; ".join(parts)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="vpsdeploy API",
        description="Deploys the site to its VPS and configures nginx and TLS",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # Register exception handlers
    @app.exception_handler(VpsDeployError)
    async def vpsdeploy_error_handler(request: Request, exc: VpsDeployError) -> JSONResponse:
        """Handle application-specific errors."""
        if exc.status_code >= 500:
            logger.error("request.failed", path=request.url.path, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "message": exc.message,
                "error": type(exc).__name__,
                "details": exc.details,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Missing or malformed fields are a 400, not a 422."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "message": "Invalid request",
                "error": _format_validation_errors(exc),
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "message": "An unexpected error occurred",
                "error": str(exc) if settings.is_development else "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(v1_router)

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vpsdeploy.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
