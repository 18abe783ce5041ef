"""
Main FastAPI application for Agent Conductor.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routes import router
from .models import ErrorResponse
from ..orchestration.bootstrap import create_default_orchestrator
from ..orchestration.orchestrator import AgentOrchestrator
from ..utils.config import get_config
from ..utils.logging import configure_logging, get_logger
from .. import __version__

logger = get_logger(__name__)


def create_app(orchestrator: Optional[AgentOrchestrator] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        orchestrator: Use this orchestrator instead of building the default
            one; the caller keeps ownership and shuts it down itself
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting Agent Conductor API...")
        owned = orchestrator is None
        if owned:
            config = get_config()
            configure_logging(config.log_level, config.json_logging)
            app.state.orchestrator = await create_default_orchestrator(config)
        else:
            app.state.orchestrator = orchestrator

        await app.state.orchestrator.start()
        yield

        logger.info("Shutting down Agent Conductor API...")
        if owned:
            await app.state.orchestrator.shutdown()

    app = FastAPI(
        title="Agent Conductor API",
        description="Keyword-routed orchestration of specialized workers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify allowed origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log requests and add the processing time header."""
        start_time = time.time()
        logger.info(f"Request: {request.method} {request.url}")

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        logger.info(f"Response: {response.status_code} - {process_time:.3f}s")
        return response

    # Include API routes
    app.include_router(router, prefix="/api/v1")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Agent Conductor API",
            "version": __version__,
            "docs": "/docs",
            "health": "/api/v1/health"
        }

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        """Handle 404 errors."""
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(
                error="NOT_FOUND",
                message="The requested resource was not found",
                details={"path": str(request.url.path)}
            ).model_dump(mode="json")
        )

    @app.exception_handler(500)
    async def internal_error_handler(request: Request, exc):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                message="An internal server error occurred"
            ).model_dump(mode="json")
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
