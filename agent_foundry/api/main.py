"""
Main FastAPI application for Agent Foundry.
"""

import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..agents.base import BaseAgent
from ..models.errors import NotInitializedError
from ..orchestration.orchestrator import create_orchestrator
from ..utils.config import SystemConfig, get_config
from ..utils.logging import configure_logging, get_logger
from .routes import router

logger = get_logger(__name__)

API_PREFIX = "/api/v1/agents"


def create_app(config: Optional[SystemConfig] = None, agents: Optional[List[BaseAgent]] = None) -> FastAPI:
    """
    Build the API application.

    The orchestrator is created once in the lifespan and shared by every
    request through `app.state.orchestrator`.

    Args:
        config: System configuration; the global configuration when omitted
        agents: Agents to register; the built-in set when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        system_config = config or get_config()
        configure_logging(system_config.log_level, system_config.json_logging)

        # Startup
        logger.info("Starting Agent Foundry API...")
        app.state.orchestrator = await create_orchestrator(config=system_config, agents=agents)
        yield
        # Shutdown
        logger.info("Shutting down Agent Foundry API...")
        await app.state.orchestrator.shutdown()
        app.state.orchestrator = None

    app = FastAPI(
        title="Agent Foundry API",
        description="Multi-agent task orchestration for application builds",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests and add a processing time header."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        logger.info(f"Response: {request.method} {request.url.path} {response.status_code} - {process_time:.3f}s")
        return response

    app.include_router(router, prefix=API_PREFIX)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Agent Foundry API",
            "version": __version__,
            "docs": "/docs",
            "health": f"{API_PREFIX}/health"
        }

    @app.exception_handler(NotInitializedError)
    async def not_initialized_handler(request: Request, exc: NotInitializedError):
        return JSONResponse(status_code=503, content={"success": False, "error": exc.message})

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        """Handle 404 errors."""
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": f"Not found: {request.url.path}"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
