"""
FastAPI server for Card Uploads.

Serves upload progress to UI consumers and accepts pause, resume and
cancel requests for uploads owned by this process.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core.api import CardUploadAPI
from ..core.models import HealthCheckResponse, UploaderConfig
from .routes import router

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[UploaderConfig] = None,
    api_factory: Optional[Callable[[], CardUploadAPI]] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Upload client configuration (default: from environment)
        api_factory: Builds the CardUploadAPI owned by the app; overrides ``config``
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        api = api_factory() if api_factory else CardUploadAPI(config)
        app.state.upload_api = api
        app.state.spool_paths = spool_paths = {}

        def remove_spool(upload_id: str) -> None:
            # Paused and failed uploads keep their spool so they can resume
            spool_path = spool_paths.pop(upload_id, None)
            if spool_path is not None:
                Path(spool_path).unlink(missing_ok=True)
                logger.debug(f"Removed spool file for {upload_id}")

        api.orchestrator.add_retire_listener(remove_spool)
        logger.info(f"Upload server ready; ledger at {api.ledger.path}")
        try:
            yield
        finally:
            await api.aclose()

    app = FastAPI(
        title="Card Uploads API",
        description="""
        Progress API for resumable card attachment uploads.

        - List uploads and their progress, including interrupted ones
        - Start resumable uploads to a card
        - Pause, resume and cancel uploads
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(router, prefix="/api/v1")

    @app.get("/health", response_model=HealthCheckResponse, tags=["Health"])
    async def health_check() -> HealthCheckResponse:
        """Health check endpoint."""
        return HealthCheckResponse(status="healthy", version=__version__)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Card Uploads API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
            "openapi": "/openapi.json",
        }

    return app


def main() -> None:
    """Main entry point for the server."""
    import argparse

    parser = argparse.ArgumentParser(description="Card Uploads API Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--log-level", default="info", help="Log level")

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    # One process only: uploads and their cancel tokens live in memory
    app = create_app()

    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
