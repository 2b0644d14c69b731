"""FastAPI application factory for CanvasLoom.

Creates the app with CORS for the canvas dev server and the component
routes registered.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__

logger = logging.getLogger(__name__)


def create_app(pipeline) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        pipeline: ComponentPipeline instance

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="CanvasLoom API",
        description="Component compile and load pipeline",
        version=__version__,
    )

    # CORS for the canvas dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.pipeline = pipeline

    from .routes.components import router as components_router

    app.include_router(components_router, prefix="/api")

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "service": "canvasloom"}

    logger.info("FastAPI app created with all routes registered")
    return app
