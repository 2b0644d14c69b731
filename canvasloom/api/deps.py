"""FastAPI dependencies for CanvasLoom."""

import logging

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


async def get_pipeline(request: Request):
    """Get ComponentPipeline from app state."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Component pipeline not available")
    return pipeline
