"""Component compile API.

Endpoints for compiling pasted/generated code, importing from URLs,
processing library components, and inspecting or clearing the cache.
Pipeline failures are returned as ``success: false`` bodies with status
200; only malformed requests and unknown library ids are HTTP errors.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_pipeline
from ..schemas.component import (
    CompileOptions,
    CompileRequest,
    LibraryList,
    ProcessingResponse,
    URLImportRequest,
)
from ...core.models import Provenance, SourceModule

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/components", tags=["components"])


@router.post("/compile", response_model=ProcessingResponse)
async def compile_component(request: CompileRequest, pipeline=Depends(get_pipeline)):
    """Compile and validate component source."""
    if request.provenance is Provenance.GENERATED:
        result = await pipeline.process_generated(
            request.code,
            prompt=request.prompt or "",
            options=request.options.to_options(),
        )
    else:
        metadata = {"name": request.name} if request.name else {}
        source = SourceModule(
            code=request.code,
            provenance=request.provenance,
            declared_format=request.declared_format,
            options=request.options.to_options(),
            metadata=metadata,
        )
        result = await pipeline.process(source)

    if not result.success:
        logger.info(f"Compile failed ({result.error_kind}): {result.error}")
    return ProcessingResponse(**result.to_dict())


@router.post("/import-url", response_model=ProcessingResponse)
async def import_from_url(request: URLImportRequest, pipeline=Depends(get_pipeline)):
    """Fetch a component from an allow-listed URL and compile it."""
    result = await pipeline.process_url(request.url, request.options.to_options())
    return ProcessingResponse(**result.to_dict())


@router.get("/library", response_model=LibraryList)
async def list_library(category: Optional[str] = None, pipeline=Depends(get_pipeline)):
    """List curated library components."""
    entries = pipeline.library.list_entries(category)
    return LibraryList(components=[e.to_dict() for e in entries], count=len(entries))


@router.post("/library/{component_id}", response_model=ProcessingResponse)
async def process_library_component(
    component_id: str,
    options: Optional[CompileOptions] = None,
    pipeline=Depends(get_pipeline),
):
    """Fetch and compile a library component (always cached)."""
    entry = pipeline.library.get(component_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Library component not found: {component_id}")

    opts = options.to_options() if options else None
    result = await pipeline.process_library_component(entry, opts)
    return ProcessingResponse(**result.to_dict())


@router.get("/stats")
async def get_stats(pipeline=Depends(get_pipeline)):
    """Pipeline performance counters and cache statistics."""
    return pipeline.get_performance_stats()


@router.get("/debug/{input_hash}")
async def get_failed_artifact(input_hash: str, pipeline=Depends(get_pipeline)):
    """Compiled code of a recently failed component, for diagnostics."""
    found = pipeline.debug_store.get(input_hash)
    if found is None:
        raise HTTPException(status_code=404, detail="No failed artifact recorded for this input")
    artifact, error = found
    return {"artifact": artifact.to_dict(), "error": error}


@router.delete("/cache")
async def clear_cache(pipeline=Depends(get_pipeline)):
    """Clear the component cache and release every handle."""
    pipeline.clear_cache()
    return {"success": True, "message": "Component cache cleared"}
