"""Component request/response schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field

from ...core.models import ModuleFormat, PipelineOptions, Provenance


class CompileOptions(BaseModel):
    """Per-request pipeline switches."""
    use_cache: Optional[bool] = Field(None, description="Override the provenance cache default")
    force_recompile: bool = Field(False, description="Skip the cache lookup")
    debug: bool = Field(False, description="Log per-stage detail")
    timeout_ms: Optional[int] = Field(None, ge=1, description="Soft import timeout")

    def to_options(self) -> PipelineOptions:
        return PipelineOptions(
            use_cache=self.use_cache,
            force_recompile=self.force_recompile,
            debug=self.debug,
            timeout_ms=self.timeout_ms,
        )


class CompileRequest(BaseModel):
    """Compile raw component source."""
    code: str = Field(..., description="Component source text")
    provenance: Provenance = Field(Provenance.USER_PROVIDED, description="Where the code came from")
    declared_format: Optional[ModuleFormat] = Field(None, description="Skip format detection")
    prompt: Optional[str] = Field(None, description="Generation prompt, for generated code")
    name: Optional[str] = Field(None, description="Display name")
    options: CompileOptions = Field(default_factory=CompileOptions)


class URLImportRequest(BaseModel):
    """Import a component from a URL."""
    url: str = Field(..., description="Allow-listed component URL", min_length=1)
    options: CompileOptions = Field(default_factory=CompileOptions)


class ProcessingResponse(BaseModel):
    """Outcome of one pipeline run."""
    success: bool = Field(..., description="Whether the component validated")
    artifact: Optional[dict] = Field(None, description="Compiled artifact")
    error: Optional[str] = Field(None, description="Error message if failed")
    error_kind: Optional[str] = Field(None, description="Error class name if failed")
    warnings: List[str] = Field(default_factory=list)
    elapsed_ms: float = Field(0.0, description="Wall-clock processing time")
    cache_hit: bool = Field(False, description="Served from the component cache")


class LibraryList(BaseModel):
    """Curated library listing."""
    components: List[dict] = Field(default_factory=list)
    count: int = Field(0)
